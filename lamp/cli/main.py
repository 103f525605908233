from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from ..adapters.base import GenerationError
from ..core import reporter
from ..core.evaluate import EvalResult, Evaluator
from ..core.lamp import lamp
from ..core.logging_utils import configure_logging
from ..core.model_config import model_config_loader, use_mocks_from_env
from ..core.output import write_error, write_header, writeln
from ..core.settings import LampConfig
from ..core.suite import load_suite

app = typer.Typer(help="Run language model programs and evaluate them.")


async def _close(adapter) -> None:
    close = getattr(adapter, "aclose", None)
    if close is not None:
        await close()


def _create_adapter(model_id: str):
    try:
        model_config = model_config_loader.get_model(model_id)
    except ValueError as e:
        write_error(str(e))
        raise typer.Exit(1)
    use_mocks = use_mocks_from_env()
    if not model_config.is_available(use_mocks):
        write_error(f"{model_config.api_key_env} not found in environment for {model_id}")
        raise typer.Exit(1)
    return model_config, model_config.create_adapter(use_mocks)


@app.callback()
def main(
    log_file: Optional[Path] = typer.Option(None, help="Append logs to this file (rotated)."),
    log_level: Optional[str] = typer.Option(None, help="Log level, defaults to LAMP_LOG_LEVEL or INFO."),
) -> None:
    if log_file is not None or log_level is not None:
        configure_logging(log_file, log_level)


@app.command("run")
def run_prompt(
    model: str,
    prompt: str,
    system: Optional[str] = None,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    debug: bool = False,
) -> None:
    """Send one prompt to a model and print the answer with token usage."""
    model_config, adapter = _create_adapter(model)
    settings = dict(model_config.default_settings)
    settings.update({k: v for k, v in {"max_tokens": max_tokens, "temperature": temperature}.items() if v is not None})
    invoke = lamp(
        LampConfig.create(adapter, debug=debug, **settings),
        lambda: {"system": system, "prompt": prompt} if system else prompt,
    )

    async def _go():
        try:
            return await invoke()
        finally:
            await _close(adapter)

    try:
        result = asyncio.run(_go())
    except GenerationError as e:
        write_error(str(e))
        raise typer.Exit(1)
    if not debug:
        writeln(result.text)
    usage = result.usage
    typer.echo(f"tokens: {usage.prompt_tokens} prompt + {usage.completion_tokens} completion = {usage.total_tokens}")


@app.command("eval")
def eval_suite(
    suite: Path,
    model: Optional[str] = typer.Option(None, help="Override the suite's model id."),
    iterations: Optional[int] = typer.Option(None, min=1),
    benchmark: Optional[bool] = typer.Option(None, "--benchmark/--no-benchmark"),
    debug: bool = False,
    csv: Optional[Path] = typer.Option(None, help="Write one row per trial to this CSV file."),
    report: Optional[Path] = typer.Option(None, help="Write the Markdown report to this file."),
) -> None:
    """Run an evaluation suite and print a Markdown summary."""
    try:
        definition = load_suite(suite)
    except (OSError, ValueError) as e:
        write_error(f"Cannot load suite {suite}: {e}")
        raise typer.Exit(1)

    model_id = model or definition.model
    model_config, adapter = _create_adapter(model_id)
    config = definition.lamp_config(adapter, defaults=model_config.default_settings, debug=debug)
    invoke = lamp(config, definition.prompt_function())
    evaluator = Evaluator(definition.eval_config(iterations=iterations, benchmark=benchmark))

    typer.echo(
        f"🤖 Evaluating '{definition.name}' with {model_id}: "
        f"{len(evaluator.config.test_cases)} test case(s) x {evaluator.config.iterations} iteration(s)"
    )

    async def _go() -> EvalResult:
        try:
            return await evaluator.run(invoke)
        finally:
            await _close(adapter)

    try:
        result = asyncio.run(_go())
    except (GenerationError, ValueError) as e:
        write_error(f"Evaluation failed: {e}")
        raise typer.Exit(1)

    md = reporter.render_report(result, title=f"{definition.name} ({model_id})")
    write_header("Results")
    writeln(md)
    if report is not None:
        report.parent.mkdir(parents=True, exist_ok=True)
        report.write_text(md, encoding="utf-8")
        typer.echo(f"📝 Report written to {report}")
    if csv is not None:
        reporter.write_trials_csv(csv, result)
        typer.echo(f"📊 Trials written to {csv}")


@app.command("models")
def list_models() -> None:
    """List known model aliases."""
    use_mocks = use_mocks_from_env()
    typer.echo("🤖 Available Models:")
    for model_config in model_config_loader.models.values():
        status = "✅" if model_config.is_available(use_mocks) else "❌"
        target = f"{model_config.provider}:{model_config.model}"
        typer.echo(f"  {status} {model_config.id} -> {target} {model_config.description}".rstrip())


if __name__ == "__main__":
    app()
