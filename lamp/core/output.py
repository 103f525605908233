"""Terminal writers used for debug traces and CLI output."""

from __future__ import annotations

import shutil
from typing import Protocol

import typer


class TraceSink(Protocol):
    def writeln(self, text: str) -> None: ...

    def write_header(self, header: str) -> None: ...

    def write_hr(self) -> None: ...


def _columns() -> int:
    return shutil.get_terminal_size(fallback=(80, 24)).columns


def writeln(text: str) -> None:
    typer.echo(text)


def write_error(text: str) -> None:
    typer.echo(typer.style(f"✖️  {text}", fg=typer.colors.RED), err=True)


def write_header(header: str) -> None:
    width = max(_columns() - len(header) - 2, 0)
    typer.echo(typer.style(f"\n--{header}{'-' * width}", fg=typer.colors.GREEN))


def write_hr() -> None:
    typer.echo(typer.style(f"\n{'-' * _columns()}", fg=typer.colors.CYAN))


def role_label(role: str) -> str:
    return typer.style(f"{role}:", fg=typer.colors.YELLOW)


class ConsoleTraceSink:
    """TraceSink that writes to the terminal."""

    def writeln(self, text: str) -> None:
        writeln(text)

    def write_header(self, header: str) -> None:
        write_header(header)

    def write_hr(self) -> None:
        write_hr()
