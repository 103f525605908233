from __future__ import annotations


class InvalidInputError(ValueError):
    """Raised when statistics are requested over an empty series."""
