"""Exceptions shared by the parser, storage and dispatcher."""

from __future__ import annotations


class ParseError(ValueError):
    """Malformed user input. Always reported back to the user."""


class InvalidArguments(ParseError):
    """Command arguments that cannot be split into the expected parts."""


class FormatError(ValueError):
    """Stored timestamp that does not match the storage pattern."""


class PersistenceError(RuntimeError):
    """A storage operation could not be completed."""
