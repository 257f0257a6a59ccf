"""Parsing of raw chat messages into commands."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidArguments


KEYWORD_CHARS = "A-Za-z0-9_А-Яа-яЁё"

COMMAND_PATTERN = re.compile(
    rf"/?(?P<keyword>[{KEYWORD_CHARS}]+)(?:@\w+)?(?:\s+(?P<args>.*))?",
    re.DOTALL,
)

# "porridge, 200", "porridge 200", "tea 0,5"
ADD_WITH_KCAL_PATTERN = re.compile(
    r"(?P<name>.+?)(?:\s*,\s*|\s+)(?P<kcal>\d+(?:[.,]\d+)?)",
    re.DOTALL,
)


@dataclass(slots=True, frozen=True)
class ParsedCommand:
    keyword: str
    args: str = ""


@dataclass(slots=True, frozen=True)
class AddArgs:
    name: str
    kcal_text: Optional[str] = None


def parse_command(raw: str) -> Optional[ParsedCommand]:
    """Split a message into keyword and argument text.

    Returns ``None`` when the message carries no command keyword.
    """

    text = (raw or "").strip()
    match = COMMAND_PATTERN.fullmatch(text)
    if not match:
        return None
    return ParsedCommand(keyword=match.group("keyword"), args=(match.group("args") or "").strip())


def _has_letter(value: str) -> bool:
    return any(char.isalpha() for char in value)


def parse_add_args(args: str) -> AddArgs:
    """Split ``add`` arguments into a food name and an optional calorie suffix."""

    text = (args or "").strip()
    if not text:
        raise InvalidArguments("Nothing to add")

    match = ADD_WITH_KCAL_PATTERN.fullmatch(text)
    if match:
        name, kcal_text = match.group("name"), match.group("kcal")
    else:
        name, kcal_text = text, None

    name = name.strip().rstrip(",").strip()
    if not _has_letter(name):
        raise InvalidArguments(f"No food name in {args!r}")
    return AddArgs(name=name, kcal_text=kcal_text)
