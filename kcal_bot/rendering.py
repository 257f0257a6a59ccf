"""Text rendering of statistics messages and monospace tables."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Optional, Sequence

from .calculations import ShortStat
from .storage import ConsumedItem
from .timeutils import DisplayPattern, chunk_text, format_kcal, format_offset, to_user_local_display


WIDE_TABLE_WIDTH = 36
NARROW_TABLE_WIDTH = 30
WIDE_TABLE_MIN_ROWS = 5
MIN_WRAP_WIDTH = 6
COLUMN_SEPARATOR = " "
# Telegram rejects longer message texts.
MESSAGE_LIMIT = 4096


@dataclass(slots=True, frozen=True)
class Column:
    title: str
    align: str = "<"
    # A wrapped column takes whatever width the fixed columns leave over.
    wrap: bool = False


ID_COLUMN = Column("ID", align=">")
USER_COLUMN = Column("User", align=">")
NAME_COLUMN = Column("Name", wrap=True)
KCAL_COLUMN = Column("Kcal", align=">")
TIME_COLUMN = Column("Time")
DATE_COLUMN = Column("Date")


def table_width_budget(row_count: int) -> int:
    return WIDE_TABLE_WIDTH if row_count >= WIDE_TABLE_MIN_ROWS else NARROW_TABLE_WIDTH


def compute_widths(
    rows: Sequence[Sequence[str]],
    columns: Sequence[Column],
    width_budget: Optional[int] = None,
) -> list[int]:
    """Return the width of every column for the given rows."""

    if width_budget is None:
        width_budget = table_width_budget(len(rows))

    widths: list[int] = []
    for index, column in enumerate(columns):
        if column.wrap:
            widths.append(0)
            continue
        longest = max((len(row[index]) for row in rows), default=0)
        widths.append(max(len(column.title), longest))

    wrap_indexes = [index for index, column in enumerate(columns) if column.wrap]
    if wrap_indexes:
        used = sum(widths) + len(COLUMN_SEPARATOR) * (len(columns) - 1)
        share = (width_budget - used) // len(wrap_indexes)
        for index in wrap_indexes:
            widths[index] = max(share, MIN_WRAP_WIDTH, len(columns[index].title))
    return widths


def _format_line(cells: Sequence[str], columns: Sequence[Column], widths: Sequence[int]) -> str:
    parts = [f"{cell:{column.align}{width}}" for cell, column, width in zip(cells, columns, widths)]
    return COLUMN_SEPARATOR.join(parts).rstrip()


def render_table(
    rows: Sequence[Sequence[str]],
    columns: Sequence[Column],
    width_budget: Optional[int] = None,
) -> str:
    """Render rows of preformatted cells as an aligned monospace table.

    Cells of wrapped columns longer than the column width continue on extra
    lines where every other column is left blank.
    """

    for row in rows:
        if len(row) != len(columns):
            raise ValueError(f"Row {row!r} does not match {len(columns)} columns")

    widths = compute_widths(rows, columns, width_budget)
    lines = [_format_line([column.title for column in columns], columns, widths)]

    for row in rows:
        pieces: list[list[str]] = []
        for cell, column, width in zip(row, columns, widths):
            if column.wrap:
                pieces.append(chunk_text(cell, width) or [""])
            else:
                pieces.append([cell])
        height = max(len(chunks) for chunks in pieces)
        for line_index in range(height):
            cells = [chunks[line_index] if line_index < len(chunks) else "" for chunks in pieces]
            lines.append(_format_line(cells, columns, widths))

    return "\n".join(lines)


def _pre(lines: Sequence[str]) -> str:
    return "<pre>" + "\n".join(lines) + "</pre>"


def as_pre_messages(text: str, limit: int = MESSAGE_LIMIT) -> list[str]:
    """Split text on line boundaries into ``<pre>`` blocks of at most ``limit`` characters."""

    room = limit - len("<pre></pre>")
    # html.escape grows one character into at most six.
    max_raw_line = room // 6
    if max_raw_line < 1:
        raise ValueError(f"Message limit {limit} is too small")

    messages: list[str] = []
    current: list[str] = []
    size = 0
    for line in text.split("\n"):
        escaped_line = html.escape(line)
        pieces = [escaped_line] if len(escaped_line) <= room else [
            html.escape(chunk) for chunk in chunk_text(line, max_raw_line)
        ]
        for piece in pieces:
            added = len(piece) + (1 if current else 0)
            if current and size + added > room:
                messages.append(_pre(current))
                current, size = [], 0
                added = len(piece)
            current.append(piece)
            size += added
    messages.append(_pre(current))
    return messages


def format_short_stat(stat: ShortStat) -> str:
    total = format_kcal(stat.total)
    if not stat.has_limit:
        return f"Today: {total} kcal (no limit set)"

    percent = stat.percent
    percent_text = f" ({percent} %)" if percent is not None else ""
    lines = [f"Today: {total} / {format_kcal(stat.limit)} kcal{percent_text}"]
    if stat.overeat > 0:
        lines.append(f"{format_kcal(stat.overeat)} kcal overeat!")
    else:
        lines.append(f"{format_kcal(stat.left)} kcal left")
    return "\n".join(lines)


def format_item_stat(
    title: str,
    items: Sequence[ConsumedItem],
    offset_hours: int,
    total: float,
    pattern: DisplayPattern = DisplayPattern.SHORT,
    with_user: bool = False,
) -> str:
    """Build a stat message: summary lines followed by the item table."""

    lines = [
        title,
        f"Timezone: UTC{format_offset(offset_hours)}",
        f"Total: {format_kcal(total)} kcal",
        "",
    ]
    if not items:
        lines.append("No items yet.")
        return "\n".join(lines)

    time_column = TIME_COLUMN if pattern is DisplayPattern.SHORT else DATE_COLUMN
    columns = [ID_COLUMN]
    if with_user:
        columns.append(USER_COLUMN)
    columns.extend([NAME_COLUMN, KCAL_COLUMN, time_column])

    rows = []
    for item in items:
        row = [str(item.id)]
        if with_user:
            row.append(str(item.user_id))
        row.extend(
            [
                " ".join(item.text.split()),
                format_kcal(item.kcal),
                to_user_local_display(item.date, offset_hours, pattern),
            ]
        )
        rows.append(row)

    lines.append(render_table(rows, columns))
    return "\n".join(lines)
