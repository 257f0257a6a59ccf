from datetime import datetime, timezone

import pytest

from kcal_bot.calculations import ShortStat, build_short_stat
from kcal_bot.rendering import (
    DATE_COLUMN,
    ID_COLUMN,
    KCAL_COLUMN,
    NAME_COLUMN,
    TIME_COLUMN,
    as_pre_messages,
    compute_widths,
    format_item_stat,
    format_short_stat,
    render_table,
)
from kcal_bot.storage import ConsumedItem
from kcal_bot.timeutils import DisplayPattern


DAY_COLUMNS = [ID_COLUMN, NAME_COLUMN, KCAL_COLUMN, TIME_COLUMN]


def test_name_column_takes_remaining_budget():
    rows = [["1", "soup", "150", "12:00"]]
    # ID 2 + Kcal 4 + Time 5 + three separators leave 16 of 30.
    assert compute_widths(rows, DAY_COLUMNS) == [2, 16, 4, 5]


def test_wide_budget_from_five_rows():
    rows = [[str(i), "soup", "150", "12:00"] for i in range(1, 6)]
    assert compute_widths(rows, DAY_COLUMNS)[1] == 22
    assert compute_widths(rows[:4], DAY_COLUMNS)[1] == 16


def test_name_column_has_minimum_width():
    rows = [["123456789", "soup", "150", "12:00"]]
    assert compute_widths(rows, DAY_COLUMNS, width_budget=10)[1] == 6


def test_long_name_is_wrapped_without_loss():
    name = "abcdefghij" * 5
    rows = [["1", name, "150", "12:00"]]
    assert compute_widths(rows, DAY_COLUMNS, width_budget=24)[1] == 10

    lines = render_table(rows, DAY_COLUMNS, width_budget=24).split("\n")

    assert len(lines) == 6
    assert lines[0] == f"ID {'Name':<10} Kcal Time"
    assert lines[1] == " 1 abcdefghij  150 12:00"
    for line in lines[2:]:
        assert line == "   abcdefghij"
    assert "".join(line[3:13] for line in lines[1:]) == name


def test_render_table_header_only_without_rows():
    assert render_table([], DAY_COLUMNS).startswith("ID Name")


def test_render_table_rejects_short_rows():
    with pytest.raises(ValueError):
        render_table([["1", "soup"]], DAY_COLUMNS)


def _unwrap(message):
    assert message.startswith("<pre>") and message.endswith("</pre>")
    return message[len("<pre>") : -len("</pre>")]


def test_as_pre_messages_escapes_html():
    assert as_pre_messages("<a&b>") == ["<pre>&lt;a&amp;b&gt;</pre>"]


def test_as_pre_messages_splits_on_line_boundaries():
    text = "\n".join(f"line {i:03}" for i in range(500))

    messages = as_pre_messages(text, limit=200)

    assert len(messages) > 1
    assert all(len(message) <= 200 for message in messages)
    assert "\n".join(_unwrap(message) for message in messages) == text


def test_as_pre_messages_cuts_overlong_lines():
    messages = as_pre_messages("&" * 1000, limit=100)

    assert all(len(message) <= 100 for message in messages)
    joined = "".join(_unwrap(message).replace("\n", "") for message in messages)
    assert joined == "&amp;" * 1000


def test_as_pre_messages_rejects_tiny_limit():
    with pytest.raises(ValueError):
        as_pre_messages("x", limit=12)


def test_short_stat_without_limit():
    assert format_short_stat(ShortStat(total=150)) == "Today: 150 kcal (no limit set)"


def test_short_stat_overeat():
    text = format_short_stat(build_short_stat(2500, 2000))
    assert "2500 / 2000 kcal (125 %)" in text
    assert "500 kcal overeat!" in text


def test_short_stat_left():
    text = format_short_stat(build_short_stat(500, 2000))
    assert text == "Today: 500 / 2000 kcal (25 %)\n1500 kcal left"


def test_item_stat_without_items():
    text = format_item_stat("Today", [], 3, 0)
    assert "Timezone: UTC+3" in text
    assert "Total: 0 kcal" in text
    assert text.endswith("No items yet.")


def test_item_stat_table():
    items = [
        ConsumedItem(1, 10, datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc), "soup", 150.0),
        ConsumedItem(2, 11, datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc), "tea", None),
    ]
    text = format_item_stat("All users", items, 2, 150, DisplayPattern.LONG, with_user=True)
    lines = text.split("\n")
    assert lines[0] == "All users"
    assert lines[1] == "Timezone: UTC+2"
    assert lines[2] == "Total: 150 kcal"
    assert lines[4].split() == ["ID", "User", "Name", "Kcal", "Date"]
    assert "01 Mar 10:00" in lines[5]
    assert lines[5].split()[:4] == ["1", "10", "soup", "150"]
    assert lines[6].split()[:4] == ["2", "11", "tea", "-"]


def test_item_stat_flattens_newlines_in_names():
    items = [ConsumedItem(1, 10, datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc), "soup\nand bread", 300.0)]
    text = format_item_stat("Today", items, 0, 300)
    assert "soup and bread" in text


def test_item_stat_uses_time_column_for_short_pattern():
    assert DATE_COLUMN.title not in format_item_stat(
        "Today",
        [ConsumedItem(1, 10, datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc), "tea", 5.0)],
        0,
        5,
    )
