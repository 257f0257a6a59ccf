import pytest

from kcal_bot.errors import InvalidArguments
from kcal_bot.parsing import AddArgs, ParsedCommand, parse_add_args, parse_command


def test_parse_command_with_slash_and_args():
    assert parse_command("/add porridge, 200") == ParsedCommand("add", "porridge, 200")


def test_parse_command_without_args():
    assert parse_command("  STAT  ") == ParsedCommand("STAT", "")


def test_parse_command_cyrillic_keyword():
    assert parse_command("/стат") == ParsedCommand("стат", "")
    assert parse_command("добавить борщ, 300") == ParsedCommand("добавить", "борщ, 300")


def test_parse_command_drops_bot_mention():
    assert parse_command("/daystat@kcal_bot") == ParsedCommand("daystat", "")


def test_parse_command_keeps_inner_spacing():
    assert parse_command("add   bread  with butter , 300  ") == ParsedCommand("add", "bread  with butter , 300")
    assert parse_command("add\nsoup 100") == ParsedCommand("add", "soup 100")


@pytest.mark.parametrize("text", ["", "   ", "!!!", "/", "🍕 pizza"])
def test_parse_command_no_match(text):
    assert parse_command(text) is None


@pytest.mark.parametrize(
    "args, expected",
    [
        ("porridge, 200", AddArgs("porridge", "200")),
        ("porridge , 200", AddArgs("porridge", "200")),
        ("water", AddArgs("water", None)),
        ("tea 0,5", AddArgs("tea", "0,5")),
        ("pizza 12.5", AddArgs("pizza", "12.5")),
        ("apple 2 pcs", AddArgs("apple 2 pcs", None)),
        ("борщ, 300", AddArgs("борщ", "300")),
        ("cola 0,5 l, 210", AddArgs("cola 0,5 l", "210")),
    ],
)
def test_parse_add_args(args, expected):
    assert parse_add_args(args) == expected


@pytest.mark.parametrize("args", ["", "   ", "200", ", 200", "12.5"])
def test_parse_add_args_requires_name(args):
    with pytest.raises(InvalidArguments):
        parse_add_args(args)
