import pytest

from sceneforge.coercion import DECODE_STRATEGIES, decode, coerce_value
from sceneforge.util.json_repair import repair_json


def test_strategy_order_is_fixed():
    names = [name for name, _ in DECODE_STRATEGIES]
    assert names == [
        "literal",
        "strict_json",
        "escaped_newlines",
        "fenced_block",
        "lenient_json",
        "edit_list_scan",
    ]


def test_literals_and_numbers():
    assert coerce_value("true") is True
    assert coerce_value("False") is False
    assert coerce_value("null") is None
    assert coerce_value("42") == 42
    assert coerce_value("-1.5") == -1.5


def test_strict_json_object():
    name, value = decode('{"Name": "Base", "Anchored": true}')
    assert name == "strict_json"
    assert value == {"Name": "Base", "Anchored": True}


def test_raw_newlines_inside_strings():
    name, value = decode('{"text": "local a = 1\nprint(a)"}')
    assert name == "escaped_newlines"
    assert value["text"] == "local a = 1\nprint(a)"


def test_fenced_block():
    name, value = decode('```json\n{"a": 1}\n```')
    assert name == "fenced_block"
    assert value == {"a": 1}


def test_lenient_json_single_quotes_and_trailing_commas():
    name, value = decode("{'Name': 'Base', 'Size': [4, 1, 4],}")
    assert name == "lenient_json"
    assert value == {"Name": "Base", "Size": [4, 1, 4]}


def test_edit_list_scan_recovers_broken_edit_list():
    raw = "[{start: {line: 0, character: 0}, end: {line: 0, character: 3}, text: \"abc\"} oops"
    name, value = decode(raw)
    assert name == "edit_list_scan"
    assert value == [
        {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 3}, "text": "abc"}
    ]


def test_plain_text_is_returned_unchanged():
    assert decode("game.Workspace.Base") == (None, "game.Workspace.Base")
    assert coerce_value("Make it red") == "Make it red"


def test_repair_json_quotes_bare_keys():
    assert repair_json("{name: 'Tower', height: 10,}") == {"name": "Tower", "height": 10}


@pytest.mark.parametrize(
    "raw",
    [
        "9" * 5000,
        "[" * 100000,
        "{" * 100000,
        '{"Value": ' + "1" * 5000 + "}",
        "```json\n" + "7" * 5000 + "\n```",
        '[{"start": {"line": ' + "8" * 5000 + ', "character": 0}, "end": {"line": 1, "character": 0}, "text": "x"}',
    ],
)
def test_pathological_input_degrades_to_raw_string(raw):
    assert coerce_value(raw) == raw
