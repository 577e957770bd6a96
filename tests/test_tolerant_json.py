"""Tests for the tolerant crawl-record reader."""

from anchor_agent.core.tolerant_json import iter_records, parse_records


def test_json_array():
    assert parse_records('[{"a": 1}, {"b": [1, 2.5, "x"]}]') == [{"a": 1}, {"b": [1, 2.5, "x"]}]


def test_json_lines():
    text = '{"post_id": "1", "title": "One"}\n{"post_id": "2", "title": "Two"}\n'
    assert [r["post_id"] for r in parse_records(text)] == ["1", "2"]


def test_bytes_input():
    assert parse_records(b'{"ok": true, "n": null}') == [{"ok": True, "n": None}]


def test_empty_input():
    assert parse_records("") == []
    assert parse_records(None) == []
    assert parse_records("no objects here") == []


def test_skips_damaged_object_keeps_neighbours():
    text = '[{"a": 1}, {"b": oops}, {"c": 3}]'
    assert parse_records(text) == [{"a": 1}, {"c": 3}]


def test_unbalanced_object_skips_to_next_line():
    text = '{"a": "unterminated\n{"b": 2}'
    assert parse_records(text) == [{"b": 2}]


def test_truncated_tail_is_dropped():
    assert parse_records('{"a": 1}\n{"b": 2, "c": [1, 2') == [{"a": 1}]


def test_trailing_comma_tolerated():
    assert parse_records('{"a": 1, "b": 2,}') == [{"a": 1, "b": 2}]


def test_braces_inside_strings():
    assert parse_records('{"text": "a } b { c"}') == [{"text": "a } b { c"}]


def test_escaped_quotes():
    assert parse_records(r'{"q": "she said \"hi\""}') == [{"q": 'she said "hi"'}]


def test_nested_objects_yield_outer_only():
    assert parse_records('{"outer": {"inner": 1}}') == [{"outer": {"inner": 1}}]


def test_deep_nesting_does_not_raise():
    text = '{"a": ' * 400 + "1" + "}" * 400
    assert list(iter_records(text)) == []
