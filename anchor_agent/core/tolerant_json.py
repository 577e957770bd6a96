"""Tolerant JSON record reader for crawl payloads.

The discovery API may return a JSON array, JSON lines, a single object or a
damaged concatenation of objects. `iter_records` walks the text with a small
recursive-descent parser and yields every object it can parse completely,
skipping broken fragments. It never raises.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from json.decoder import scanstring
from typing import Any

NUMBER_PATTERN = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][-+]?\d+)?")
WHITESPACE = " \t\r\n"
LITERALS = {"true": True, "false": False, "null": None}
MAX_DEPTH = 256


class _ParseError(ValueError):
    pass


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text

    def skip_ws(self, pos: int) -> int:
        text = self.text
        while pos < len(text) and text[pos] in WHITESPACE:
            pos += 1
        return pos

    def value(self, pos: int, depth: int) -> tuple[Any, int]:
        if depth > MAX_DEPTH:
            raise _ParseError("nesting too deep")
        pos = self.skip_ws(pos)
        if pos >= len(self.text):
            raise _ParseError("unexpected end of input")

        char = self.text[pos]
        if char == "{":
            return self.obj(pos, depth + 1)
        if char == "[":
            return self.array(pos, depth + 1)
        if char == '"':
            return self.string(pos)
        for word, literal in LITERALS.items():
            if self.text.startswith(word, pos):
                return literal, pos + len(word)
        match = NUMBER_PATTERN.match(self.text, pos)
        if match:
            number = match.group()
            if "." in number or "e" in number or "E" in number:
                return float(number), match.end()
            return int(number), match.end()
        raise _ParseError(f"unexpected character {char!r} at {pos}")

    def string(self, pos: int) -> tuple[str, int]:
        try:
            return scanstring(self.text, pos + 1)
        except ValueError as e:
            raise _ParseError(str(e)) from e

    def obj(self, pos: int, depth: int) -> tuple[dict[str, Any], int]:
        result: dict[str, Any] = {}
        pos = self.skip_ws(pos + 1)
        while True:
            if pos >= len(self.text):
                raise _ParseError("unterminated object")
            if self.text[pos] == "}":
                return result, pos + 1
            if self.text[pos] != '"':
                raise _ParseError(f"expected key at {pos}")
            key, pos = self.string(pos)
            pos = self.skip_ws(pos)
            if pos >= len(self.text) or self.text[pos] != ":":
                raise _ParseError(f"expected ':' at {pos}")
            result[key], pos = self.value(pos + 1, depth)
            pos = self.skip_ws(pos)
            if pos < len(self.text) and self.text[pos] == ",":
                # A trailing comma before '}' is accepted.
                pos = self.skip_ws(pos + 1)
            elif pos < len(self.text) and self.text[pos] != "}":
                raise _ParseError(f"expected ',' or '}}' at {pos}")

    def array(self, pos: int, depth: int) -> tuple[list[Any], int]:
        result: list[Any] = []
        pos = self.skip_ws(pos + 1)
        while True:
            if pos >= len(self.text):
                raise _ParseError("unterminated array")
            if self.text[pos] == "]":
                return result, pos + 1
            item, pos = self.value(pos, depth)
            result.append(item)
            pos = self.skip_ws(pos)
            if pos < len(self.text) and self.text[pos] == ",":
                pos = self.skip_ws(pos + 1)
            elif pos < len(self.text) and self.text[pos] != "]":
                raise _ParseError(f"expected ',' or ']' at {pos}")


def _balanced_end(text: str, start: int) -> int | None:
    """Index just past the brace closing the one at `start`, honouring strings."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def iter_records(text: str | bytes | None) -> Iterator[dict[str, Any]]:
    """Yield every top-level JSON object in `text` that parses completely.

    Top-level arrays are read element by element, so one damaged element does
    not lose its siblings. A damaged object is skipped up to its balanced
    closing brace, or to the end of its line when the braces never balance.
    """
    if not text:
        return
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")

    parser = _Parser(text)
    pos = 0
    while True:
        pos = text.find("{", pos)
        if pos == -1:
            return
        try:
            record, end = parser.obj(pos, 1)
        except (_ParseError, RecursionError):
            end = _balanced_end(text, pos)
            if end is None:
                newline = text.find("\n", pos)
                if newline == -1:
                    return
                end = newline + 1
            pos = end
            continue
        yield record
        pos = end


def parse_records(text: str | bytes | None) -> list[dict[str, Any]]:
    return list(iter_records(text))
