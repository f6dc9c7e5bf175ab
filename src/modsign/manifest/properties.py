from __future__ import annotations

import re
from typing import Dict, Iterable, List, Tuple

_ESCAPES = {
    "\\": "\\\\",
    "=": "\\=",
    ":": "\\:",
    "#": "\\#",
    "!": "\\!",
    "\t": "\\t",
    "\n": "\\n",
    "\r": "\\r",
    "\f": "\\f",
}
_UNESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_WHITESPACE = " \t\f"
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def _escape(text: str, escape_all_spaces: bool) -> str:
    out: List[str] = []
    for i, ch in enumerate(text):
        if ch == " " and (escape_all_spaces or i == 0):
            out.append("\\ ")
        else:
            out.append(_ESCAPES.get(ch, ch))
    return "".join(out)


def escape_key(key: str) -> str:
    return _escape(key, escape_all_spaces=True)


def escape_value(value: str) -> str:
    return _escape(value, escape_all_spaces=False)


def dump_properties(items: Iterable[Tuple[str, str]]) -> str:
    return "".join(f"{escape_key(k)}={escape_value(v)}\n" for k, v in items)


def _logical_lines(text: str) -> Iterable[str]:
    """Join continuation lines (odd number of trailing backslashes)."""
    pending = None
    for raw in _LINE_BREAK.split(text):
        line = raw.lstrip(_WHITESPACE) if pending is not None else raw
        if pending is None and line.lstrip(_WHITESPACE)[:1] in ("#", "!"):
            continue
        if pending is None and not line.strip(_WHITESPACE):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending = (pending or "") + line[:-1]
            continue
        yield (pending or "") + line
        pending = None
    if pending is not None:
        yield pending


def _unescape(text: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch != "\\" or i + 1 == len(text):
            out.append(ch)
            i += 1
            continue
        nxt = text[i + 1]
        if nxt == "u":
            if i + 6 > len(text):
                raise ValueError(f"malformed \\u escape in {text!r}")
            try:
                out.append(chr(int(text[i + 2 : i + 6], 16)))
            except ValueError as exc:
                raise ValueError(f"malformed \\u escape in {text!r}") from exc
            i += 6
            continue
        out.append(_UNESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _split(line: str) -> Tuple[str, str]:
    line = line.lstrip(_WHITESPACE)
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in "=:" or ch in _WHITESPACE:
            break
        i += 1
    key, rest = line[:i], line[i:]
    rest = rest.lstrip(_WHITESPACE)
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(_WHITESPACE)
    return key, rest


def parse_properties(text: str) -> Dict[str, str]:
    """Parse properties text; later duplicates win, order of first appearance is kept."""
    result: Dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = _split(line)
        result[_unescape(key)] = _unescape(value)
    return result
