"""Reader and printer for the printed data the remote evaluator returns.

nREPL ``value`` fields hold the printed form of the evaluation result, which
for Clojure/ClojureScript is EDN.  Only reading is needed for decisions; the
printer exists so failure details (``expected``/``actual`` forms) can be shown
the same way the remote printed them.

Mapping:

    nil/true/false   → None/True/False
    42, 42N          → int
    1.5, 1.5M        → float
    1/3              → fractions.Fraction
    "text"           → str
    \\a, \\newline     → Char
    :kw, :ns/kw      → Keyword
    sym              → Symbol
    (a b)            → tuple
    [a b]            → list
    {k v}            → dict
    #{a b}           → frozenset
    #tag value       → Tagged (unknown tags such as ``#object`` and ``#error``)
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, List, Tuple


class EdnError(ValueError):
    """Raised when text cannot be read as a single EDN value."""


@dataclass(frozen=True)
class Keyword:
    name: str

    def __str__(self) -> str:
        return f":{self.name}"


@dataclass(frozen=True)
class Symbol:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Char:
    value: str


@dataclass(frozen=True)
class Tagged:
    tag: str
    value: Any


_DELIMITERS = set("()[]{}\"; \t\r\n,")
_NAMED_CHARS = {
    "newline": "\n",
    "space": " ",
    "tab": "\t",
    "return": "\r",
    "backspace": "\b",
    "formfeed": "\f",
}
_STRING_ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f"}
_INT_RE = re.compile(r"^[+-]?\d+N?$")
_FLOAT_RE = re.compile(r"^[+-]?\d+(\.\d*)?([eE][+-]?\d+)?M?$")
_RATIO_RE = re.compile(r"^[+-]?\d+/\d+$")
_DISCARD = object()


def kw(name: str) -> Keyword:
    return Keyword(name)


def loads(text: str) -> Any:
    """Read exactly one EDN value from ``text``."""
    reader = _Reader(text)
    value = reader.read_value()
    reader.skip_whitespace()
    if reader.pos < len(text):
        raise EdnError(f"trailing data at offset {reader.pos}: {text[reader.pos:reader.pos + 20]!r}")
    return value


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, tuple):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, dict):
        return tuple((_freeze(k), _freeze(v)) for k, v in value.items())
    if isinstance(value, set):
        return frozenset(_freeze(item) for item in value)
    return value


class _Reader:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def skip_whitespace(self) -> None:
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch in " \t\r\n,":
                self.pos += 1
            elif ch == ";":
                newline = text.find("\n", self.pos)
                self.pos = len(text) if newline < 0 else newline + 1
            else:
                break

    def read_value(self) -> Any:
        while True:
            value = self._read_any()
            if value is not _DISCARD:
                return value

    def _read_any(self) -> Any:
        self.skip_whitespace()
        if self.pos >= len(self.text):
            raise EdnError("unexpected end of input")
        ch = self.text[self.pos]
        if ch == "(":
            self.pos += 1
            return tuple(self._read_until(")"))
        if ch == "[":
            self.pos += 1
            return self._read_until("]")
        if ch == "{":
            self.pos += 1
            return self._read_map()
        if ch == '"':
            return self._read_string()
        if ch == "\\":
            return self._read_char()
        if ch == "#":
            return self._read_dispatch()
        if ch in ")]}":
            raise EdnError(f"unbalanced {ch!r} at offset {self.pos}")
        return self._read_atom()

    def _read_until(self, closer: str) -> List[Any]:
        items: List[Any] = []
        while True:
            self.skip_whitespace()
            if self.pos >= len(self.text):
                raise EdnError(f"expected {closer!r} before end of input")
            if self.text[self.pos] == closer:
                self.pos += 1
                return items
            value = self._read_any()
            if value is not _DISCARD:
                items.append(value)

    def _read_map(self) -> dict:
        items = self._read_until("}")
        if len(items) % 2:
            raise EdnError("map literal must contain an even number of forms")
        result = {}
        for index in range(0, len(items), 2):
            result[_freeze(items[index])] = items[index + 1]
        return result

    def _read_string(self) -> str:
        text = self.text
        self.pos += 1
        chunks: List[str] = []
        while True:
            if self.pos >= len(text):
                raise EdnError("unterminated string")
            ch = text[self.pos]
            if ch == '"':
                self.pos += 1
                return "".join(chunks)
            if ch == "\\":
                if self.pos + 1 >= len(text):
                    raise EdnError("unterminated string escape")
                esc = text[self.pos + 1]
                if esc == "u":
                    code = text[self.pos + 2:self.pos + 6]
                    try:
                        chunks.append(chr(int(code, 16)))
                    except ValueError as exc:
                        raise EdnError(f"invalid unicode escape {code!r}") from exc
                    self.pos += 6
                    continue
                if esc not in _STRING_ESCAPES:
                    raise EdnError(f"invalid string escape \\{esc}")
                chunks.append(_STRING_ESCAPES[esc])
                self.pos += 2
                continue
            chunks.append(ch)
            self.pos += 1

    def _read_token(self) -> str:
        start = self.pos
        text = self.text
        while self.pos < len(text) and text[self.pos] not in _DELIMITERS:
            self.pos += 1
        return text[start:self.pos]

    def _read_char(self) -> Char:
        self.pos += 1
        if self.pos >= len(self.text):
            raise EdnError("unterminated character literal")
        first = self.text[self.pos]
        self.pos += 1
        rest = self._read_token() if first not in _DELIMITERS else ""
        token = first + rest
        if len(token) == 1:
            return Char(token)
        if token in _NAMED_CHARS:
            return Char(_NAMED_CHARS[token])
        if token.startswith("u") and len(token) == 5:
            try:
                return Char(chr(int(token[1:], 16)))
            except ValueError:
                pass
        raise EdnError(f"invalid character literal \\{token}")

    def _read_dispatch(self) -> Any:
        text = self.text
        if self.pos + 1 >= len(text):
            raise EdnError("unexpected end of input after '#'")
        nxt = text[self.pos + 1]
        if nxt == "{":
            self.pos += 2
            return frozenset(_freeze(item) for item in self._read_until("}"))
        if nxt == "_":
            self.pos += 2
            self.read_value()
            return _DISCARD
        if nxt == "'":
            self.pos += 2
            return Symbol("#'" + self._read_token())
        if nxt == "#":
            self.pos += 2
            token = self._read_token()
            specials = {"Inf": float("inf"), "-Inf": float("-inf"), "NaN": float("nan")}
            if token not in specials:
                raise EdnError(f"unknown symbolic value ##{token}")
            return specials[token]
        self.pos += 1
        tag = self._read_token()
        if not tag:
            raise EdnError(f"invalid dispatch at offset {self.pos - 1}")
        return Tagged(tag, self.read_value())

    def _read_atom(self) -> Any:
        start = self.pos
        token = self._read_token()
        if not token:
            raise EdnError(f"unexpected character {self.text[start]!r} at offset {start}")
        if token == "nil":
            return None
        if token == "true":
            return True
        if token == "false":
            return False
        if token.startswith(":"):
            name = token[1:]
            if not name:
                raise EdnError(f"invalid keyword {token!r}")
            return Keyword(name)
        if _INT_RE.match(token):
            return int(token.rstrip("N"))
        if _RATIO_RE.match(token):
            return Fraction(token)
        if _FLOAT_RE.match(token):
            return float(token.rstrip("M"))
        if token[0].isdigit():
            raise EdnError(f"invalid number {token!r}")
        return Symbol(token)


def dumps(value: Any) -> str:
    """Print ``value`` in EDN notation."""
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\t", "\\t")
        return f'"{escaped}"'
    if isinstance(value, (Keyword, Symbol)):
        return str(value)
    if isinstance(value, Char):
        for name, ch in _NAMED_CHARS.items():
            if ch == value.value:
                return f"\\{name}"
        return f"\\{value.value}"
    if isinstance(value, Tagged):
        return f"#{value.tag} {dumps(value.value)}"
    if isinstance(value, Fraction):
        return f"{value.numerator}/{value.denominator}"
    if isinstance(value, float):
        if math.isnan(value):
            return "##NaN"
        if math.isinf(value):
            return "##Inf" if value > 0 else "##-Inf"
        return repr(value)
    if isinstance(value, int):
        return repr(value)
    if isinstance(value, tuple):
        return "(" + " ".join(dumps(item) for item in value) + ")"
    if isinstance(value, list):
        return "[" + " ".join(dumps(item) for item in value) + "]"
    if isinstance(value, (set, frozenset)):
        return "#{" + " ".join(dumps(item) for item in value) + "}"
    if isinstance(value, dict):
        pairs: List[Tuple[str, str]] = [(dumps(k), dumps(v)) for k, v in value.items()]
        return "{" + ", ".join(f"{k} {v}" for k, v in pairs) + "}"
    return str(value)


def to_text(value: Any) -> str:
    """``str`` semantics: strings verbatim, everything else printed."""
    if isinstance(value, str):
        return value
    return dumps(value)
