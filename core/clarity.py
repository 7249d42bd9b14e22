"""
clarity.py – decode Clarity value ``repr`` strings into plain Python values.

Stacks APIs serve ``print`` payloads as ``{"hex": ..., "repr": ...}``, where
``repr`` is the Clarity literal form, e.g.::

    (tuple (notification "token-metadata-update")
           (payload (tuple (contract-id 'SP000.my-nft) (token-class "nft")
                           (token-ids (list u1 u2)))))

Mapping:

* ``(tuple (k v) ...)`` -> ``dict``
* ``(list ...)``        -> ``list``
* ``u1`` / ``-1``       -> ``int``
* ``"..."`` / ``u"..."`` -> ``str``
* ``'SP..[.name]``      -> ``str`` (quote dropped)
* ``0x..``              -> ``bytes``
* ``true`` / ``false``  -> ``bool``
* ``none`` / ``(some v)`` -> ``None`` / ``v``
* ``(ok v)`` / ``(err v)`` -> ``{"ok": v}`` / ``{"err": v}``
"""

from __future__ import annotations

import re
from typing import Any, List, Tuple

__all__ = ["ClarityParseError", "parse_repr"]


class ClarityParseError(ValueError):
    """Raised when a repr string is not a valid Clarity literal."""


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<string>u?"(?:[^"\\]|\\.)*")
  | (?P<principal>'[0-9A-Za-z]+(?:\.[A-Za-z][A-Za-z0-9_\-]*)?)
  | (?P<buffer>0x[0-9a-fA-F]*)
  | (?P<uint>u[0-9]+)
  | (?P<int>-?[0-9]+)
  | (?P<symbol>[A-Za-z][A-Za-z0-9_\-!?]*)
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", '"': '"', "\\": "\\"}
_UNICODE_ESCAPE_RE = re.compile(r"\\u\{([0-9a-fA-F]+)\}")

# Clarity itself caps type nesting at 32
MAX_DEPTH = 32
UINT_MAX = 2 ** 128 - 1
INT_MIN, INT_MAX = -(2 ** 127), 2 ** 127 - 1

Token = Tuple[str, str]


def _tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise ClarityParseError(f"unexpected character {text[pos]!r} at {pos}")
        kind = m.lastgroup
        if kind != "ws":
            tokens.append((kind, m.group()))
        pos = m.end()
    return tokens


def _codepoint(m: "re.Match[str]") -> str:
    try:
        return chr(int(m.group(1), 16))
    except (ValueError, OverflowError):
        raise ClarityParseError(f"invalid unicode escape {m.group()!r}") from None


def _bounded(n: int, low: int, high: int, text: str) -> int:
    if not low <= n <= high:
        raise ClarityParseError(f"integer literal out of range: {text[:40]!r}")
    return n


def _unescape(body: str) -> str:
    body = _UNICODE_ESCAPE_RE.sub(_codepoint, body)
    out: List[str] = []
    chars = iter(body)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        if nxt not in _ESCAPES:
            raise ClarityParseError(f"invalid escape \\{nxt}")
        out.append(_ESCAPES[nxt])
    return "".join(out)


class _Parser:
    def __init__(self, tokens: List[Token]) -> None:
        self._tokens = tokens
        self._pos = 0
        self._depth = 0

    def _next(self) -> Token:
        if self._pos >= len(self._tokens):
            raise ClarityParseError("unexpected end of input")
        tok = self._tokens[self._pos]
        self._pos += 1
        return tok

    def _expect(self, kind: str) -> str:
        got, text = self._next()
        if got != kind:
            raise ClarityParseError(f"expected {kind}, got {text!r}")
        return text

    def _peek_kind(self) -> str:
        if self._pos >= len(self._tokens):
            raise ClarityParseError("unexpected end of input")
        return self._tokens[self._pos][0]

    def at_end(self) -> bool:
        return self._pos >= len(self._tokens)

    def value(self) -> Any:
        kind, text = self._next()
        if kind == "lparen":
            if self._depth >= MAX_DEPTH:
                raise ClarityParseError(f"nesting deeper than {MAX_DEPTH}")
            self._depth += 1
            try:
                return self._form()
            finally:
                self._depth -= 1
        try:
            return self._atom(kind, text)
        except (ValueError, OverflowError) as exc:
            if isinstance(exc, ClarityParseError):
                raise
            raise ClarityParseError(f"invalid literal {text[:40]!r}: {exc}") from None

    def _atom(self, kind: str, text: str) -> Any:
        if kind == "uint":
            return _bounded(int(text[1:]), 0, UINT_MAX, text)
        if kind == "int":
            return _bounded(int(text), INT_MIN, INT_MAX, text)
        if kind == "string":
            body = text[2:-1] if text.startswith("u") else text[1:-1]
            return _unescape(body)
        if kind == "principal":
            return text[1:]
        if kind == "buffer":
            return bytes.fromhex(text[2:])
        if kind == "symbol":
            if text == "true":
                return True
            if text == "false":
                return False
            if text == "none":
                return None
        raise ClarityParseError(f"unexpected token {text!r}")

    def _form(self) -> Any:
        head = self._expect("symbol")
        if head == "tuple":
            result = {}
            while self._peek_kind() != "rparen":
                self._expect("lparen")
                key = self._expect("symbol")
                if key in result:
                    raise ClarityParseError(f"duplicate tuple key {key!r}")
                result[key] = self.value()
                self._expect("rparen")
            self._expect("rparen")
            return result
        if head == "list":
            items = []
            while self._peek_kind() != "rparen":
                items.append(self.value())
            self._expect("rparen")
            return items
        if head in ("some", "ok", "err"):
            inner = self.value()
            self._expect("rparen")
            return inner if head == "some" else {head: inner}
        raise ClarityParseError(f"unknown form {head!r}")


def parse_repr(text: str) -> Any:
    """Parse a single Clarity literal; raises :class:`ClarityParseError`."""
    if not isinstance(text, str):
        raise ClarityParseError(f"expected str, got {type(text).__name__}")
    parser = _Parser(_tokenize(text))
    result = parser.value()
    if not parser.at_end():
        raise ClarityParseError("trailing input after value")
    return result
