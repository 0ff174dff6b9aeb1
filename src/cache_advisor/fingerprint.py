"""Statement fingerprinting.

Two pure transforms over raw SQL text:

  fingerprint(text)              -> Fingerprint(hash, canonical) used for grouping
  normalize(text, bound_values)  -> display text with placeholders replaced by
                                    type tags (NULL, :number, :string, :value)

Both are regex passes that never raise; constructs the patterns do not match
(unbalanced quotes, stray parentheses) are left in place.
"""
from __future__ import annotations
import hashlib
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, NamedTuple

_NUMBER_RE = re.compile(r"\b\d+(?:\.\d+)?\b")
_SQUOTE_RE = re.compile(r"'[^']*'")
_DQUOTE_RE = re.compile(r'"[^"]*"')
_IN_LIST_RE = re.compile(r"\bin\s*\([^)]+\)", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")

# Single left-to-right pass for display text. Alternation order matters:
# quoted literals are consumed first so placeholders/numbers inside them are untouched.
_DISPLAY_TOKEN_RE = re.compile(
    r"(?P<squote>'[^']*')"
    r"|(?P<dquote>\"[^\"]*\")"
    r"|(?P<param>%\((?P<pyname>\w+)\)s|%s|\?|(?<![:\w]):(?P<name>[A-Za-z_]\w*|\d+))"
    r"|(?P<number>\b\d+(?:\.\d+)?\b)"
)
_NUMERIC_STR_RE = re.compile(r"\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*")

_MISSING = object()


class Fingerprint(NamedTuple):
    hash: str
    canonical: str


def canonicalize(raw_text: str) -> str:
    text = raw_text or ""
    text = _NUMBER_RE.sub("?", text)
    text = _SQUOTE_RE.sub("?", text)
    text = _DQUOTE_RE.sub("?", text)
    text = _IN_LIST_RE.sub("IN (?)", text)
    return _WS_RE.sub(" ", text).strip().lower()


def fingerprint(raw_text: str) -> Fingerprint:
    canonical = canonicalize(raw_text)
    digest = hashlib.md5(canonical.encode("utf-8")).hexdigest()
    return Fingerprint(digest, canonical)


def type_tag(value: Any) -> str:
    """Tag used in display text for a bound value."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return ":value"
    if isinstance(value, (int, float, Decimal)):
        return ":number"
    if isinstance(value, str):
        return ":number" if _NUMERIC_STR_RE.fullmatch(value) else ":string"
    return ":value"


class _Binder:
    """Resolves placeholders against positional or named bound values."""

    def __init__(self, bound_values: Any):
        self._named: Mapping | None = bound_values if isinstance(bound_values, Mapping) else None
        self._positional: list = []
        if self._named is None and bound_values is not None and not isinstance(bound_values, (str, bytes)):
            try:
                self._positional = list(bound_values)
            except TypeError:  # scalar passed where a sequence was expected
                pass
        self._cursor = 0

    def _next(self) -> Any:
        if self._cursor >= len(self._positional):
            return _MISSING
        value = self._positional[self._cursor]
        self._cursor += 1
        return value

    def resolve(self, match: re.Match) -> Any:
        name = match.group("pyname") or match.group("name")
        if self._named is not None:
            if name is None or name not in self._named:
                return _MISSING
            return self._named[name]
        if name is not None and name.isdigit():
            idx = int(name) - 1
            if 0 <= idx < len(self._positional):
                return self._positional[idx]
            return _MISSING
        return self._next()


def normalize(raw_text: str, bound_values: Any = None) -> str:
    text = raw_text or ""
    binder = _Binder(bound_values)
    parts: list[str] = []
    pos = 0
    for m in _DISPLAY_TOKEN_RE.finditer(text):
        parts.append(text[pos:m.start()].lower())
        if m.group("squote") is not None:
            parts.append(":string")
        elif m.group("dquote") is not None:
            parts.append(m.group("dquote"))
        elif m.group("param") is not None:
            value = binder.resolve(m)
            parts.append(m.group("param") if value is _MISSING else type_tag(value))
        elif m.group("number") is not None:
            parts.append(":number")
        pos = m.end()
    parts.append(text[pos:].lower())
    return _WS_RE.sub(" ", "".join(parts)).strip()
