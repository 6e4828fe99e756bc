"""Helpers for reading recipe JSON out of free-form model output."""
from __future__ import annotations

import json
import re
from typing import Any

_URL_RE = re.compile(r"https?://[^\s\"']+")
_JSON_STRING_RE = re.compile(r'"(?:[^"\\]|\\.)*"')
_MIXED_RE = re.compile(r"(?<![\d/.])(\d+)\s+(\d+)\s*/\s*(\d+)(?![\d/])")
_FRACTION_RE = re.compile(r"(?<![\d/.])(\d+)\s*/\s*(\d+)(?![\d/])")
_RANGE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:-|–|to)\s*(\d+(?:\.\d+)?)\s*$")
_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")

UNICODE_FRACTIONS = {
    "½": 0.5,
    "⅓": 1 / 3,
    "⅔": 2 / 3,
    "¼": 0.25,
    "¾": 0.75,
    "⅕": 0.2,
    "⅖": 0.4,
    "⅗": 0.6,
    "⅘": 0.8,
    "⅙": 1 / 6,
    "⅚": 5 / 6,
    "⅛": 0.125,
    "⅜": 0.375,
    "⅝": 0.625,
    "⅞": 0.875,
}

WORD_AMOUNTS = {
    "three quarters": 0.75,
    "three-quarters": 0.75,
    "a half": 0.5,
    "half": 0.5,
    "a quarter": 0.25,
    "quarter": 0.25,
    "one": 1.0,
    "a": 1.0,
    "an": 1.0,
    "two": 2.0,
    "three": 3.0,
    "four": 4.0,
    "five": 5.0,
    "six": 6.0,
    "dozen": 12.0,
}


def _decimal(value: float) -> str:
    return f"{round(value, 4):g}"


def _decimalize(text: str) -> str:
    urls: list[str] = []

    def _stash(match: re.Match[str]) -> str:
        urls.append(match.group(0))
        return f"\x00{len(urls) - 1}\x00"

    protected = _URL_RE.sub(_stash, text)
    protected = _MIXED_RE.sub(
        lambda m: _decimal(int(m.group(1)) + int(m.group(2)) / int(m.group(3))) if int(m.group(3)) else m.group(0),
        protected,
    )
    protected = _FRACTION_RE.sub(
        lambda m: _decimal(int(m.group(1)) / int(m.group(2))) if int(m.group(2)) else m.group(0),
        protected,
    )
    return re.sub(r"\x00(\d+)\x00", lambda m: urls[int(m.group(1))], protected)


def sanitize_fractions(text: str) -> str:
    """Replace bare fractions like `1/2` or `1 1/2` with decimals outside quoted strings and URLs."""
    parts: list[str] = []
    last = 0
    for match in _JSON_STRING_RE.finditer(text):
        parts.append(_decimalize(text[last : match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(_decimalize(text[last:]))
    return "".join(parts)


def _candidate_objects(text: str):
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    yield text[start : idx + 1]
                    break
        start = text.find("{", start + 1)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first well-formed JSON object embedded in prose or a markdown fence."""
    if not text:
        return None
    fenced = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    sources = [fenced.group(1)] if fenced else []
    sources.append(text)
    for source in sources:
        for candidate in _candidate_objects(source):
            for attempt in (candidate, sanitize_fractions(candidate)):
                try:
                    parsed = json.loads(attempt)
                except json.JSONDecodeError:
                    continue
                if isinstance(parsed, dict):
                    return parsed
    return None


def parse_amount(value: Any) -> float | None:
    """Coerce a quantity (number, fraction text, unicode fraction, word, range) to a float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower()
    if not text:
        return None

    for glyph, amount in UNICODE_FRACTIONS.items():
        if glyph in text:
            whole = text.replace(glyph, " ").strip()
            base = _NUMBER_RE.match(whole)
            return round((float(base.group(1)) if base else 0.0) + amount, 4)

    mixed = _MIXED_RE.search(text)
    if mixed and int(mixed.group(3)):
        return round(int(mixed.group(1)) + int(mixed.group(2)) / int(mixed.group(3)), 4)
    fraction = _FRACTION_RE.search(text)
    if fraction and int(fraction.group(2)):
        return round(int(fraction.group(1)) / int(fraction.group(2)), 4)

    ranged = _RANGE_RE.match(text)
    if ranged:
        # Ranges resolve to their lower bound.
        return float(ranged.group(1))

    number = _NUMBER_RE.match(text)
    if number:
        return float(number.group(1))

    for word, amount in WORD_AMOUNTS.items():
        if text == word or text.startswith(word + " "):
            return amount
    return None
