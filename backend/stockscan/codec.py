# Overview: Encode/decode boundary between in-memory code lists and delimited strings.

"""
Unit codes and size tags are persisted as single delimited strings
(e.g. "A1,A2,A3" and "64GB,,128GB"). Everywhere else they are ordered
lists. This module is the only place that knows about the delimiter.

Rules:
- No escaping: an element containing the delimiter is rejected at encode time.
- Codes are stripped and empty codes are dropped on encode.
- Tags are kept positionally (empty strings allowed) and padded/truncated to
  the number of codes so the two lists stay parallel.
"""

from __future__ import annotations

from typing import Iterable, Sequence


DEFAULT_DELIMITER = ","


class CodecError(ValueError):
    """Raised when a list element cannot be represented in delimited form."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _check_element(value: str, delimiter: str, kind: str) -> None:
    if delimiter in value:
        raise CodecError(
            f"{kind} {value!r} must not contain {delimiter!r}",
            details={"value": value, "delimiter": delimiter},
        )


def decode_list(raw: str | None, delimiter: str = DEFAULT_DELIMITER, *, keep_empty: bool = False) -> list[str]:
    """Split a stored string into a list of stripped elements."""
    if not raw:
        return []
    items = [item.strip() for item in raw.split(delimiter)]
    if keep_empty:
        return items
    return [item for item in items if item]


def encode_codes(codes: Iterable[str], delimiter: str = DEFAULT_DELIMITER) -> str | None:
    """Join non-empty codes; None when there are none."""
    cleaned = []
    for code in codes:
        code = (code or "").strip()
        if not code:
            continue
        _check_element(code, delimiter, "code")
        cleaned.append(code)
    return delimiter.join(cleaned) or None


def encode_pairs(
    codes: Sequence[str],
    tags: Sequence[str],
    delimiter: str = DEFAULT_DELIMITER,
) -> tuple[str | None, str | None]:
    """
    Encode parallel code/tag lists, dropping slots whose code is empty.

    Returns (codes_string, tags_string). tags_string is None when every
    surviving tag is blank.
    """
    kept_codes: list[str] = []
    kept_tags: list[str] = []
    for i, code in enumerate(codes):
        code = (code or "").strip()
        if not code:
            continue
        tag = (tags[i] if i < len(tags) else "") or ""
        tag = tag.strip()
        _check_element(code, delimiter, "code")
        _check_element(tag, delimiter, "tag")
        kept_codes.append(code)
        kept_tags.append(tag)

    codes_str = delimiter.join(kept_codes) or None
    tags_str = delimiter.join(kept_tags) if any(kept_tags) else None
    return codes_str, tags_str


def decode_pairs(
    codes_raw: str | None,
    tags_raw: str | None,
    delimiter: str = DEFAULT_DELIMITER,
) -> tuple[list[str], list[str]]:
    """Decode stored code/tag strings into parallel lists of equal length."""
    raw_codes = decode_list(codes_raw, delimiter, keep_empty=True)
    raw_tags = decode_list(tags_raw, delimiter, keep_empty=True)

    codes: list[str] = []
    tags: list[str] = []
    for i, code in enumerate(raw_codes):
        if not code:
            continue
        codes.append(code)
        tags.append(raw_tags[i] if i < len(raw_tags) else "")
    return codes, tags
