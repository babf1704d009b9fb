"""Locale-aware slug generation for tag and page guids.

``slugify`` is a pure function: the locale is always passed in, never read
from process state, so the same title maps to the same guid everywhere.
"""
from __future__ import annotations

import re
import unicodedata

from server.src.modules.cms_errors import BadRequestError


SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

# Letters NFKD leaves alone.
_FOLD_MAP = str.maketrans({
    "ı": "i",
    "ß": "ss",
    "æ": "ae",
    "œ": "oe",
    "ø": "o",
    "đ": "d",
    "ł": "l",
    "þ": "th",
})

# Turkish casing: dotted and dotless I are separate letters.
_LOWER_MAP = {
    "tr": str.maketrans({"I": "ı", "İ": "i"}),
}


def locale_lower(text: str, locale: str = "tr") -> str:
    table = _LOWER_MAP.get((locale or "").lower())
    if table:
        text = text.translate(table)
    return text.lower()


def fold_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.translate(_FOLD_MAP))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def slugify(text: str, locale: str = "tr") -> str:
    slug = fold_diacritics(locale_lower((text or "").strip(), locale))
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    return slug


def validate_guid(value: str) -> str:
    guid = str(value or "").strip()
    if not guid or not SLUG_RE.match(guid):
        raise BadRequestError("Invalid guid")
    return guid
