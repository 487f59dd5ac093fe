"""
content/slugs.py -- URL slug generation.

Titles are mostly Vietnamese, so diacritics are folded to ASCII before the
slug is built ("Dự án Đà Nẵng" -> "du-an-da-nang"). NFKD handles the combining
marks; the stroked d has no decomposition and is mapped by hand.
"""

import re
import unicodedata

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

MAX_SLUG_LENGTH = 200


def slugify(value: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Return a lowercase, hyphen-separated ASCII slug for value.

    Returns "item" when nothing usable is left (e.g. a title of only symbols).
    """
    value = value.replace("đ", "d").replace("Đ", "D")
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM.sub("-", value.lower()).strip("-")
    slug = slug[:max_length].rstrip("-")
    return slug or "item"
