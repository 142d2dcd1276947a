"""Text helpers shared by the catalog."""

import re
import unicodedata

_NON_SLUG = re.compile(r"[^a-z0-9\s_-]")
_SEPARATORS = re.compile(r"[\s_-]+")


def generate_slug(text: str) -> str:
    """URL slug: lower-case ASCII words joined by single hyphens.

    >>> generate_slug("Cà Phê Sữa Đá -- Special!")
    'ca-phe-sua-da-special'
    """
    value = text.strip().lower().replace("đ", "d")
    value = unicodedata.normalize("NFKD", value)
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    value = _NON_SLUG.sub("", value)
    value = _SEPARATORS.sub("-", value)
    return value.strip("-")
