from __future__ import annotations

import re
import secrets
import unicodedata


_NON_SLUG_CHARS = re.compile(r"[^\w\s-]+", re.UNICODE)
_SEPARATORS = re.compile(r"[\s_-]+")


def slugify(text: str) -> str:
    """
    URL-friendly slug: "Vape Shop Manila" -> "vape-shop-manila".

    Diacritics are stripped; letters, digits and hyphens are kept.
    """
    normalized = unicodedata.normalize("NFKD", text or "")
    normalized = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    slug = _NON_SLUG_CHARS.sub("", normalized.lower().strip())
    slug = _SEPARATORS.sub("-", slug)
    return slug.strip("-")


def unique_slug(base: str, exists, suffix_bytes: int = 3) -> str:
    """
    Return base if free, else base with a random hex suffix.

    exists: callable(slug) -> bool
    """
    slug = base or "item"
    while exists(slug):
        slug = f"{base or 'item'}-{secrets.token_hex(suffix_bytes)}"
    return slug
