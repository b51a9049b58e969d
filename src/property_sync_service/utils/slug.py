"""
URL slugs for listings.
"""

import re
import unicodedata
from typing import Optional


def clean_slug_text(text: str) -> str:
    """Whitespace to dashes, accents folded, anything else non-alphanumeric dropped."""
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    dashed = re.sub(r"\s+", "-", folded.strip())
    cleaned = re.sub(r"[^A-Za-z0-9-]", "", dashed)
    return re.sub(r"-{2,}", "-", cleaned).strip("-")


def generate_slug(ref: int, sync_code: Optional[str] = None) -> str:
    if sync_code:
        cleaned = clean_slug_text(sync_code)
        if cleaned:
            return f"Inmueble-{cleaned}"
    return f"inmueble-scv-{ref}"
