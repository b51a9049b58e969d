"""
Content fingerprints used for unchanged-detection of listings and images.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping

from property_sync_service.exceptions import ContentHashError

# Listing columns covered by the fingerprint. Bookkeeping columns, flags and
# catalog links are not part of it
HASHED_FIELDS = (
    "title",
    "description",
    "short_description",
    "area",
    "built_area",
    "private_area",
    "land_area",
    "bedrooms",
    "bathrooms",
    "garages",
    "stratum",
    "sale_price",
    "rent_price",
    "admin_fee",
    "latitude",
    "longitude",
    "address",
)


def normalize_value(value: Any) -> Any:
    """
    Canonical form of a scalar for hashing and comparison.

    Numbers become strings without trailing zeros so that ``100``, ``100.0``
    and ``Decimal("100.00")`` all normalize to ``"100"``.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float, Decimal)):
        number = value if isinstance(value, Decimal) else Decimal(str(value))
        if not number.is_finite():
            raise ContentHashError(f"Cannot fingerprint non-finite number {value!r}")
        if number == number.to_integral_value():
            return str(int(number))
        return format(number.normalize(), "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise ContentHashError(f"Cannot fingerprint value of type {type(value).__name__}")


def fingerprint(fields: Mapping[str, Any], field_names=HASHED_FIELDS) -> str:
    """MD5 hex digest over the canonical JSON of ``field_names`` taken from ``fields``."""
    canonical = {name: normalize_value(fields.get(name)) for name in field_names}
    try:
        serialized = json.dumps(
            canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
    except (TypeError, ValueError) as e:
        raise ContentHashError(f"Cannot serialize listing fields: {e}") from e
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()


def fingerprint_bytes(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()
