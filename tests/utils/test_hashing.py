"""
Tests for listing fingerprints and value normalization.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from property_sync_service.exceptions import ContentHashError
from property_sync_service.utils.hashing import (
    HASHED_FIELDS,
    fingerprint,
    fingerprint_bytes,
    normalize_value,
)


class TestNormalizeValue:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (100, "100"),
            (100.0, "100"),
            (Decimal("100.00"), "100"),
            (Decimal("85.50"), "85.5"),
            ("texto", "texto"),
            (None, None),
            (True, True),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_value(value) == expected

    def test_datetime_is_isoformat(self):
        assert normalize_value(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05"

    def test_non_finite_number_raises(self):
        with pytest.raises(ContentHashError):
            normalize_value(float("nan"))

    def test_unknown_type_raises(self):
        with pytest.raises(ContentHashError):
            normalize_value(object())


class TestFingerprint:
    def test_equal_numbers_in_different_forms_hash_equal(self):
        assert fingerprint({"area": 100, "sale_price": Decimal("5.00")}) == fingerprint(
            {"area": Decimal("100.00"), "sale_price": 5}
        )

    def test_key_order_does_not_matter(self):
        first = {"title": "Casa", "address": "Calle 1"}
        second = {"address": "Calle 1", "title": "Casa"}
        assert fingerprint(first) == fingerprint(second)

    def test_hashed_field_change_changes_hash(self):
        assert fingerprint({"sale_price": 100}) != fingerprint({"sale_price": 150})

    def test_fields_outside_fingerprint_are_ignored(self):
        assert "city_id" not in HASHED_FIELDS
        assert fingerprint({"title": "Casa", "city_id": 1}) == fingerprint(
            {"title": "Casa", "city_id": 2}
        )

    def test_digest_is_md5_hex(self):
        digest = fingerprint({})
        assert len(digest) == 32
        int(digest, 16)

    def test_unserializable_value_raises(self):
        with pytest.raises(ContentHashError):
            fingerprint({"title": ["not", "a", "scalar"]})

    def test_fingerprint_bytes(self):
        assert fingerprint_bytes(b"abc") == "900150983cd24fb0d6963f7d28e17f72"
