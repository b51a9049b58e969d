"""
Tests for image slot planning, which needs neither a database nor a network.
"""

import hashlib

import pytest

from property_sync_service.models.image import ListingImage
from property_sync_service.schemas.listing_payload import ImagePayload
from property_sync_service.services.image_sync import (
    ImageSyncEngine,
    image_relative_path,
    url_stem,
)


@pytest.fixture
def image_engine(test_settings):
    return ImageSyncEngine(None, None, test_settings)


def _images(*urls):
    return [ImagePayload(url=url) for url in urls]


def _persisted(image_id, url, ordinal, local_path="1/x.jpg"):
    return ListingImage(
        id=image_id, listing_id=1, original_url=url, ordinal=ordinal, local_path=local_path
    )


def _all_files_exist(path):
    return True


class TestPaths:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("http://img.test/fotos/casa%20linda.JPG?x=1", "casa-linda"),
            ("http://img.test/", "image"),
            ("http://img.test/a/ñandú.png", "and"),
            ("http://[bad/c.jpg", "c"),
        ],
    )
    def test_url_stem(self, url, expected):
        assert url_stem(url) == expected

    def test_relative_path(self):
        assert image_relative_path(261, 0, "http://img.test/a.jpg") == "261/261_0_a.jpg"
        assert (
            image_relative_path(261, 2, "http://img.test/a.jpg", "_abcd1234")
            == "261/261_2_a_abcd1234.jpg"
        )


class TestReconcile:
    def test_new_listing_downloads_everything(self, image_engine):
        plan = image_engine.reconcile(1, _images("http://i/a.jpg", "http://i/b.jpg"), [])
        assert [(slot.url, slot.ordinal, slot.is_primary) for slot in plan.to_download] == [
            ("http://i/a.jpg", 0, True),
            ("http://i/b.jpg", 1, False),
        ]
        assert plan.to_update == []
        assert plan.to_delete == []

    def test_unchanged_set_downloads_nothing(self, image_engine):
        persisted = [_persisted(10, "http://i/a.jpg", 0), _persisted(11, "http://i/b.jpg", 1)]
        plan = image_engine.reconcile(
            1, _images("http://i/a.jpg", "http://i/b.jpg"), persisted, _all_files_exist
        )
        assert plan.to_download == []
        assert [slot.image_id for slot in plan.to_update] == [10, 11]

    def test_removed_url_is_deleted(self, image_engine):
        persisted = [_persisted(10, "http://i/a.jpg", 0), _persisted(11, "http://i/b.jpg", 1)]
        plan = image_engine.reconcile(1, _images("http://i/a.jpg"), persisted, _all_files_exist)
        assert [image.id for image in plan.to_delete] == [11]

    def test_reorder_moves_primary(self, image_engine):
        persisted = [_persisted(10, "http://i/a.jpg", 0), _persisted(11, "http://i/b.jpg", 1)]
        plan = image_engine.reconcile(
            1, _images("http://i/b.jpg", "http://i/a.jpg"), persisted, _all_files_exist
        )
        by_id = {slot.image_id: slot for slot in plan.to_update}
        assert (by_id[11].ordinal, by_id[11].is_primary) == (0, True)
        assert (by_id[10].ordinal, by_id[10].is_primary) == (1, False)

    def test_duplicate_urls_take_one_slot(self, image_engine):
        plan = image_engine.reconcile(
            1, _images("http://i/a.jpg", "http://i/a.jpg", "http://i/b.jpg"), []
        )
        assert [(slot.url, slot.ordinal) for slot in plan.to_download] == [
            ("http://i/a.jpg", 0),
            ("http://i/b.jpg", 1),
        ]

    def test_source_primary_marker_is_ignored(self, image_engine):
        images = [
            ImagePayload(url="http://i/a.jpg"),
            ImagePayload(url="http://i/b.jpg", es_principal=True),
        ]
        plan = image_engine.reconcile(1, images, [])
        assert [slot.is_primary for slot in plan.to_download] == [True, False]

    def test_missing_file_is_downloaded_again(self, image_engine):
        persisted = [_persisted(10, "http://i/a.jpg", 0)]
        plan = image_engine.reconcile(
            1, _images("http://i/a.jpg"), persisted, lambda path: False
        )
        assert plan.to_update == []
        assert len(plan.to_download) == 1
        assert plan.to_download[0].image_id == 10

    def test_empty_set_deletes_everything(self, image_engine):
        persisted = [_persisted(10, "http://i/a.jpg", 0)]
        plan = image_engine.reconcile(1, [], persisted, _all_files_exist)
        assert [image.id for image in plan.to_delete] == [10]
        assert plan.slots == []


class TestPrimaryValidation:
    def test_ordinal_zero_is_primary(self):
        image = ListingImage(original_url="http://i/a.jpg", ordinal=0, is_primary=False)
        assert image.is_primary is True

    def test_other_ordinals_follow_flag(self):
        image = ListingImage(original_url="http://i/a.jpg", ordinal=3, is_primary=False)
        assert image.is_primary is False

    def test_url_digest_follows_original_url(self):
        image = ListingImage(original_url="http://i/a.jpg", ordinal=1)
        assert image.url_hash == hashlib.md5(b"http://i/a.jpg").hexdigest()
        image.original_url = "http://i/b.jpg"
        assert image.url_hash == hashlib.md5(b"http://i/b.jpg").hexdigest()
