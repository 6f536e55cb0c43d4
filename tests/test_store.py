import threading
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from quanphotos.core.models import ExtractedMetadata, NewPhoto
from quanphotos.index import PhotoRow, TagRow, photo_tags
from quanphotos.index import store as store_module


def _record(title: str = "Sunset departure", **overrides) -> NewPhoto:
    values = dict(
        user_id=7,
        title=title,
        file_path="/photos/2024/05/07/abc.jpg",
        thumbnail_path="/thumbnails/2024/05/07/abc",
        file_size=1234,
        metadata=ExtractedMetadata(
            camera_make="Canon",
            shutter_speed="1/500 s",
            iso=200,
            gps_latitude=51.47,
            gps_longitude=-0.45,
            taken_at=datetime(2024, 5, 7, 18, 0, tzinfo=timezone.utc),
        ),
    )
    values.update(overrides)
    return NewPhoto(**values)


def _count(photo_store, stmt) -> int:
    with photo_store._sessions() as session:
        return session.scalar(stmt)


def test_create_photo_with_tags_persists_everything(photo_store) -> None:
    photo_id = photo_store.create_photo_with_tags(_record(airline="BA"), ["a320", "heathrow"])

    photo = photo_store.load_photo(photo_id)
    assert photo is not None
    assert photo.title == "Sunset departure"
    assert photo.status == "pending"
    assert photo.airline == "BA"
    assert photo.registration is None
    assert photo.metadata.camera_make == "Canon"
    assert photo.metadata.shutter_speed == "1/500 s"
    assert photo.metadata.iso == 200
    assert photo.metadata.has_gps
    assert photo.metadata.lens_model is None
    assert sorted(photo.tags) == ["a320", "heathrow"]
    assert photo.created_at is not None


def test_tag_rows_are_shared_across_photos(photo_store) -> None:
    first = photo_store.create_photo_with_tags(_record("one"), ["airbus", "a320", "airbus"])
    second = photo_store.create_photo_with_tags(_record("two"), ["a320", "sunset"])

    assert _count(photo_store, select(func.count()).select_from(TagRow)) == 3
    assert _count(
        photo_store, select(func.count()).select_from(TagRow).where(TagRow.name == "a320")
    ) == 1
    a320_links = select(func.count()).select_from(photo_tags).join(
        TagRow, TagRow.id == photo_tags.c.tag_id
    ).where(TagRow.name == "a320")
    assert _count(photo_store, a320_links) == 2
    assert photo_store.load_photo(first).tags == ["a320", "airbus"]
    assert photo_store.load_photo(second).tags == ["a320", "sunset"]


def test_failed_tag_link_rolls_back_photo(photo_store, monkeypatch) -> None:
    def broken_link(session, photo_id, tag_id):
        raise IntegrityError("INSERT INTO photo_tags", {}, Exception("boom"))

    monkeypatch.setattr(store_module, "link_tag", broken_link)

    with pytest.raises(IntegrityError):
        photo_store.create_photo_with_tags(_record(), ["a320"])

    assert _count(photo_store, select(func.count()).select_from(PhotoRow)) == 0
    assert _count(photo_store, select(func.count()).select_from(TagRow)) == 0


def test_get_file_paths(photo_store) -> None:
    photo_id = photo_store.create_photo_with_tags(
        _record(raw_file_path="/raw/2024/05/07/abc.cr3"), []
    )
    paths = photo_store.get_file_paths(photo_id)
    assert paths.file_path == "/photos/2024/05/07/abc.jpg"
    assert paths.thumbnail_path == "/thumbnails/2024/05/07/abc"
    assert paths.raw_file_path == "/raw/2024/05/07/abc.cr3"
    assert photo_store.get_file_paths(photo_id + 100) is None


def test_update_keeps_values_that_are_not_provided(photo_store) -> None:
    photo_id = photo_store.create_photo_with_tags(
        _record(description="first light", airport="EGLL"), []
    )

    assert photo_store.update_photo_details(photo_id, title="Renamed", airline="Virgin")

    photo = photo_store.load_photo(photo_id)
    assert photo.title == "Renamed"
    assert photo.airline == "Virgin"
    assert photo.description == "first light"
    assert photo.airport == "EGLL"

    assert photo_store.update_photo_details(photo_id, description=None)
    assert photo_store.load_photo(photo_id).description == "first light"


def test_update_unknown_photo_or_column(photo_store) -> None:
    assert photo_store.update_photo_details(999, title="nothing") is False
    with pytest.raises(ValueError):
        photo_store.update_photo_details(1, file_path="/etc/passwd")


def test_delete_photo_removes_row_and_links(photo_store) -> None:
    photo_id = photo_store.create_photo_with_tags(_record(), ["a320"])

    paths = photo_store.delete_photo(photo_id)

    assert paths.file_path == "/photos/2024/05/07/abc.jpg"
    assert photo_store.load_photo(photo_id) is None
    assert _count(photo_store, select(func.count()).select_from(photo_tags)) == 0
    assert _count(photo_store, select(func.count()).select_from(TagRow)) == 1
    assert photo_store.delete_photo(photo_id) is None


def test_concurrent_uploads_share_tag_rows(photo_store) -> None:
    workers = 8
    barrier = threading.Barrier(workers)
    photo_ids: list[int] = []
    errors: list[BaseException] = []

    def create(index: int) -> None:
        barrier.wait()
        try:
            photo_ids.append(
                photo_store.create_photo_with_tags(_record(f"photo {index}"), ["a320", "heathrow"])
            )
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=create, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(photo_ids) == workers
    assert _count(photo_store, select(func.count()).select_from(TagRow)) == 2
    assert _count(photo_store, select(func.count()).select_from(photo_tags)) == 2 * workers
    for photo_id in photo_ids:
        assert photo_store.load_photo(photo_id).tags == ["a320", "heathrow"]
