"""Tests for the metadata catalog backends."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from common.types import ObjectDescriptor
from engine.catalog import InMemoryCatalog, JsonFileCatalog, sort_descriptors
from engine.exceptions import DuplicateIdError, NotFoundError, StorageIOError

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_descriptor(object_id: str, offset_seconds: int = 0, **overrides) -> ObjectDescriptor:
    fields = dict(
        object_id=object_id,
        original_name=f"{object_id}.txt",
        size=10,
        mime_type="text/plain",
        created_at=BASE_TIME + timedelta(seconds=offset_seconds),
        ciphertext_locator=f"{object_id}.enc",
    )
    fields.update(overrides)
    return ObjectDescriptor(**fields)


@pytest.fixture(params=["json", "memory"])
def catalog(request, tmp_path):
    """Each contract test runs against both backends."""
    if request.param == "json":
        return JsonFileCatalog(tmp_path / "metadata")
    return InMemoryCatalog()


class TestCatalogContract:
    """Behaviour shared by every catalog backend."""

    def test_put_then_get(self, catalog):
        descriptor = make_descriptor("a1")
        catalog.put(descriptor)

        assert catalog.get("a1") == descriptor
        assert catalog.exists("a1")

    def test_get_unknown_raises_not_found(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.get("missing")

    def test_duplicate_put_rejected(self, catalog):
        catalog.put(make_descriptor("dup"))

        with pytest.raises(DuplicateIdError):
            catalog.put(make_descriptor("dup", original_name="other.txt"))

        assert catalog.get("dup").original_name == "dup.txt"

    def test_delete_then_get_raises_not_found(self, catalog):
        catalog.put(make_descriptor("gone"))
        catalog.delete("gone")

        with pytest.raises(NotFoundError):
            catalog.get("gone")
        assert not catalog.exists("gone")

    def test_delete_unknown_raises_not_found(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.delete("never-stored")

    def test_list_empty(self, catalog):
        assert catalog.list() == []

    def test_list_newest_first(self, catalog):
        catalog.put(make_descriptor("old", 0))
        catalog.put(make_descriptor("new", 20))
        catalog.put(make_descriptor("mid", 10))

        assert [d.object_id for d in catalog.list()] == ["new", "mid", "old"]

    def test_list_ties_broken_by_id(self, catalog):
        for object_id in ["c", "a", "b"]:
            catalog.put(make_descriptor(object_id, 0))

        assert [d.object_id for d in catalog.list()] == ["a", "b", "c"]

    def test_list_omits_deleted(self, catalog):
        catalog.put(make_descriptor("keep"))
        catalog.put(make_descriptor("drop", 1))
        catalog.delete("drop")

        assert [d.object_id for d in catalog.list()] == ["keep"]

    def test_ids(self, catalog):
        catalog.put(make_descriptor("x"))
        catalog.put(make_descriptor("y"))

        assert sorted(catalog.ids()) == ["x", "y"]

    @pytest.mark.parametrize("bad_id", ["../escape", "a/b", "", "with space", "x" * 129, "id\n"])
    def test_invalid_id_rejected_on_put(self, catalog, bad_id):
        with pytest.raises(ValueError):
            catalog.put(make_descriptor(bad_id, ciphertext_locator="ok.enc"))

        assert catalog.ids() == []

    @pytest.mark.parametrize("bad_id", ["../escape", "a/b", ""])
    def test_invalid_id_is_not_found(self, catalog, bad_id):
        with pytest.raises(NotFoundError):
            catalog.get(bad_id)
        with pytest.raises(NotFoundError):
            catalog.delete(bad_id)
        assert not catalog.exists(bad_id)


class TestJsonFileCatalog:
    """JSON-file backend specifics."""

    def test_record_format(self, tmp_path):
        catalog = JsonFileCatalog(tmp_path)
        catalog.put(make_descriptor("rec", original_name="Résumé.pdf"))

        data = json.loads((tmp_path / "rec.json").read_text(encoding="utf-8"))
        assert data["id"] == "rec"
        assert data["originalName"] == "Résumé.pdf"
        assert data["ciphertextLocator"] == "rec.enc"
        assert datetime.fromisoformat(data["createdAt"]) == BASE_TIME

    def test_records_survive_reopen(self, tmp_path):
        JsonFileCatalog(tmp_path).put(make_descriptor("persist"))

        assert JsonFileCatalog(tmp_path).get("persist").object_id == "persist"

    def test_no_temporary_files_left(self, tmp_path):
        catalog = JsonFileCatalog(tmp_path)
        catalog.put(make_descriptor("clean"))

        assert [p.name for p in tmp_path.iterdir()] == ["clean.json"]

    def test_corrupt_record_raises_on_get(self, tmp_path):
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        catalog = JsonFileCatalog(tmp_path)

        with pytest.raises(StorageIOError):
            catalog.get("broken")

    def test_corrupt_record_skipped_in_list(self, tmp_path):
        catalog = JsonFileCatalog(tmp_path)
        catalog.put(make_descriptor("good"))
        (tmp_path / "broken.json").write_text('{"id": "broken"}', encoding="utf-8")

        assert [d.object_id for d in catalog.list()] == ["good"]

    def test_hidden_temporary_files_ignored(self, tmp_path):
        catalog = JsonFileCatalog(tmp_path)
        catalog.put(make_descriptor("real"))
        (tmp_path / ".real.json.abcd.tmp").write_text("{}", encoding="utf-8")
        (tmp_path / ".hidden.json").write_text("{}", encoding="utf-8")

        assert catalog.ids() == ["real"]

    def test_missing_directory_lists_empty(self, tmp_path):
        assert JsonFileCatalog(tmp_path / "absent").list() == []

    def test_naive_timestamp_read_as_utc(self, tmp_path):
        record = make_descriptor("naive").to_dict()
        record["createdAt"] = "2024-06-01T12:00:00"
        (tmp_path / "naive.json").write_text(json.dumps(record), encoding="utf-8")

        assert JsonFileCatalog(tmp_path).get("naive").created_at == BASE_TIME


class TestSortDescriptors:

    def test_mixed_order(self):
        descriptors = [
            make_descriptor("b", 5),
            make_descriptor("a", 5),
            make_descriptor("z", 1),
            make_descriptor("c", 9),
        ]

        assert [d.object_id for d in sort_descriptors(descriptors)] == ["c", "a", "b", "z"]
