"""Unit tests for BlobStorage."""

from unittest import mock

import pytest

from engine.blob_storage import BlobStorage
from engine.exceptions import BlobMissingError, StorageIOError


@pytest.fixture
def blobs(tmp_path):
    return BlobStorage(tmp_path / "blobs")


class TestBlobStorage:

    def test_locator_for(self):
        assert BlobStorage.locator_for("abc-123") == "abc-123.enc"
        assert BlobStorage.object_id_from_locator("abc-123.enc") == "abc-123"

    def test_write_then_read(self, blobs):
        path = blobs.write_blob("obj.enc", b"ciphertext")

        assert path.endswith("obj.enc")
        assert blobs.read_blob("obj.enc") == b"ciphertext"
        assert blobs.blob_exists("obj.enc")
        assert blobs.get_blob_size("obj.enc") == 10

    def test_write_creates_directory(self, blobs):
        assert not blobs.directory.exists()
        blobs.write_blob("obj.enc", b"x")
        assert blobs.directory.is_dir()

    def test_read_missing_raises_blob_missing(self, blobs):
        with pytest.raises(BlobMissingError):
            blobs.read_blob("absent.enc")

    def test_delete_is_idempotent(self, blobs):
        blobs.write_blob("obj.enc", b"x")

        assert blobs.delete_blob("obj.enc") is True
        assert blobs.delete_blob("obj.enc") is False
        assert not blobs.blob_exists("obj.enc")
        assert blobs.get_blob_size("obj.enc") is None

    @pytest.mark.parametrize("locator", ["../x.enc", "a/b.enc", "x.json", ".x.enc", "", "x.enc\n"])
    def test_rejects_unsafe_locators(self, blobs, locator):
        with pytest.raises(StorageIOError):
            blobs.get_blob_path(locator)

    def test_failed_write_leaves_nothing(self, blobs):
        blobs.ensure_directory()
        with mock.patch("engine.blob_storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageIOError):
                blobs.write_blob("obj.enc", b"data")

        assert list(blobs.directory.iterdir()) == []

    def test_list_locators_skips_temporaries(self, blobs):
        blobs.write_blob("b.enc", b"2")
        blobs.write_blob("a.enc", b"1")
        (blobs.directory / ".a.enc.1234.tmp").write_bytes(b"partial")

        assert blobs.list_locators() == ["a.enc", "b.enc"]

    def test_purge_temporary_files(self, blobs):
        blobs.write_blob("keep.enc", b"1")
        (blobs.directory / ".keep.enc.1234.tmp").write_bytes(b"partial")
        (blobs.directory / ".other.enc.abcd.tmp").write_bytes(b"partial")

        assert blobs.purge_temporary_files() == 2
        assert [p.name for p in blobs.directory.iterdir()] == ["keep.enc"]

    def test_missing_directory(self, blobs):
        assert blobs.list_locators() == []
        assert blobs.purge_temporary_files() == 0
