"""Tests for shared helpers: ids, locks, logging filter, headers, formatting."""

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone

import pytest

from cli.utils import format_file_size, format_file_table, format_upload_date
from common.logging_config import SensitiveDataFilter
from common.types import ObjectDescriptor
from engine.locks import KeyedLock
from engine.utils import generate_object_id, is_valid_object_id
from server.reconcile_task import ReconcileTask
from server.utils import content_disposition


class TestObjectIds:

    def test_generated_ids_are_valid_and_unique(self):
        ids = {generate_object_id() for _ in range(1000)}

        assert len(ids) == 1000
        assert all(is_valid_object_id(i) for i in ids)

    @pytest.mark.parametrize("value", ["abc", "A-b_9", "x" * 128])
    def test_valid(self, value):
        assert is_valid_object_id(value)

    @pytest.mark.parametrize("value", ["", "x" * 129, "../etc", "a.b", "a b", "abc\n", None, 42])
    def test_invalid(self, value):
        assert not is_valid_object_id(value)


class TestKeyedLock:

    def test_same_key_serializes(self):
        locks = KeyedLock()
        inside = []
        overlap = []

        def worker():
            with locks.hold("k"):
                inside.append(1)
                if len(inside) > 1:
                    overlap.append(True)
                time.sleep(0.01)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlap == []
        assert locks.active_keys() == 0

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        acquired = threading.Event()

        def other():
            with locks.hold("b"):
                acquired.set()

        with locks.hold("a"):
            thread = threading.Thread(target=other)
            thread.start()
            assert acquired.wait(timeout=2)
            thread.join()

    def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            with locks.hold("k"):
                raise RuntimeError("fail")

        assert locks.active_keys() == 0


class TestSensitiveDataFilter:

    def make_record(self, msg, args=None):
        return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)

    def test_masks_hex_key(self):
        key_hex = "ab" * 32
        record = self.make_record(f"loaded {key_hex}")

        SensitiveDataFilter().filter(record)

        assert key_hex not in record.getMessage()
        assert "***MASKED***" in record.getMessage()

    def test_masks_assignment(self):
        record = self.make_record("MASTER_KEY=supersecret")

        SensitiveDataFilter().filter(record)

        assert "supersecret" not in record.getMessage()

    def test_masks_args(self):
        record = self.make_record("received %s", ("token=abc123",))

        SensitiveDataFilter().filter(record)

        assert "abc123" not in record.getMessage()

    def test_leaves_ordinary_messages(self):
        record = self.make_record("Stored object [object_id=1718040000123-9f86d081884c7d65]")

        SensitiveDataFilter().filter(record)

        assert record.getMessage() == "Stored object [object_id=1718040000123-9f86d081884c7d65]"


class TestObjectDescriptor:

    def test_dict_round_trip(self):
        descriptor = ObjectDescriptor(
            object_id="abc",
            original_name="a.txt",
            size=3,
            mime_type="text/plain",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            ciphertext_locator="abc.enc",
        )

        assert ObjectDescriptor.from_dict(descriptor.to_dict()) == descriptor

    def test_missing_mime_type_defaults(self):
        descriptor = ObjectDescriptor.from_dict({
            "id": "abc",
            "originalName": "a",
            "size": 1,
            "createdAt": "2024-01-01T00:00:00+00:00",
            "ciphertextLocator": "abc.enc",
        })

        assert descriptor.mime_type == "application/octet-stream"


class TestContentDisposition:

    def test_plain_name(self):
        assert content_disposition("report.pdf") == (
            "attachment; filename=\"report.pdf\"; filename*=UTF-8''report.pdf"
        )

    def test_header_injection_stripped(self):
        value = content_disposition('evil"\r\nSet-Cookie: x=1.txt')

        assert "\r" not in value and "\n" not in value
        assert 'filename="evil_Set-Cookie_ x_1.txt"' in value

    def test_non_ascii(self):
        value = content_disposition("日本.txt")

        assert 'filename="__.txt"' in value
        assert "filename*=UTF-8''%E6%97%A5%E6%9C%AC.txt" in value

    def test_empty_name(self):
        assert 'filename="download"' in content_disposition("")


class TestFormatting:

    @pytest.mark.parametrize("size, expected", [
        (0, "0 B"),
        (1023, "1023 B"),
        (1024, "1.00 KiB"),
        (1536, "1.50 KiB"),
        (5 * 1024 * 1024, "5.00 MiB"),
    ])
    def test_format_file_size(self, size, expected):
        assert format_file_size(size) == expected

    def test_format_upload_date_passthrough(self):
        assert format_upload_date("not a date") == "not a date"

    def test_format_file_table(self):
        table = format_file_table([
            {"id": "id-1", "size": 10, "uploadDate": "2024-01-01T00:00:00+00:00", "originalName": "a.txt"},
        ])

        header, row = table.splitlines()
        assert header.split() == ["ID", "SIZE", "UPLOADED", "NAME"]
        assert row.startswith("id-1")
        assert row.endswith("a.txt")


class TestReconcileTask:

    class FakeStorage:
        def __init__(self):
            self.calls = 0

        def reconcile(self):
            from engine.lifecycle import RecoveryReport
            self.calls += 1
            return RecoveryReport(orphaned_blobs=1)

    def test_run_cycle(self):
        storage = self.FakeStorage()

        asyncio.run(ReconcileTask(storage, interval_seconds=60).run_cycle())

        assert storage.calls == 1

    def test_disabled_interval_does_not_start(self):
        async def scenario():
            task = ReconcileTask(self.FakeStorage(), interval_seconds=0)
            await task.start()
            return task.running

        assert asyncio.run(scenario()) is False

    def test_start_and_stop(self):
        async def scenario():
            task = ReconcileTask(self.FakeStorage(), interval_seconds=3600)
            await task.start()
            started = task.running
            await task.stop()
            return started, task.running

        assert asyncio.run(scenario()) == (True, False)
