"""Tests for upload checks and on-disk attachment storage."""

import os
import time

import pytest

from core.errors import InvalidInput
from services.attachments import AttachmentStore, Upload, check_upload


class TestCheckUpload:
    @pytest.mark.parametrize("mime_type", ["image/jpeg", "image/png", "image/gif", "text/plain", "application/pdf"])
    def test_allowed_types(self, mime_type):
        check_upload(Upload("file", b"data", mime_type), max_file_size=100)

    def test_disallowed_type(self):
        with pytest.raises(InvalidInput):
            check_upload(Upload("page.html", b"<html>", "text/html"), max_file_size=100)

    def test_too_large(self):
        with pytest.raises(InvalidInput):
            check_upload(Upload("big.png", b"x" * 101, "image/png"), max_file_size=100)

    def test_empty(self):
        with pytest.raises(InvalidInput):
            check_upload(Upload("empty.txt", b"", "text/plain"), max_file_size=100)


class TestAttachmentStore:
    @pytest.mark.asyncio
    async def test_save_and_remove(self, tmp_path):
        store = AttachmentStore(tmp_path)
        stored = await store.save(Upload("../../etc/passwd.txt", b"hello", "text/plain"))

        path = store.path_for(stored.filename)
        assert path.parent == tmp_path
        assert path.read_bytes() == b"hello"
        assert stored.file_size == 5

        await store.remove(stored.filename)
        assert not path.exists()
        # Removing twice is harmless
        await store.remove(stored.filename)

    def test_path_traversal_rejected(self, tmp_path):
        store = AttachmentStore(tmp_path)
        with pytest.raises(InvalidInput):
            store.path_for("../secret")

    def test_remove_older_than(self, tmp_path):
        store = AttachmentStore(tmp_path)
        old = tmp_path / "attachment-old.txt"
        new = tmp_path / "attachment-new.txt"
        old.write_text("old")
        new.write_text("new")
        week_ago = time.time() - 7 * 24 * 3600
        os.utime(old, (week_ago, week_ago))

        assert store.remove_older_than(time.time() - 24 * 3600) == 1
        assert not old.exists()
        assert new.exists()

    def test_remove_older_than_missing_dir(self, tmp_path):
        assert AttachmentStore(tmp_path / "missing").remove_older_than(time.time()) == 0
