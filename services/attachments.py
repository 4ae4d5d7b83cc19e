"""On-disk storage for report attachments."""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from core.errors import InvalidInput
from core.security import generate_token

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "text/plain", "application/pdf"})


@dataclass(frozen=True)
class Upload:
    """A file received from a client, already read into memory."""

    original_name: str
    content: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class StoredFile:
    filename: str
    original_name: str
    file_size: int
    mime_type: str


def check_upload(upload: Upload, max_file_size: int) -> None:
    """Reject files with a disallowed type or size."""
    if upload.mime_type not in ALLOWED_MIME_TYPES:
        raise InvalidInput("File type not allowed: only images, text files and PDFs are accepted")
    if upload.size > max_file_size:
        raise InvalidInput(f"File size too large: maximum is {max_file_size} bytes")
    if upload.size == 0:
        raise InvalidInput("Uploaded file is empty")


def _safe_suffix(original_name: str) -> str:
    suffix = Path(original_name).suffix.lower()
    return suffix if suffix.isascii() and len(suffix) <= 10 and suffix[1:].isalnum() else ""


class AttachmentStore:
    """Writes uploads under a single directory with random, non-guessable names."""

    def __init__(self, upload_dir: str | Path) -> None:
        self.upload_dir = Path(upload_dir)

    def path_for(self, filename: str) -> Path:
        # Stored names never contain separators; reject anything that would escape the directory
        if Path(filename).name != filename:
            raise InvalidInput("Invalid attachment filename")
        return self.upload_dir / filename

    async def save(self, upload: Upload) -> StoredFile:
        filename = f"attachment-{generate_token(12)}{_safe_suffix(upload.original_name)}"
        path = self.path_for(filename)
        await asyncio.to_thread(self.upload_dir.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, upload.content)
        return StoredFile(
            filename=filename,
            original_name=upload.original_name[:255],
            file_size=upload.size,
            mime_type=upload.mime_type,
        )

    async def remove(self, filename: str) -> None:
        """Delete a stored file; missing files are ignored."""
        try:
            await asyncio.to_thread(os.remove, self.path_for(filename))
        except FileNotFoundError:
            logger.warning(f"Attachment file already gone: {filename}")
        except OSError as e:
            logger.error(f"Failed to delete attachment file {filename}: {e}")

    def remove_older_than(self, cutoff_timestamp: float) -> int:
        """
        Delete stored files last modified before `cutoff_timestamp`.

        Returns:
            Number of files deleted
        """
        if not self.upload_dir.is_dir():
            return 0
        deleted = 0
        for entry in self.upload_dir.iterdir():
            if not entry.is_file():
                continue
            try:
                if entry.stat().st_mtime < cutoff_timestamp:
                    entry.unlink()
                    deleted += 1
            except OSError as e:
                logger.error(f"Failed to clean up {entry.name}: {e}")
        return deleted
