"""
Company Portal
Attachment storage.

Attachments are written by a storage backend (local disk by default) under
``<request key>/<uuid>-<safe filename>``. Every upload runs in a worker
thread bounded by a caller-supplied timeout; callers decide what a failure
means (``submit`` keeps the rest of the form, ``respond`` aborts). Files
whose request or response is never written are removed with ``discard``.
"""

from __future__ import annotations

import logging
import os
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass

from flask import current_app
from werkzeug.utils import secure_filename

from portal.core.exceptions import UploadFailure, UploadTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    """An uploaded file held in memory until it is stored."""

    filename: str
    data: bytes
    content_type: str | None = None

    @classmethod
    def from_file_storage(cls, file_storage) -> "Attachment":
        """Build from a werkzeug ``FileStorage`` (``request.files[...]``)."""
        return cls(
            filename=file_storage.filename or "arquivo",
            data=file_storage.read(),
            content_type=file_storage.mimetype,
        )


@dataclass
class StoredFile:
    url: str
    filename: str
    size: int


class LocalFileStorage:
    """Writes attachments below ``root`` and serves them as ``/uploads/...`` URLs."""

    url_prefix = "/uploads"

    def __init__(self, root: str):
        self.root = root

    def save(self, attachment: Attachment, folder: str) -> StoredFile:
        safe_name = secure_filename(attachment.filename) or "arquivo"
        safe_folder = secure_filename(folder) or "misc"
        relative = f"{safe_folder}/{uuid.uuid4().hex}-{safe_name}"
        target = os.path.join(self.root, safe_folder)
        os.makedirs(target, exist_ok=True)
        with open(os.path.join(self.root, relative), "wb") as fh:
            fh.write(attachment.data)
        return StoredFile(
            url=f"{self.url_prefix}/{relative}",
            filename=attachment.filename,
            size=len(attachment.data),
        )

    def delete(self, url: str) -> bool:
        """Remove the file behind *url*; ``False`` if it is not ours or already gone."""
        prefix = f"{self.url_prefix}/"
        if not url.startswith(prefix):
            return False
        try:
            os.remove(os.path.join(self.root, url[len(prefix):]))
        except FileNotFoundError:
            return False
        return True


def get_storage():
    """Return the configured storage backend for the current app."""
    backend = current_app.extensions.get("portal_storage")
    if backend is None:
        backend = LocalFileStorage(current_app.config["UPLOAD_FOLDER"])
        current_app.extensions["portal_storage"] = backend
    return backend


def upload_with_timeout(attachment: Attachment, folder: str, timeout: float | None = None,
                        storage=None) -> StoredFile:
    """Store *attachment* or raise ``UploadTimeoutError`` / ``UploadFailure``.

    A timed-out worker is abandoned, not killed: the file may still land on
    disk later, but the caller has already treated the upload as failed.
    """
    if timeout is None:
        timeout = float(current_app.config.get("UPLOAD_TIMEOUT_SECONDS", 30))
    storage = storage or get_storage()

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="upload")
    future = executor.submit(storage.save, attachment, folder)
    try:
        stored = future.result(timeout=timeout)
    except FutureTimeout:
        logger.warning("Upload timed out after %.1fs: %s", timeout, attachment.filename)
        raise UploadTimeoutError(attachment.filename, timeout) from None
    except Exception as exc:
        logger.error("Upload failed for %s: %s", attachment.filename, exc)
        raise UploadFailure(attachment.filename, str(exc)) from exc
    finally:
        executor.shutdown(wait=False)

    logger.info("Stored attachment %s (%d bytes) at %s", stored.filename, stored.size, stored.url)
    return stored


def discard(stored_files, storage=None) -> None:
    """Remove attachments whose owning record was never written.

    Removal failures are logged with the orphaned URL and swallowed so the
    caller's original error is the one that propagates.
    """
    storage = storage or get_storage()
    for stored in stored_files:
        try:
            removed = storage.delete(stored.url)
        except OSError as exc:
            logger.error("Orphaned attachment left at %s: %s", stored.url, exc)
            continue
        if removed:
            logger.info("Removed orphaned attachment %s", stored.url)
