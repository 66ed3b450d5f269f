"""Blob storage collaborator for checklist attachments.

The default backend writes into ``UPLOAD_FOLDER`` and returns a URL under
``UPLOAD_BASE_URL``, served by the ``/uploads/<path>`` route. A different
backend can be installed with ``app.extensions["blob_storage"] = ...``;
anything with ``upload_attachment(montage_id, item_id, file) -> str`` fits.
"""

from __future__ import annotations

import logging
import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class LocalBlobStorage:
    """Filesystem-backed storage: ``<root>/montages/<montage_id>/<item_id>/<file>``."""

    def __init__(self, root: str, base_url: str = "/uploads") -> None:
        self.root = root
        self.base_url = base_url.rstrip("/")

    def upload_attachment(self, montage_id: str, item_id: str, file) -> str:
        original_name = secure_filename(file.filename or "") or "attachment"
        rel_dir = os.path.join("montages", montage_id, item_id)
        dest_dir = os.path.join(self.root, rel_dir)
        os.makedirs(dest_dir, exist_ok=True)

        dest_name = f"{uuid.uuid4().hex[:8]}_{original_name}"
        file.stream.seek(0)
        file.save(os.path.join(dest_dir, dest_name))
        logger.info("Stored attachment %s for montage=%s item=%s", dest_name, montage_id, item_id)
        return f"{self.base_url}/montages/{montage_id}/{item_id}/{dest_name}"


def get_blob_storage():
    """Storage backend for the current app (created lazily from config)."""
    storage = current_app.extensions.get("blob_storage")
    if storage is None:
        storage = LocalBlobStorage(
            current_app.config["UPLOAD_FOLDER"],
            current_app.config.get("UPLOAD_BASE_URL", "/uploads"),
        )
        current_app.extensions["blob_storage"] = storage
    return storage
