from __future__ import annotations

import mimetypes
import time
from pathlib import Path
from typing import Optional, Protocol

from loguru import logger

from .errors import UploadError
from .utils import safe_filename, short_id

# Folders used by the app
CLIENT_DOCS = "clients"
PRODUCT_DOCS = "product-docs"
IMAGES = "images"
QUOTE_DOCS = "quotes"


class BlobStore(Protocol):
    def upload(self, folder: str, data: bytes, content_type: str, filename: Optional[str] = None) -> str: ...


class LocalBlobStore:
    """Writes files under ``root/<folder>/`` and returns their public URL.

    The web app serves ``root`` at ``/files``.
    """

    def __init__(self, root: str | Path, base_url: str) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def upload(self, folder: str, data: bytes, content_type: str, filename: Optional[str] = None) -> str:
        if not filename:
            ext = mimetypes.guess_extension(content_type or "") or ".bin"
            filename = f"file{ext}"
        name = f"{int(time.time() * 1000)}_{short_id()}_{safe_filename(filename)}"
        target_dir = self.root / safe_filename(folder).replace(".", "_")
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            (target_dir / name).write_bytes(data)
        except OSError as e:
            raise UploadError(f"upload to {folder} failed: {e}") from e
        url = f"{self.base_url}/{target_dir.name}/{name}"
        logger.debug(f"stored {len(data)} bytes at {url}")
        return url
