"""
Blob storage for uploads and generated images.

Objects live on local disk under `storage.root_dir` and are served by the app
at `/storage/<key>`. Plain synchronous file I/O; payloads are bounded by the
upload ceiling.
"""
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from omnichat.config import get_config

log = structlog.get_logger()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredObject:
    key: str
    url: str
    size: int
    content_type: str


def sanitize_filename(filename: str) -> str:
    name = Path(filename).name.strip()
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name[:200] or "file"


def _unique_stem() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"


def file_key(user_id: str, filename: str) -> str:
    return f"{user_id}/files/{_unique_stem()}-{sanitize_filename(filename)}"


def image_key(user_id: str, extension: str = "png") -> str:
    return f"{user_id}/images/{_unique_stem()}.{extension}"


class LocalStorage:
    """Key/value blob store on the local filesystem."""

    def __init__(self, root_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        cfg = get_config().storage
        self.root = Path(root_dir or cfg.root_dir)
        self.public_base_url = (public_base_url or cfg.public_base_url).rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes root: {key}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def key_for_url(self, url: str) -> Optional[str]:
        """The key behind one of our own public URLs, or None for any other URL."""
        prefix = f"{self.public_base_url}/"
        if not url.startswith(prefix):
            return None
        key = url[len(prefix):].split("?", 1)[0].split("#", 1)[0]
        if not key:
            return None
        try:
            path = self._path(key)
        except ValueError:
            return None
        return path.relative_to(self.root.resolve()).as_posix()

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        log.info("storage_put", key=key, size_kb=round(len(data) / 1024, 1))
        return StoredObject(key=key, url=self.url_for(key), size=len(data), content_type=content_type)

    def read(self, key: str) -> bytes:
        return self._path(key).read_bytes()

    def size(self, key: str) -> int:
        return self._path(key).stat().st_size

    def delete(self, key: str) -> bool:
        """Remove an object; False if it was already gone."""
        path = self._path(key)
        if not path.exists():
            log.warning("storage_delete_missing", key=key)
            return False
        path.unlink()
        log.info("storage_deleted", key=key)
        return True


_storage: Optional[LocalStorage] = None


def get_storage() -> LocalStorage:
    global _storage
    if _storage is None:
        _storage = LocalStorage()
    return _storage
