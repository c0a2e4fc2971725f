"""
Local filesystem adapter for the object store.

Keys map to files under a root directory. Used for development and tests.
"""

import os
import shutil
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from .base import ObjectStore

logger = logging.getLogger("shorts_worker")


class LocalObjectStore(ObjectStore):
    """Directory-backed implementation of the object store"""

    def __init__(self, root: str, public_base: str = ""):
        self.root = os.path.abspath(root)
        self.public_base = public_base.rstrip("/")

    def connect(self):
        os.makedirs(self.root, exist_ok=True)
        logger.info(f"Local object store at {self.root}")

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key.lstrip("/")))
        if os.path.commonpath([self.root, path]) != self.root:
            raise ValueError(f"Key escapes store root: {key}")
        return path

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not os.path.isfile(path):
            return None
        with open(path, 'rb') as f:
            return f.read()

    def put(self, key: str, body: bytes, content_type: str = "application/octet-stream") -> None:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        if isinstance(body, str):
            body = body.encode('utf-8')
        tmp_path = f"{path}.tmp"
        with open(tmp_path, 'wb') as f:
            f.write(body)
        os.replace(tmp_path, path)

    def list(self, prefix: str) -> List[Dict[str, Any]]:
        results = []
        for dirpath, _, filenames in os.walk(self.root):
            for filename in filenames:
                path = os.path.join(dirpath, filename)
                key = os.path.relpath(path, self.root).replace(os.sep, "/")
                if not key.startswith(prefix):
                    continue
                stat = os.stat(path)
                results.append({
                    'key': key,
                    'size': stat.st_size,
                    'last_modified': datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                })
        return sorted(results, key=lambda obj: obj['key'])

    def copy(self, src_key: str, dst_key: str) -> None:
        src = self._path(src_key)
        if not os.path.isfile(src):
            raise FileNotFoundError(src_key)
        dst = self._path(dst_key)
        os.makedirs(os.path.dirname(dst), exist_ok=True)
        shutil.copyfile(src, dst)

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def download_file(self, key: str, local_path: str) -> bool:
        src = self._path(key)
        if not os.path.isfile(src):
            logger.warning(f"Object {key} not found in {self.root}")
            return False
        shutil.copyfile(src, local_path)
        return True

    def upload_file(self, local_path: str, key: str, content_type: str = "application/octet-stream") -> None:
        dst = self._path(key)
        os.makedirs(os.path.dirname(dst), exist_ok=True)
        shutil.copyfile(local_path, dst)
        logger.info(f"Stored {local_path} as {key}")

    def public_url(self, key: str) -> str:
        if self.public_base:
            return f"{self.public_base}/{key}"
        return self._path(key)
