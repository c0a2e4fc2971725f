"""
Abstract base class for object store adapters.

Defines the interface that all storage backends must implement, enabling
easy swapping between S3-compatible buckets (AWS, Cloudflare R2) and a
local directory for development.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List


class ObjectStore(ABC):
    """Abstract base class for key/value blob storage"""

    @abstractmethod
    def connect(self) -> None:
        """Initialize the underlying client"""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """
        Read an object.

        Args:
            key: Object key

        Returns:
            Object bytes, or None if the key does not exist
        """
        pass

    @abstractmethod
    def put(self, key: str, body: bytes, content_type: str = "application/octet-stream") -> None:
        """
        Write an object, replacing any existing one.

        Args:
            key: Object key
            body: Object contents
            content_type: MIME type stored with the object
        """
        pass

    @abstractmethod
    def list(self, prefix: str) -> List[Dict[str, Any]]:
        """
        List objects under a prefix.

        Returns:
            List of dicts with key, size and last_modified
        """
        pass

    @abstractmethod
    def copy(self, src_key: str, dst_key: str) -> None:
        """Copy an object within the store"""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""
        pass

    @abstractmethod
    def download_file(self, key: str, local_path: str) -> bool:
        """
        Download an object into a local file.

        Returns:
            True on success, False if the key does not exist
        """
        pass

    @abstractmethod
    def upload_file(self, local_path: str, key: str, content_type: str = "application/octet-stream") -> None:
        """Upload a local file under a key"""
        pass

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Resolve a key to the URL clients should use"""
        pass

    def close(self) -> None:
        """Release the underlying client"""
        pass
