"""
Object store adapters.

This module provides the abstract ObjectStore interface and concrete
implementations for S3-compatible buckets and a local directory.
"""

from .base import ObjectStore
from .local_adapter import LocalObjectStore
from .s3_adapter import S3ObjectStore

__all__ = [
    'ObjectStore',
    'LocalObjectStore',
    'S3ObjectStore'
]
