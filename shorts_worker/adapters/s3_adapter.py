"""
S3-compatible object store adapter.

Works against AWS S3 and Cloudflare R2 (set S3_ENDPOINT for R2).
"""

import boto3
import logging
from typing import Optional, Dict, Any, List
from botocore.exceptions import ClientError

from .base import ObjectStore

logger = logging.getLogger("shorts_worker")

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


def _is_missing(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') in _MISSING_CODES


class S3ObjectStore(ObjectStore):
    """AWS S3 / Cloudflare R2 implementation of the object store"""

    def __init__(self, bucket: str, region: str = "auto", endpoint: Optional[str] = None,
                 access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None,
                 public_base: str = ""):
        self.bucket = bucket
        self.region = region
        self.endpoint = endpoint
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.public_base = public_base.rstrip("/")
        self.s3 = None

    def connect(self):
        """Initialize S3 client"""
        try:
            self.s3 = boto3.client(
                's3',
                region_name=self.region,
                endpoint_url=self.endpoint,
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
            )
            logger.info(f"S3 object store connected to bucket: {self.bucket}")
        except Exception as e:
            logger.error(f"Failed to connect to S3: {e}")
            raise

    def get(self, key: str) -> Optional[bytes]:
        """Read an object, None when missing"""
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=key)
            return response['Body'].read()
        except ClientError as e:
            if _is_missing(e):
                return None
            logger.error(f"Error reading {key} from S3: {e}")
            raise

    def put(self, key: str, body: bytes, content_type: str = "application/octet-stream") -> None:
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type
            )
        except ClientError as e:
            logger.error(f"Error writing {key} to S3: {e}")
            raise

    def list(self, prefix: str) -> List[Dict[str, Any]]:
        """List every object under a prefix, following continuation tokens"""
        results = []
        paginator = self.s3.get_paginator('list_objects_v2')
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get('Contents', []):
                    results.append({
                        'key': obj['Key'],
                        'size': obj.get('Size', 0),
                        'last_modified': obj.get('LastModified'),
                    })
        except ClientError as e:
            logger.error(f"Error listing {prefix} in S3: {e}")
            raise
        return results

    def copy(self, src_key: str, dst_key: str) -> None:
        try:
            self.s3.copy_object(
                Bucket=self.bucket,
                CopySource={'Bucket': self.bucket, 'Key': src_key},
                Key=dst_key
            )
        except ClientError as e:
            logger.error(f"Error copying {src_key} to {dst_key} in S3: {e}")
            raise

    def delete(self, key: str) -> None:
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                return
            logger.error(f"Error deleting {key} from S3: {e}")
            raise

    def download_file(self, key: str, local_path: str) -> bool:
        try:
            self.s3.download_file(self.bucket, key, local_path)
            return True
        except ClientError as e:
            if _is_missing(e):
                logger.warning(f"Object {key} not found in bucket {self.bucket}")
                return False
            logger.error(f"Error downloading {key} from S3: {e}")
            raise

    def upload_file(self, local_path: str, key: str, content_type: str = "application/octet-stream") -> None:
        try:
            self.s3.upload_file(
                local_path,
                self.bucket,
                key,
                ExtraArgs={'ContentType': content_type}
            )
            logger.info(f"Uploaded {local_path} to s3://{self.bucket}/{key}")
        except ClientError as e:
            logger.error(f"Error uploading {local_path} to S3: {e}")
            raise

    def public_url(self, key: str) -> str:
        if self.public_base:
            return f"{self.public_base}/{key}"
        return f"/uploads/{key}"

    def close(self):
        """Close S3 connection"""
        self.s3 = None
        logger.info("S3 object store connection closed")
