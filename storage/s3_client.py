"""
Blob storage for uploaded media.

S3Client talks to S3 (or MinIO via endpoint_url). LocalStorage writes under
UPLOADS_DIR and is used when S3 is disabled, and as the fallback when an S3
upload fails: the upload still succeeds with a local /uploads/ URL and
is_fallback set.
"""
import time
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Any

import boto3
from botocore.exceptions import ClientError, BotoCoreError

from storage.s3_paths import build_object_key
from core.logger import logger
import config

FALLBACK_BUCKET = "local-fallback"


class LocalStorage:
    """Filesystem store served from /uploads."""

    def __init__(self, root: Path, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def _path(self, key: str) -> Path:
        name = key[len("fallback-"):] if key.startswith("fallback-") else key
        path = (self.root / name).resolve()
        if self.root.resolve() not in path.parents and path != self.root.resolve():
            raise ValueError("Invalid file key")
        return path

    def upload_fileobj(self, file_obj: BinaryIO, folder: str, filename: str,
                       content_type: Optional[str] = None) -> Dict[str, Any]:
        name = f"{int(time.time() * 1000)}-{filename}"
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / name
        with open(path, "wb") as out:
            out.write(file_obj.read())
        logger.info(f"Stored file locally: {path}")
        return {
            "url": f"{self.url_prefix}/{name}",
            "key": f"fallback-{name}",
            "bucket": FALLBACK_BUCKET,
            "is_fallback": True,
        }

    def delete_file(self, key: str) -> bool:
        path = self._path(key)
        if not path.is_file():
            return False
        path.unlink()
        logger.info(f"Deleted local file: {path}")
        return True

    def list_files(self, folder: str = "") -> List[Dict[str, Any]]:
        # Local files are stored flat, folder is accepted for interface parity only
        if not self.root.exists():
            return []
        files = []
        for path in sorted(self.root.iterdir()):
            if not path.is_file():
                continue
            stat = path.stat()
            files.append({
                "key": f"fallback-{path.name}",
                "size": stat.st_size,
                "lastModified": datetime.utcfromtimestamp(stat.st_mtime).isoformat(),
                "url": f"{self.url_prefix}/{path.name}",
            })
        return files

    def get_file_info(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not path.is_file():
            return None
        stat = path.stat()
        return {
            "key": key,
            "size": stat.st_size,
            "contentType": None,
            "lastModified": datetime.utcfromtimestamp(stat.st_mtime).isoformat(),
            "url": f"{self.url_prefix}/{path.name}",
        }

    def test_connection(self) -> Dict[str, Any]:
        return {"success": False, "backend": "local", "message": "S3 storage disabled - using local storage"}


class S3Client:
    """S3 client for storing and retrieving uploaded media."""

    def __init__(
        self,
        bucket_name: str,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: str = "us-east-1",
        endpoint_url: Optional[str] = None,  # For S3-compatible services (MinIO, etc.)
        fallback: Optional[LocalStorage] = None,
    ):
        """
        Initialize S3 client.

        Args:
            bucket_name: Bucket holding all uploads
            aws_access_key_id: AWS access key (or from env)
            aws_secret_access_key: AWS secret key (or from env)
            region_name: AWS region
            endpoint_url: Custom endpoint URL (for MinIO, etc.)
            fallback: Local store used when an upload to S3 fails
        """
        self.bucket_name = bucket_name
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.fallback = fallback or LocalStorage(config.UPLOADS_DIR)

        client_kwargs = {"region_name": region_name}
        if aws_access_key_id:
            client_kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            client_kwargs["aws_secret_access_key"] = aws_secret_access_key
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        self.s3_client = boto3.client("s3", **client_kwargs)
        logger.info(f"S3 client initialized (bucket: {bucket_name})")

    def public_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{self.region_name}.amazonaws.com/{key}"

    def upload_fileobj(self, file_obj: BinaryIO, folder: str, filename: str,
                       content_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Upload a file-like object under folder.

        Returns:
            {url, key, bucket, is_fallback}
        """
        key = build_object_key(folder, filename)
        extra_args = {"ContentType": content_type} if content_type else {}
        try:
            self.s3_client.upload_fileobj(file_obj, self.bucket_name, key, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload file object to S3 ({key}): {e}")
            logger.warning("Falling back to local storage")
            file_obj.seek(0)
            return self.fallback.upload_fileobj(file_obj, folder, filename, content_type)

        url = self.public_url(key)
        logger.info(f"Uploaded file object to S3: s3://{self.bucket_name}/{key}")
        return {"url": url, "key": key, "bucket": self.bucket_name, "is_fallback": False}

    def delete_file(self, key: str) -> bool:
        if key.startswith("fallback-"):
            return self.fallback.delete_file(key)
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
            logger.info(f"Deleted file from S3: {self.bucket_name}/{key}")
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete file from S3: {e}")
            raise

    def list_files(self, folder: str = "", max_keys: int = 1000) -> List[Dict[str, Any]]:
        """List objects under a prefix as [{key, size, lastModified, url}]."""
        try:
            files = []
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=folder, MaxKeys=max_keys):
                for obj in page.get("Contents") or []:
                    files.append({
                        "key": obj["Key"],
                        "size": obj.get("Size", 0),
                        "lastModified": obj["LastModified"].isoformat() if obj.get("LastModified") else None,
                        "url": self.public_url(obj["Key"]),
                    })
            return files
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to list S3 objects under {folder}: {e}")
            raise

    def get_file_info(self, key: str) -> Optional[Dict[str, Any]]:
        if key.startswith("fallback-"):
            return self.fallback.get_file_info(key)
        try:
            head = self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return None
            raise
        return {
            "key": key,
            "size": head.get("ContentLength"),
            "contentType": head.get("ContentType"),
            "lastModified": head["LastModified"].isoformat() if head.get("LastModified") else None,
            "url": self.public_url(key),
        }

    def test_connection(self) -> Dict[str, Any]:
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return {"success": True, "backend": "s3", "bucket": self.bucket_name, "region": self.region_name}
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 connection test failed: {e}")
            return {"success": False, "backend": "s3", "bucket": self.bucket_name, "error": str(e)}


def get_blob_store():
    """The configured S3 client, or local storage when S3 is disabled."""
    if config.s3_client is not None:
        return config.s3_client
    return LocalStorage(config.UPLOADS_DIR)
