"""Blob storage for converted CSV artifacts.

Three interchangeable backends share one contract (put / get / locate /
exists / delete):

- LocalBlobStore: files on disk, served back through /api/files/download
- S3BlobStore: S3 or any S3-compatible store (Cloudflare R2), presigned URLs
- DatabaseBlobStore: rows in the application database, served like local

Keys are hierarchical ("jobs/<job_id>/<name>.csv") and double as the
artifact reference recorded on a completed job.
"""
from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from pdf2csv import db
from pdf2csv.errors import InvalidInput, NotFound, UpstreamUnavailable
from pdf2csv.models import StoredFile

logger = logging.getLogger(__name__)

DOWNLOAD_ROUTE = "/api/files/download/"


class BlobLocation(NamedTuple):
    url: str
    expires_in_seconds: Optional[int]


def validate_key(key: str) -> str:
    """Normalise a storage key, rejecting anything that could escape the store."""
    if not isinstance(key, str):
        raise InvalidInput("Invalid file key", code="INVALID_FILE_KEY")
    cleaned = key.strip().lstrip("/")
    if not cleaned or "\\" in cleaned or "\x00" in cleaned:
        raise InvalidInput("Invalid file key", code="INVALID_FILE_KEY")
    parts = cleaned.split("/")
    if any(part in ("", ".", "..") for part in parts):
        raise InvalidInput("Invalid file key", code="INVALID_FILE_KEY")
    return cleaned


def artifact_key(job_id: str, name: Optional[str] = None) -> str:
    """Key for a job's CSV, disambiguated by a millisecond timestamp."""
    base = secure_filename(name or "")
    if base.lower().endswith(".csv"):
        base = base[:-4]
    elif base.lower().endswith(".pdf"):
        base = base[:-4]
    return f"jobs/{job_id}/{int(time.time() * 1000)}-{base or 'converted'}.csv"


def download_filename(key: str) -> str:
    filename = key.rsplit("/", 1)[-1]
    if not filename.endswith(".csv"):
        return f"{filename}.csv"
    return filename


class BlobStore:
    """Interface every storage backend implements."""

    kind = "abstract"

    def put(self, key: str, data: bytes, content_type: str = "text/csv") -> str:
        raise NotImplementedError

    def get(self, ref: str) -> bytes:
        raise NotImplementedError

    def locate(self, ref: str) -> BlobLocation:
        raise NotImplementedError

    def exists(self, ref: str) -> bool:
        raise NotImplementedError

    def delete(self, ref: str) -> bool:
        raise NotImplementedError

    def health_check(self) -> bool:
        return True


class _DirectServeMixin:
    """Backends whose artifacts are streamed by our own download route."""

    base_url = ""

    def public_url(self, key: str) -> str:
        return f"{self.base_url.rstrip('/')}{DOWNLOAD_ROUTE}{quote(key, safe='/')}"


class LocalBlobStore(_DirectServeMixin, BlobStore):

    kind = "local-filesystem"

    def __init__(self, root: str, base_url: str = "http://localhost:8080"):
        self.root = os.path.abspath(root)
        self.base_url = base_url
        os.makedirs(self.root, exist_ok=True)
        logger.info("Local storage initialized: %s", self.root)

    def file_path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, validate_key(key)))
        if os.path.commonpath([self.root, path]) != self.root:
            raise InvalidInput("Invalid file key", code="INVALID_FILE_KEY")
        return path

    def put(self, key: str, data: bytes, content_type: str = "text/csv") -> str:
        key = validate_key(key)
        path = self.file_path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise UpstreamUnavailable(f"Local storage failed: {e.strerror or e}") from e
        logger.info("CSV stored locally: %s (%.2fKB)", key, len(data) / 1024)
        return key

    def get(self, ref: str) -> bytes:
        path = self.file_path(ref)
        if not os.path.isfile(path):
            raise NotFound("File not found", code="FILE_NOT_FOUND")
        with open(path, "rb") as f:
            return f.read()

    def locate(self, ref: str) -> BlobLocation:
        if not self.exists(ref):
            raise NotFound("File not found", code="FILE_NOT_FOUND")
        return BlobLocation(self.public_url(validate_key(ref)), None)

    def exists(self, ref: str) -> bool:
        return os.path.isfile(self.file_path(ref))

    def delete(self, ref: str) -> bool:
        path = self.file_path(ref)
        if not os.path.isfile(path):
            return False
        try:
            os.remove(path)
        except OSError as e:
            logger.error("Failed to delete file %s: %s", ref, e)
            return False
        logger.info("Deleted file: %s", ref)
        return True

    def _all_files(self):
        for dirpath, _, filenames in os.walk(self.root):
            for name in filenames:
                yield os.path.join(dirpath, name)

    def stats(self) -> Dict[str, Any]:
        total_files = 0
        total_size = 0
        for path in self._all_files():
            try:
                total_size += os.path.getsize(path)
            except OSError:
                continue
            total_files += 1
        return {
            "totalFiles": total_files,
            "totalSizeBytes": total_size,
            "totalSizeMB": f"{total_size / 1024 / 1024:.2f}",
        }

    def cleanup(self, hours_old: float = 24) -> int:
        """Delete files whose mtime is older than ``hours_old``."""
        cutoff = time.time() - hours_old * 3600
        deleted = 0
        for path in list(self._all_files()):
            try:
                if os.path.getmtime(path) < cutoff:
                    os.remove(path)
                    deleted += 1
            except OSError as e:
                logger.warning("Could not clean up %s: %s", os.path.basename(path), e)
        if deleted:
            logger.info("Cleaned up %d old CSV files (older than %sh)", deleted, hours_old)
        return deleted

    def health_check(self) -> bool:
        return os.path.isdir(self.root) and os.access(self.root, os.W_OK)


class S3BlobStore(BlobStore):

    kind = "s3"

    def __init__(self, bucket: str, client=None, presign_expires_seconds: int = 3600,
                 region: Optional[str] = None, endpoint_url: Optional[str] = None):
        if not bucket:
            raise ValueError("AWS_S3_BUCKET not set")
        self.bucket = bucket
        self.presign_expires_seconds = presign_expires_seconds
        self.client = client or boto3.client("s3", region_name=region or None,
                                             endpoint_url=endpoint_url or None)
        logger.info("S3 storage initialized for bucket: %s", bucket)

    @staticmethod
    def _is_missing(err: ClientError) -> bool:
        error = err.response.get("Error", {})
        status = err.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return error.get("Code") in ("404", "NoSuchKey", "NotFound") or status == 404

    def put(self, key: str, data: bytes, content_type: str = "text/csv") -> str:
        key = validate_key(key)
        try:
            result = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata={
                    "uploaded-at": datetime.now(timezone.utc).isoformat(),
                    "source": "pdf2csv-backend",
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise UpstreamUnavailable(f"S3 upload failed: {e}") from e
        logger.info("CSV uploaded to S3: %s (ETag: %s)", key, (result or {}).get("ETag"))
        return key

    def get(self, ref: str) -> bytes:
        key = validate_key(ref)
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                raise NotFound("File not found", code="FILE_NOT_FOUND") from e
            raise UpstreamUnavailable(f"S3 download failed: {e}") from e
        except BotoCoreError as e:
            raise UpstreamUnavailable(f"S3 download failed: {e}") from e
        return obj["Body"].read()

    def locate(self, ref: str) -> BlobLocation:
        key = validate_key(ref)
        try:
            url = self.client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": key,
                    "ResponseContentType": "text/csv",
                    "ResponseContentDisposition": f'attachment; filename="{download_filename(key)}"',
                },
                ExpiresIn=self.presign_expires_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise UpstreamUnavailable(f"Presigned URL generation failed: {e}") from e
        return BlobLocation(url, self.presign_expires_seconds)

    def exists(self, ref: str) -> bool:
        key = validate_key(ref)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise UpstreamUnavailable(f"S3 lookup failed: {e}") from e
        except BotoCoreError as e:
            raise UpstreamUnavailable(f"S3 lookup failed: {e}") from e
        return True

    def delete(self, ref: str) -> bool:
        key = validate_key(ref)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error("Failed to delete S3 object %s: %s", key, e)
            return False
        return True

    def health_check(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning("S3 health check failed: %s", e)
            return False


class DatabaseBlobStore(_DirectServeMixin, BlobStore):
    """Stores artifacts in the stored_files table. Needs an app context."""

    kind = "database"

    def __init__(self, base_url: str = "http://localhost:8080"):
        self.base_url = base_url

    @staticmethod
    def _row(key: str):
        return StoredFile.query.filter_by(key=key).first()

    def put(self, key: str, data: bytes, content_type: str = "text/csv") -> str:
        key = validate_key(key)
        try:
            row = self._row(key)
            if row is None:
                row = StoredFile(key=key)
                db.session.add(row)
            row.filename = download_filename(key)
            row.content_type = content_type
            row.data = data
            row.size = len(data)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise UpstreamUnavailable(f"Database storage failed: {e.__class__.__name__}") from e
        logger.info("CSV stored in database: %s (%.2fKB)", key, len(data) / 1024)
        return key

    def get(self, ref: str) -> bytes:
        row = self._row(validate_key(ref))
        if row is None:
            raise NotFound("File not found", code="FILE_NOT_FOUND")
        return row.data

    def locate(self, ref: str) -> BlobLocation:
        key = validate_key(ref)
        if self._row(key) is None:
            raise NotFound("File not found", code="FILE_NOT_FOUND")
        return BlobLocation(self.public_url(key), None)

    def exists(self, ref: str) -> bool:
        return self._row(validate_key(ref)) is not None

    def delete(self, ref: str) -> bool:
        row = self._row(validate_key(ref))
        if row is None:
            return False
        db.session.delete(row)
        db.session.commit()
        logger.info("Deleted stored file: %s", ref)
        return True

    def stats(self) -> Dict[str, Any]:
        count, size = db.session.query(func.count(StoredFile.id), func.coalesce(func.sum(StoredFile.size), 0)).one()
        return {
            "totalFiles": int(count),
            "totalSizeBytes": int(size),
            "totalSizeMB": f"{int(size) / 1024 / 1024:.2f}",
        }

    def health_check(self) -> bool:
        try:
            db.session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning("Database storage health check failed: %s", e)
            return False


def build_blob_store(config) -> BlobStore:
    """Pick the backend named by STORAGE_BACKEND."""
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    base_url = config.get("BASE_URL") or "http://localhost:8080"
    if backend == "local":
        return LocalBlobStore(config["STORAGE_DIR"], base_url=base_url)
    if backend in ("s3", "r2"):
        return S3BlobStore(
            bucket=(config.get("AWS_S3_BUCKET") or "").strip(),
            presign_expires_seconds=int(config.get("PRESIGN_EXPIRES_SECONDS") or 3600),
            region=(config.get("AWS_REGION") or "").strip(),
            endpoint_url=(config.get("S3_ENDPOINT_URL") or "").strip(),
        )
    if backend == "database":
        return DatabaseBlobStore(base_url=base_url)
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")
