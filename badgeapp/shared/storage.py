from __future__ import annotations

import logging
import os
import re
import tempfile

from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError


logger = logging.getLogger("badgeapp.storage")

CONTENT_TYPE_EXTENSIONS = {
    "image/png": "png",
    "application/pdf": "pdf",
}


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data, mode: str = "wb") -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path)
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, mode) as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def artifact_key(key_code: str) -> str:
    """Object key for a badge's artifacts.

    Derived from the key code alone, so two subjects sharing a key code
    overwrite each other's files.
    """
    cleaned = re.sub(r"[^A-Za-z0-9_.-]+", "-", (key_code or "").strip()).strip("-.")
    if not cleaned:
        raise StorageError(f"Cannot derive an artifact key from {key_code!r}")
    return cleaned


def extension_for(content_type: str) -> str:
    try:
        return CONTENT_TYPE_EXTENSIONS[content_type]
    except KeyError:
        raise StorageError(f"Unsupported content type: {content_type!r}") from None


class ArtifactStore:
    """Persists rendered artifacts and returns their public location."""

    def __init__(self, public_base_url: str):
        self.public_base_url = public_base_url.rstrip("/")

    def url_for(self, key: str, content_type: str) -> str:
        return f"{self.public_base_url}/{key}.{extension_for(content_type)}"

    def store(self, key: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError


class LocalArtifactStore(ArtifactStore):
    def __init__(self, root: str, public_base_url: str = "/artifacts"):
        super().__init__(public_base_url)
        self.root = root

    def path_for(self, key: str, content_type: str) -> str:
        return os.path.join(self.root, f"{key}.{extension_for(content_type)}")

    def store(self, key: str, data: bytes, content_type: str) -> str:
        path = self.path_for(key, content_type)
        try:
            write_atomic(path, data)
            os.chmod(path, 0o644)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}") from exc
        logger.info("[STORE] wrote %s", path)
        return self.url_for(key, content_type)


class S3ArtifactStore(ArtifactStore):
    def __init__(self, client, bucket: str, public_host: str | None = None):
        super().__init__(f"https://{public_host or f'{bucket}.s3.amazonaws.com'}")
        self.client = client
        self.bucket = bucket

    def store(self, key: str, data: bytes, content_type: str) -> str:
        object_key = f"{key}.{extension_for(content_type)}"
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=object_key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("[STORE-FAIL] bucket=%s key=%s error=%s", self.bucket, object_key, exc)
            raise StorageError(f"Failed to upload {object_key}") from exc
        logger.info("[STORE] uploaded s3://%s/%s", self.bucket, object_key)
        return self.url_for(key, content_type)


def build_artifact_store(settings) -> ArtifactStore:
    if settings.artifact_backend == "s3":
        import boto3

        client = boto3.client("s3", region_name=settings.aws_region)
        return S3ArtifactStore(client, settings.artifact_bucket, settings.public_host)
    if settings.artifact_public_host:
        return LocalArtifactStore(
            settings.artifact_root, f"https://{settings.artifact_public_host}"
        )
    return LocalArtifactStore(settings.artifact_root)
