import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .errors import UploadError

logger = logging.getLogger(__name__)


def artifact_name(slug: str) -> str:
    return f"{_slugify(slug)}-social.png"


class ObjectStorage:
    """Interface: store bytes under `name`, return a public URL."""

    def upload(self, name: str, data: bytes, content_type: str = "image/png") -> str:
        raise NotImplementedError


class LocalDirectoryStorage(ObjectStorage):
    """
    Writes artifacts under `root`. Files appear atomically: the bytes go to a
    temp file in the same directory which is then renamed into place.
    """

    def __init__(self, root: Path, public_base_url: Optional[str] = None) -> None:
        self.root = root
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def upload(self, name: str, data: bytes, content_type: str = "image/png") -> str:
        target = self.root / name
        tmp_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".upload-", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise UploadError(f"could not write {target}: {e}") from e

        if self.public_base_url:
            return f"{self.public_base_url}/{name}"
        return target.resolve().as_uri()


class AzureBlobStorage(ObjectStorage):
    """Uploads to an Azure Blob Storage container with public blob access."""

    def __init__(self, connection_string: str, container: str = "blog-images") -> None:
        if not connection_string:
            raise ValueError("connection_string is required for blob uploads")
        self.connection_string = connection_string
        self.container = container
        self._container_client = None

    def _get_container_client(self):
        from azure.core.exceptions import ResourceExistsError
        from azure.storage.blob import BlobServiceClient

        if self._container_client is None:
            service = BlobServiceClient.from_connection_string(self.connection_string)
            client = service.get_container_client(self.container)
            try:
                client.create_container(public_access="blob")
            except ResourceExistsError:
                pass
            self._container_client = client
        return self._container_client

    def upload(self, name: str, data: bytes, content_type: str = "image/png") -> str:
        from azure.storage.blob import ContentSettings

        try:
            blob = self._get_container_client().get_blob_client(name)
            blob.upload_blob(data, overwrite=True, content_settings=ContentSettings(content_type=content_type))
        except Exception as e:
            raise UploadError(f"blob upload of {name} failed: {e}") from e
        logger.info("Uploaded %s to container %s", name, self.container)
        return blob.url


def _slugify(text: str) -> str:
    slug = "".join(ch.lower() if ch.isalnum() else "-" for ch in text)
    while "--" in slug:
        slug = slug.replace("--", "-")
    return slug.strip("-") or "intel"
