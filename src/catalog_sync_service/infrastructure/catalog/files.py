"""Image uploads to the remote catalog file store.

Uploading is three remote steps: stage an upload target, POST the bytes to
it, then register a permanent file resource. The permanent URL only appears
once the remote side has processed the file, so it is polled with bounded
exponential backoff.
"""

from dataclasses import dataclass

import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.errors import RemoteMutationError, TransportError
from catalog_sync_service.infrastructure.catalog import operations as ops
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway

logger = structlog.get_logger()


@dataclass
class ImageUpload:
    """An image received from a caller."""

    filename: str
    content: bytes
    content_type: str

    @property
    def extension(self) -> str:
        _, dot, ext = self.filename.rpartition(".")
        return ext if dot else "jpg"


@dataclass
class StoredFile:
    """A processed remote file."""

    file_id: str
    url: str


class _FileNotReady(Exception):
    pass


class CatalogFileStore:
    """Stage, upload and register images in the remote catalog."""

    def __init__(self, gateway: CatalogGateway, settings: Settings | None = None):
        self.gateway = gateway
        self.settings = settings or get_settings()

    async def upload_image(self, image: ImageUpload, name: str) -> StoredFile:
        """Upload ``image`` under ``name.<ext>`` and return its permanent URL."""
        filename = f"{name}.{image.extension}"

        data = await self.gateway.run(
            ops.STAGED_UPLOADS_CREATE,
            {
                "input": [
                    {
                        "filename": filename,
                        "mimeType": image.content_type,
                        "resource": "FILE",
                        "httpMethod": "POST",
                    }
                ]
            },
            root="stagedUploadsCreate",
        )
        targets = (data.get("stagedUploadsCreate") or {}).get("stagedTargets") or []
        if not targets:
            raise RemoteMutationError("Failed to get a staged upload target")
        target = targets[0]

        uploaded = await self.gateway.client.upload(
            target["url"],
            target.get("parameters") or [],
            filename,
            image.content,
            image.content_type,
        )
        if not uploaded.success:
            raise TransportError(f"Staged upload failed: {uploaded.error}")

        data = await self.gateway.run(
            ops.FILE_CREATE,
            {
                "files": [
                    {
                        "originalSource": target["resourceUrl"],
                        "contentType": "IMAGE",
                        "alt": image.filename,
                    }
                ]
            },
            root="fileCreate",
        )
        files = (data.get("fileCreate") or {}).get("files") or []
        if not files or not files[0].get("id"):
            raise RemoteMutationError("File creation returned no file")
        file_id = files[0]["id"]

        url = await self.wait_for_file_url(file_id)
        logger.info("Image uploaded", filename=filename, file_id=file_id)
        return StoredFile(file_id=file_id, url=url)

    async def wait_for_file_url(self, file_id: str) -> str:
        """Poll the file until the remote side exposes its permanent URL."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.settings.file_ready_max_attempts)),
            wait=wait_exponential(
                min=self.settings.file_ready_backoff_min,
                max=self.settings.file_ready_backoff_max,
            ),
            retry=retry_if_exception_type(_FileNotReady),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._file_url(file_id)
        except RetryError as exc:
            raise RemoteMutationError(
                "Failed to fetch permanent URL for uploaded file"
            ) from exc
        raise RuntimeError("unreachable")

    async def _file_url(self, file_id: str) -> str:
        data = await self.gateway.run(ops.FILE_NODES, {"ids": [file_id]})
        nodes = data.get("nodes") or []
        node = nodes[0] if nodes else None
        if not node:
            raise _FileNotReady(file_id)
        if node.get("fileStatus") == "FAILED":
            raise RemoteMutationError("Remote file processing failed")
        url = (node.get("image") or {}).get("url") or node.get("url")
        if not url:
            raise _FileNotReady(file_id)
        return url
