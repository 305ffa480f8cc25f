import logging
import httpx
from typing import Optional

from errors import StorageUploadFailed
from models import AudioPayload, UploadTarget
from multipart_codec import encode_multipart

logger = logging.getLogger(__name__)


class StorageUploader:
    """POSTs audio bytes to the presigned storage target handed out by `POST /file`."""

    def __init__(self, timeout: float = 300.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def upload(self, target: UploadTarget, payload: AudioPayload) -> str:
        if not self.client:
            raise RuntimeError("Uploader not initialized. Use 'async with' context manager.")

        body, content_type = encode_multipart(
            target.request.fields,
            payload.content,
            payload.filename,
        )

        logger.info(
            f"Uploading {payload.size_bytes} bytes to storage for fileId {target.file_id} "
            f"({len(target.request.fields)} form fields)"
        )

        try:
            response = await self.client.post(
                target.request.url,
                content=body,
                headers={"Content-Type": content_type},
            )
        except httpx.HTTPError as e:
            raise StorageUploadFailed(f"S3 upload failed: {e}")

        if not response.is_success:
            raise StorageUploadFailed(f"S3 upload failed: {response.status_code} {response.text}")

        # The storage response carries no id; the target's fileId is authoritative.
        return target.file_id
