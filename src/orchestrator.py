"""
Upload Orchestrator
Runs the chapter upload pipeline for both entry paths:

1. Gate the shared app password.
2. Obtain the audio payload (decoded multipart body, or a downloaded YouTube track).
3. Validate size, filename length and format.
4. Authenticate the service account.
5. Request a presigned upload target (`POST /file`).
6. POST the bytes to storage.
7. Resolve the target household and Creative-Tonie.
8. Register the uploaded file as a new chapter.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from audio_fetcher import RemoteAudioFetcher, temporary_download
from config.platform import AppConfig
from credential_gate import CredentialGate
from directory import CHAPTERS_ENDPOINT, TonieDirectory, parse_tonie_key
from errors import InvalidContentType, MissingFields, UpstreamApiFailed
from models import AudioPayload, ChapterRequest, UploadTarget
from multipart_codec import decode_multipart
from tonie_auth import TonieSessionProvider
from tonie_client import TonieApiClient
from uploader import StorageUploader
from validation import ensure_valid_payload

logger = logging.getLogger(__name__)


def iso_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class UploadOrchestrator:
    """Orchestrates the entire upload process."""

    def __init__(
        self,
        config: AppConfig,
        gate: CredentialGate,
        session_provider: TonieSessionProvider,
        api_client: TonieApiClient,
        directory: TonieDirectory,
        fetcher: RemoteAudioFetcher,
        uploader_factory: Callable[[], StorageUploader] = StorageUploader,
    ):
        self.config = config
        self.gate = gate
        self.session_provider = session_provider
        self.api = api_client
        self.directory = directory
        self.fetcher = fetcher
        self.uploader_factory = uploader_factory

    def _is_debug_title(self, title: str) -> bool:
        marker = self.config.debug_title_marker
        return bool(marker) and title.startswith(marker)

    def _debug_response(self, payload: AudioPayload, title: str, tonie_id: str) -> Dict[str, Any]:
        logger.info(f"Debug title detected; skipping upload of {payload.filename}")
        return {
            "success": True,
            "debug": True,
            "message": "Debug mode - multipart parsing successful",
            "parsedData": {
                "filename": payload.filename,
                "fileSize": payload.size_bytes,
                "title": title,
                "tonieId": tonie_id,
                "validationPassed": True,
            },
        }

    async def _request_upload_target(self, access_token: str) -> UploadTarget:
        try:
            data = await self.api.post("/file", access_token)
        except UpstreamApiFailed as e:
            raise e.with_context("Failed to get upload URL from Tonie API")

        try:
            target = UploadTarget.model_validate(data)
        except ValidationError as e:
            raise UpstreamApiFailed(
                f"Malformed upload target: {e.error_count()} invalid field(s)",
                path="/file",
                message="Failed to get upload URL from Tonie API",
            )

        logger.info(
            f"Received upload request with fileId: {target.file_id} "
            f"({len(target.request.fields)} fields)"
        )
        return target

    async def _upload_and_link(self, payload: AudioPayload, tonie_id: str, title: str) -> Dict[str, Any]:
        """Steps 4-8. Returns {fileId, chapterData}."""
        logger.info("Authenticating with Tonie API...")
        token = await self.session_provider.login()
        access_token = token.access_token

        target = await self._request_upload_target(access_token)

        async with self.uploader_factory() as uploader:
            file_id = await uploader.upload(target, payload)
        logger.info(f"File uploaded successfully with ID: {file_id}")

        household_id, creative_tonie_id = parse_tonie_key(tonie_id)
        await self.directory.find_household(access_token, household_id)
        await self.directory.find_creative_tonie(access_token, household_id, creative_tonie_id)

        chapter_endpoint = CHAPTERS_ENDPOINT.format(
            household_id=household_id,
            creative_tonie_id=creative_tonie_id,
        )
        logger.info(f"Adding chapter {title!r} via {chapter_endpoint}")
        try:
            chapter_data = await self.api.post(
                chapter_endpoint,
                access_token,
                body=ChapterRequest(title=title, file=file_id).model_dump(),
            )
        except UpstreamApiFailed as e:
            logger.error(f"Add chapter failed: {e.details}")
            raise e.with_context(
                "Failed to add chapter to Creative-Tonie",
                debug={
                    "householdId": household_id,
                    "creativeTonieId": creative_tonie_id,
                    "chapterEndpoint": chapter_endpoint,
                    "fileId": file_id,
                    "title": title,
                },
            )

        return {"fileId": file_id, "chapterData": chapter_data}

    async def upload_from_device(self, raw_body: bytes, content_type: Optional[str]) -> Dict[str, Any]:
        if not content_type or "multipart/form-data" not in content_type.lower():
            raise InvalidContentType()

        form = decode_multipart(raw_body, content_type, strict=self.config.strict_multipart)
        app_password = form.fields.get("appPassword")
        tonie_id = form.fields.get("tonieId")
        title = form.fields.get("title")

        logger.info(
            f"Device upload request: tonieId={tonie_id}, title={title!r}, "
            f"filename={form.file.filename if form.file else None}, "
            f"fileSize={len(form.file.content) if form.file else None}"
        )

        if not app_password or not tonie_id or not title or form.file is None or not form.file.content:
            raise MissingFields(
                "Missing required fields: appPassword, tonieId, title, and file are required",
                debug={
                    "hasAppPassword": bool(app_password),
                    "hasTonieId": bool(tonie_id),
                    "hasTitle": bool(title),
                    "hasFileData": bool(form.file and form.file.content),
                    "filename": form.file.filename if form.file else "",
                },
            )

        self.gate.require(app_password)

        payload = AudioPayload.from_bytes(form.file.content, form.file.filename)
        ensure_valid_payload(
            payload.size_bytes,
            payload.filename,
            self.config.max_upload_bytes,
            self.config.max_filename_length,
            self.config.supported_formats,
        )

        if self._is_debug_title(title):
            return self._debug_response(payload, title, tonie_id)

        result = await self._upload_and_link(payload, tonie_id, title)
        return {
            "success": True,
            "message": f'Successfully uploaded "{payload.filename}" as chapter "{title}"',
            "fileId": result["fileId"],
            "chapterData": result["chapterData"],
            "timestamp": iso_timestamp(),
        }

    async def upload_from_url(
        self,
        app_password: Optional[str],
        tonie_id: Optional[str],
        title: Optional[str],
        url: Optional[str],
    ) -> Dict[str, Any]:
        logger.info(f"YouTube upload request: tonieId={tonie_id}, title={title!r}, url={'provided' if url else 'missing'}")

        if not app_password or not tonie_id or not title or not url:
            raise MissingFields(
                "Missing required fields",
                details="appPassword, tonieId, title, and url are required",
            )

        self.gate.require(app_password)

        resolved = await self.fetcher.resolve(url)
        video = resolved.info
        filename = self.fetcher.filename_for(video)
        logger.info(f"Generated filename: {filename}")

        # Size is only known after the download
        ensure_valid_payload(
            0,
            filename,
            self.config.max_remote_bytes,
            self.config.max_filename_length,
            self.config.supported_formats,
            check_size=False,
        )

        async with temporary_download(self.config.tmp_dir, video.video_id) as tmp_path:
            fetched = await self.fetcher.fetch(url, tmp_path, resolved=resolved)

            ensure_valid_payload(
                fetched.size_bytes,
                filename,
                self.config.max_remote_bytes,
                self.config.max_filename_length,
                self.config.supported_formats,
                message="Downloaded file validation failed",
            )

            content = await asyncio.to_thread(tmp_path.read_bytes)
            payload = AudioPayload.from_bytes(content, filename)

            if self._is_debug_title(title):
                return self._debug_response(payload, title, tonie_id)

            result = await self._upload_and_link(payload, tonie_id, title)

        return {
            "success": True,
            "message": f'Successfully uploaded "{video.title}" as chapter "{title}"',
            "videoInfo": {
                "title": video.title,
                "author": video.author,
                "duration": video.duration,
                "videoId": video.video_id,
            },
            "fileId": result["fileId"],
            "filename": filename,
            "fileSize": payload.size_bytes,
            "chapterData": result["chapterData"],
            "timestamp": iso_timestamp(),
        }
