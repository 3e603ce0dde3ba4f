"""
Qwen file upload.

1. ``POST /api/v2/files/getstsToken`` returns STS credentials and an
   object location in the vendor bucket
2. The file is ``PUT`` straight to the bucket with an OSS v4 signature
3. The returned ``QwenFile`` descriptor is attached to the next message
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, NamedTuple

import orjson
from pydantic import ValidationError

from ....core.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    ProviderApiError,
    ProviderResponseError,
)
from ....signing.oss import OssCredentials, OssObject, sign_upload
from ...async_session import AsyncSessionManager
from .chats import read_json
from .constants import BASE_URL, PROVIDER, build_headers
from .models import FileMeta, FileObject, QwenFile, StsTokenData

logger = logging.getLogger("reverse_api.providers.webchat")


class FileKind(NamedTuple):
    filetype: str
    file_class: str
    show_type: str
    content_type: str


_IMAGE = ("image", "vision", "image")
_VIDEO = ("video", "video", "file")
_AUDIO = ("audio", "audio", "file")
_DOCUMENT = ("file", "document", "file")

FILE_KINDS: dict[str, FileKind] = {
    "jpg": FileKind(*_IMAGE, "image/jpeg"),
    "jpeg": FileKind(*_IMAGE, "image/jpeg"),
    "png": FileKind(*_IMAGE, "image/png"),
    "gif": FileKind(*_IMAGE, "image/gif"),
    "webp": FileKind(*_IMAGE, "image/webp"),
    "bmp": FileKind(*_IMAGE, "image/bmp"),
    "mp4": FileKind(*_VIDEO, "video/mp4"),
    "avi": FileKind(*_VIDEO, "video/x-msvideo"),
    "mov": FileKind(*_VIDEO, "video/quicktime"),
    "mkv": FileKind(*_VIDEO, "video/x-matroska"),
    "mp3": FileKind(*_AUDIO, "audio/mpeg"),
    "wav": FileKind(*_AUDIO, "audio/wav"),
    "m4a": FileKind(*_AUDIO, "audio/mp4"),
    "flac": FileKind(*_AUDIO, "audio/flac"),
    "txt": FileKind(*_DOCUMENT, "text/plain"),
    "md": FileKind(*_DOCUMENT, "text/markdown"),
    "pdf": FileKind(*_DOCUMENT, "application/pdf"),
    "doc": FileKind(*_DOCUMENT, "application/msword"),
    "docx": FileKind(
        *_DOCUMENT,
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ),
    "csv": FileKind(*_DOCUMENT, "text/csv"),
    "xls": FileKind(*_DOCUMENT, "application/vnd.ms-excel"),
    "xlsx": FileKind(
        *_DOCUMENT,
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ),
}
DEFAULT_FILE_KIND = FileKind(*_DOCUMENT, "application/octet-stream")


def file_kind(path: Path | str) -> FileKind:
    return FILE_KINDS.get(Path(path).suffix.lstrip(".").lower(), DEFAULT_FILE_KIND)


class FileUploader:
    def __init__(
        self,
        session: AsyncSessionManager,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def request_sts_token(
        self, token: str, filename: str, filesize: int, filetype: str
    ) -> StsTokenData:
        response = await self.session.post(
            f"{BASE_URL}/api/v2/files/getstsToken",
            headers=build_headers(token),
            data=orjson.dumps({"filename": filename, "filesize": filesize, "filetype": filetype}),
        )
        data = read_json(response)
        if not data.get("success"):
            raise ProviderApiError(PROVIDER, data.get("code"), f"STS token: {response.text}")
        try:
            return StsTokenData.model_validate(data.get("data"))
        except ValidationError as e:
            raise MalformedResponseError(PROVIDER, "STS token data", response.text, cause=e)

    async def put_object(self, sts: StsTokenData, content: bytes, content_type: str) -> None:
        signed = sign_upload(
            OssCredentials(sts.access_key_id, sts.access_key_secret, sts.security_token),
            OssObject(sts.bucketname, sts.region, sts.file_path, content_type),
            self._clock(),
        )
        response = await self.session.put(
            f"https://{sts.bucketname}.{sts.endpoint}/{sts.file_path}",
            headers=signed.headers,
            data=content,
        )
        if not 200 <= response.status_code < 300:
            raise ProviderResponseError(PROVIDER, response.status_code, response.text)

    async def upload_file(self, token: str, file_path: Path | str, user_id: str) -> QwenFile:
        path = Path(file_path)
        if not path.is_file():
            raise ConfigurationError(
                f"File not found: {path}",
                details={"path": str(path)},
                recoverable=False,
            )

        content = await asyncio.to_thread(path.read_bytes)
        kind = file_kind(path)
        sts = await self.request_sts_token(token, path.name, len(content), kind.filetype)
        await self.put_object(sts, content, kind.content_type)
        logger.info(f"Uploaded {path.name} ({len(content)} bytes) to Qwen")

        now_ms = int(time.time() * 1000)
        return QwenFile(
            type=kind.filetype,
            file=FileObject(
                id=sts.file_id,
                filename=path.name,
                user_id=user_id,
                created_at=now_ms,
                update_at=now_ms,
                meta=FileMeta(name=path.name, content_type=kind.content_type, size=len(content)),
            ),
            id=sts.file_id,
            url=sts.file_url,
            name=path.name,
            green_net="greening" if kind.filetype == "video" else "success",
            size=len(content),
            item_id=str(uuid.uuid4()),
            file_type=kind.content_type,
            show_type=kind.show_type,
            file_class=kind.file_class,
            upload_task_id=str(uuid.uuid4()),
        )
