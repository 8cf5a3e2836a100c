"""
Media upload orchestration.

Images go up in one request. GIFs and videos use the chunked
INIT/APPEND/FINALIZE protocol, followed by status polling while the server
processes the media. Upload sessions live only in memory: a process that
dies mid-upload leaves an orphaned upload that cannot be resumed.
"""

import base64
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Union

from .errors import (
    AppendFailed,
    FileTooLarge,
    FinalizeFailed,
    ProcessingFailed,
    ProcessingTimeout,
    UnsupportedType,
    UploadInitFailed,
    XApiError,
)

if TYPE_CHECKING:
    from xc_cli.sdk.guarded_client import GuardedClient

logger = logging.getLogger(__name__)

MIB = 1024 * 1024
CHUNK_SIZE = 5 * MIB
DEFAULT_POLL_SECS = 5
MAX_POLL_ATTEMPTS = 60


class MediaCategory(Enum):
    """X media categories; values are the API's category names."""
    IMAGE = "tweet_image"
    GIF = "tweet_gif"
    VIDEO = "tweet_video"


class ProcessingState(Enum):
    """Server-side processing states reported by the status endpoint."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".tiff": "image/tiff",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".ts": "video/mp2t",
}

CATEGORIES = {
    ".jpg": MediaCategory.IMAGE,
    ".jpeg": MediaCategory.IMAGE,
    ".png": MediaCategory.IMAGE,
    ".bmp": MediaCategory.IMAGE,
    ".webp": MediaCategory.IMAGE,
    ".tiff": MediaCategory.IMAGE,
    ".gif": MediaCategory.GIF,
    ".mp4": MediaCategory.VIDEO,
    ".webm": MediaCategory.VIDEO,
    ".mov": MediaCategory.VIDEO,
    ".ts": MediaCategory.VIDEO,
}

SIZE_LIMITS = {
    MediaCategory.IMAGE: 5 * MIB,
    MediaCategory.GIF: 15 * MIB,
    MediaCategory.VIDEO: 512 * MIB,
}


@dataclass
class MediaUploadSession:
    """In-memory state of one upload."""
    file_path: Path
    media_type: str
    media_category: MediaCategory
    total_bytes: int
    media_id: Optional[str] = None
    bytes_sent: int = 0
    segment_index: int = 0
    processing_state: ProcessingState = ProcessingState.PENDING

    @property
    def is_chunked(self) -> bool:
        return self.media_category != MediaCategory.IMAGE


def inspect_media(file_path: Union[str, Path]) -> MediaUploadSession:
    """Validate a file and choose its upload strategy.

    No network activity happens here, so an invalid file is rejected
    before anything is sent or logged.

    Raises:
        FileNotFoundError: If the file does not exist
        UnsupportedType: If the extension is not a supported media type
        FileTooLarge: If the file exceeds its category ceiling
    """
    path = Path(file_path)
    ext = path.suffix.lower()
    media_type = MIME_TYPES.get(ext)
    if media_type is None:
        raise UnsupportedType(f"Unsupported file type: {ext or path.name}")
    if not path.is_file():
        raise FileNotFoundError(f"file not found: {path}")

    category = CATEGORIES[ext]
    size = path.stat().st_size
    limit = SIZE_LIMITS[category]
    if size > limit:
        raise FileTooLarge(
            f"File too large ({round(size / MIB)}MB). "
            f"{category.value} limit is {limit // MIB}MB."
        )

    return MediaUploadSession(
        file_path=path,
        media_type=media_type,
        media_category=category,
        total_bytes=size,
    )


def _data(response: Dict[str, Any]) -> Dict[str, Any]:
    return (response or {}).get("data") or {}


def _media_id(response: Dict[str, Any]) -> Optional[str]:
    data = _data(response)
    media_id = data.get("id") or data.get("media_id_string") or data.get("media_id")
    return str(media_id) if media_id else None


def _processing_info(response: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return _data(response).get("processing_info")


def _parse_state(value: Any) -> ProcessingState:
    try:
        return ProcessingState(str(value).lower())
    except ValueError:
        return ProcessingState.IN_PROGRESS


class MediaUploader:
    """Drives one-shot and chunked uploads through a GuardedClient."""

    def __init__(
        self,
        client: "GuardedClient",
        chunk_size: int = CHUNK_SIZE,
        poll_default_secs: float = DEFAULT_POLL_SECS,
        max_poll_attempts: int = MAX_POLL_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self.client = client
        self.chunk_size = chunk_size
        self.poll_default_secs = poll_default_secs
        self.max_poll_attempts = max_poll_attempts
        self.sleep = sleep
        self.on_progress = on_progress

    def upload(self, file_path: Union[str, Path]) -> str:
        """Upload a file and return its media id."""
        return self.upload_session(inspect_media(file_path))

    def upload_session(self, session: MediaUploadSession) -> str:
        """Upload a file already validated by inspect_media."""
        logger.info(
            "Uploading %s (%s, %d bytes, %s)",
            session.file_path.name,
            session.media_category.value,
            session.total_bytes,
            "chunked" if session.is_chunked else "one-shot",
        )
        if session.is_chunked:
            return self._chunked_upload(session)
        return self._one_shot_upload(session)

    def _one_shot_upload(self, session: MediaUploadSession) -> str:
        encoded = base64.b64encode(session.file_path.read_bytes()).decode("ascii")
        try:
            result = self.client.media.upload(
                encoded, session.media_type, session.media_category.value
            )
        except XApiError as e:
            raise UploadInitFailed(f"Upload failed: {e}") from e

        media_id = _media_id(result)
        if not media_id:
            raise UploadInitFailed("Upload failed (no media ID returned)")
        session.media_id = media_id
        session.bytes_sent = session.total_bytes
        session.processing_state = ProcessingState.SUCCEEDED
        return media_id

    def _chunked_upload(self, session: MediaUploadSession) -> str:
        try:
            init = self.client.media.initialize_upload(
                session.media_type, session.media_category.value, session.total_bytes
            )
        except XApiError as e:
            raise UploadInitFailed(f"Failed to initialize upload: {e}") from e

        session.media_id = _media_id(init)
        if not session.media_id:
            raise UploadInitFailed("Failed to initialize upload (no media ID returned)")

        self._append_segments(session)

        try:
            final = self.client.media.finalize_upload(session.media_id)
        except XApiError as e:
            raise FinalizeFailed(f"FINALIZE failed: {e}") from e

        if session.media_category == MediaCategory.VIDEO or _processing_info(final):
            self.wait_for_processing(session)
        else:
            session.processing_state = ProcessingState.SUCCEEDED
        return session.media_id

    def _append_segments(self, session: MediaUploadSession) -> None:
        # Any failed segment aborts the whole upload
        with open(session.file_path, "rb") as f:
            while session.bytes_sent < session.total_bytes:
                want = min(self.chunk_size, session.total_bytes - session.bytes_sent)
                chunk = f.read(want)
                if len(chunk) != want:
                    raise AppendFailed(
                        f"APPEND failed (segment {session.segment_index}): file changed during upload",
                        session.segment_index,
                    )
                try:
                    self.client.media.append_upload(
                        session.media_id, session.segment_index, chunk, session.file_path.name
                    )
                except XApiError as e:
                    raise AppendFailed(
                        f"APPEND failed (segment {session.segment_index}): {e}",
                        session.segment_index,
                    ) from e

                session.bytes_sent += len(chunk)
                session.segment_index += 1
                if self.on_progress:
                    self.on_progress(session.bytes_sent, session.total_bytes)

    def wait_for_processing(self, session: MediaUploadSession) -> None:
        """Poll the status endpoint until processing finishes.

        Raises:
            ProcessingFailed: If the server reports a failure
            ProcessingTimeout: If max_poll_attempts queries all report pending work
        """
        session.processing_state = ProcessingState.IN_PROGRESS
        for attempt in range(1, self.max_poll_attempts + 1):
            status = self.client.media.get_upload_status(session.media_id)
            info = _processing_info(status)
            if not info:
                session.processing_state = ProcessingState.SUCCEEDED
                return

            state = _parse_state(info.get("state"))
            session.processing_state = state
            if state == ProcessingState.SUCCEEDED:
                return
            if state == ProcessingState.FAILED:
                message = (info.get("error") or {}).get("message") or "unknown error"
                raise ProcessingFailed(f"Media processing failed: {message}")

            wait_secs = info.get("check_after_secs") or self.poll_default_secs
            logger.info(
                "Processing %s (attempt %d/%d, check again in %ss)",
                session.media_id, attempt, self.max_poll_attempts, wait_secs,
            )
            self.sleep(wait_secs)

        raise ProcessingTimeout(
            f"Media processing timed out after {self.max_poll_attempts} status checks"
        )


def upload_media(client: "GuardedClient", file_path: Union[str, Path], **kwargs) -> str:
    """Upload a file with default settings and return its media id."""
    return MediaUploader(client, **kwargs).upload(file_path)
