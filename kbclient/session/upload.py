"""
Upload session: pick a file, submit it, report the result.
"""

import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from ..errors import ValidationError, error_message
from ..knowledge_base.registry import KnowledgeBaseRegistry, log_refresh_failure
from ..models import UploadDraft, UploadResult, format_file_size
from ..worker import Future, chain

logger = logging.getLogger(__name__)

ACCEPTED_EXTENSIONS = ('.pdf', '.doc', '.docx', '.txt', '.md')
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
UPLOAD_FAILED_MESSAGE = '上传失败，请重试'


def get_upload_max_bytes() -> int:
    """
    Get the client-side upload size limit.

    Returns:
        Limit in bytes (KB_UPLOAD_MAX_BYTES, default 50 MB)
    """
    value = os.environ.get('KB_UPLOAD_MAX_BYTES')
    return int(value) if value else DEFAULT_MAX_UPLOAD_BYTES


class UploadState(Enum):
    """Upload session state."""
    IDLE = 'idle'
    UPLOADING = 'uploading'
    ERROR = 'error'


class UploadSession:
    """
    Manages one file selection and its upload.

    The size check here only saves a round trip; the service enforces its own
    limit. After a failure the draft is kept so the same file can be
    resubmitted.
    """

    def __init__(self,
                 channel,
                 registry: Optional[KnowledgeBaseRegistry] = None,
                 lock: Optional[threading.RLock] = None,
                 max_bytes: Optional[int] = None):
        """
        Initialize the upload session.

        Args:
            channel: Request channel returning Futures from submit()
            registry: Registry to refresh after a successful upload
            lock: Lock shared with the rest of the session
            max_bytes: Upload size limit (None = KB_UPLOAD_MAX_BYTES or 50 MB)
        """
        self._channel = channel
        self._registry = registry
        self._lock = lock or threading.RLock()
        self._max_bytes = max_bytes if max_bytes is not None else get_upload_max_bytes()
        self._state = UploadState.IDLE
        self._draft: Optional[UploadDraft] = None
        self._error: Optional[str] = None
        self._last_result: Optional[UploadResult] = None
        self._last_refresh: Optional[Future] = None
        self._listeners: List[Callable[[UploadResult], None]] = []

    @property
    def state(self) -> UploadState:
        with self._lock:
            return self._state

    @property
    def draft(self) -> Optional[UploadDraft]:
        with self._lock:
            return self._draft

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def last_result(self) -> Optional[UploadResult]:
        with self._lock:
            return self._last_result

    @property
    def last_refresh(self) -> Optional[Future]:
        """Refresh issued after the most recent successful upload."""
        with self._lock:
            return self._last_refresh

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def add_completion_listener(self, listener: Callable[[UploadResult], None]) -> None:
        """Register a callback for successful uploads."""
        self._listeners.append(listener)

    def select_file(self, file_path: Path, name: Optional[str] = None) -> bool:
        """
        Pick the file to upload, replacing any previous draft.

        Args:
            file_path: Local file
            name: Optional display name override

        Returns:
            False if an upload is in progress, True otherwise
        """
        with self._lock:
            if self._state is UploadState.UPLOADING:
                return False
            self._draft = UploadDraft.from_path(Path(file_path), name=name)
            self._error = None
            return True

    def set_name(self, name: Optional[str]) -> bool:
        """Set the display name override of the current draft."""
        with self._lock:
            if self._draft is None or self._state is UploadState.UPLOADING:
                return False
            self._draft.name = name
            return True

    def reset(self) -> bool:
        """Discard the draft and any error."""
        with self._lock:
            if self._state is UploadState.UPLOADING:
                return False
            self._draft = None
            self._error = None
            self._state = UploadState.IDLE
            return True

    def validate(self) -> UploadDraft:
        """
        Check the current draft before sending it.

        Returns:
            The draft

        Raises:
            ValidationError: If the draft is missing, empty, of an unsupported
                type or too large
        """
        draft = self._draft
        if draft is None:
            raise ValidationError('请先选择文件')
        if not draft.file_path.is_file():
            raise ValidationError(f'文件不存在: {draft.file_path.name}')
        size = draft.file_path.stat().st_size
        if size == 0:
            raise ValidationError('文件为空')
        if draft.file_path.suffix.lower() not in ACCEPTED_EXTENSIONS:
            raise ValidationError('仅支持 PDF、DOCX、DOC、TXT、MD 格式')
        if size > self._max_bytes:
            raise ValidationError(
                f'文件过大（{format_file_size(size)}），最大 {format_file_size(self._max_bytes)}'
            )
        draft.file_size = size
        return draft

    def submit(self) -> Optional[Future]:
        """
        Upload the current draft.

        Returns:
            Future resolving to the UploadResult (None on failure, with the
            message in `error`), or None if nothing was sent
        """
        with self._lock:
            if self._state is UploadState.UPLOADING:
                return None
            try:
                draft = self.validate()
            except ValidationError as e:
                self._error = e.message
                print(f'[UploadSession] Upload rejected: {e.message}')
                return None
            self._state = UploadState.UPLOADING
            self._error = None

        print(f'[UploadSession] Uploading {draft.file_path.name} ({format_file_size(draft.file_size)})')

        def _on_result(result: UploadResult) -> UploadResult:
            with self._lock:
                self._state = UploadState.IDLE
                self._draft = None
                self._last_result = result
            notice = ' (duplicate content, existing storage reused)' if result.duplicate else ''
            print(f'[UploadSession] Uploaded knowledge base {result.id}: {result.name}{notice}')
            if self._registry is not None:
                refresh = self._registry.refresh()
                refresh.add_done_callback(log_refresh_failure)
                with self._lock:
                    self._last_refresh = refresh
            for listener in self._listeners:
                try:
                    listener(result)
                except Exception:
                    logger.exception(f'[UploadSession] Completion listener failed for knowledge base {result.id}')
            return result

        def _on_error(exc: Exception) -> None:
            with self._lock:
                self._state = UploadState.ERROR
                self._error = error_message(exc, UPLOAD_FAILED_MESSAGE)
            print(f'[UploadSession] Upload failed: {self._error}')
            return None

        return chain(
            self._channel.submit('upload', draft.file_path, draft.effective_name),
            _on_result,
            _on_error,
        )
