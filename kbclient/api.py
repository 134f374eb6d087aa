"""
HTTP client for the knowledge base service.

Every response is wrapped in a {code, message, data} envelope. A non-success
code is raised as RemoteError; on success only `data` is returned.
"""

import json
import mimetypes
import os
import time
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

import requests

from .errors import RemoteError, TransportError
from .models import KnowledgeBaseEntry, QueryAnswer, UploadResult

DEFAULT_API_URL = 'http://localhost:8080'
DEFAULT_TIMEOUT = 180.0
API_PREFIX = '/api/knowledgebase'
SUCCESS_CODE = 200


def get_api_config() -> Tuple[str, float]:
    """
    Get API configuration from environment variables.

    Returns:
        Tuple of (base_url, timeout_seconds)
    """
    base_url = os.environ.get('KB_API_URL') or DEFAULT_API_URL
    timeout = os.environ.get('KB_API_TIMEOUT')
    timeout = float(timeout) if timeout else DEFAULT_TIMEOUT
    return base_url.rstrip('/'), timeout


def unwrap_envelope(payload: Any) -> Any:
    """
    Unwrap a response envelope.

    Args:
        payload: Decoded JSON body

    Returns:
        The envelope's data field

    Raises:
        RemoteError: If the envelope is malformed or its code is not a success
    """
    if not isinstance(payload, dict) or 'code' not in payload:
        raise RemoteError('响应格式错误')
    code = payload.get('code')
    if code != SUCCESS_CODE:
        raise RemoteError(payload.get('message') or '请求失败', code=code)
    return payload.get('data')


class KnowledgeBaseAPI:
    """
    Client for the knowledge base REST endpoints.

    Network failures and timeouts are raised as TransportError, service-side
    failures as RemoteError.
    """

    def __init__(self,
                 base_url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            base_url: Service base URL (None = KB_API_URL or default)
            timeout: Per-request timeout in seconds (None = KB_API_TIMEOUT or 180)
            session: Optional requests session to reuse
        """
        env_url, env_timeout = get_api_config()
        self._base_url = (base_url or env_url).rstrip('/')
        self._timeout = timeout if timeout is not None else env_timeout
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    def _url(self, path: str) -> str:
        return f'{self._base_url}{API_PREFIX}{path}'

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Perform a request and unwrap the response envelope.

        The requests timeout only bounds the connect and each wait between
        reads, so the body is streamed and the whole call is held to the
        same ceiling.
        """
        url = self._url(path)
        deadline = time.monotonic() + self._timeout
        try:
            response = self._session.request(method, url, timeout=self._timeout, stream=True, **kwargs)
            try:
                body = self._read_body(response, deadline)
            finally:
                response.close()
        except requests.Timeout as e:
            raise TransportError(f'请求超时（{self._timeout:g} 秒），请稍后重试') from e
        except requests.RequestException as e:
            raise TransportError(f'网络错误: {e}') from e

        try:
            payload = json.loads(body) if body else None
        except ValueError:
            payload = None

        if not 200 <= response.status_code < 300:
            message = payload.get('message') if isinstance(payload, dict) else None
            raise RemoteError(message or f'请求失败，状态码: {response.status_code}',
                              code=response.status_code)

        if payload is None:
            raise RemoteError('响应格式错误')

        return unwrap_envelope(payload)

    @staticmethod
    def _read_body(response: requests.Response, deadline: float) -> bytes:
        chunks = []
        for chunk in response.iter_content(chunk_size=8192):
            if time.monotonic() > deadline:
                raise requests.Timeout('Response body not received before the request deadline')
            chunks.append(chunk)
        return b''.join(chunks)

    def list_knowledge_bases(self) -> List[KnowledgeBaseEntry]:
        """
        Get all knowledge bases.

        Returns:
            Entries in the order the service lists them
        """
        data = self._request('GET', '/list')
        return [KnowledgeBaseEntry.from_dict(item) for item in (data or [])]

    def get_knowledge_base(self, kb_id: int) -> KnowledgeBaseEntry:
        """
        Get a single knowledge base.

        Args:
            kb_id: Knowledge base ID

        Returns:
            The entry
        """
        data = self._request('GET', f'/{kb_id}')
        if not data:
            raise RemoteError('知识库不存在')
        return KnowledgeBaseEntry.from_dict(data)

    def upload_knowledge_base(self, file_path: Path, name: Optional[str] = None) -> UploadResult:
        """
        Upload a document as a knowledge base.

        Args:
            file_path: Local file to upload
            name: Optional display name (the service uses the file name if omitted)

        Returns:
            Descriptor of the created or matched knowledge base
        """
        file_path = Path(file_path)
        content_type = mimetypes.guess_type(file_path.name)[0] or 'application/octet-stream'
        form = {'name': (None, name)} if name else {}
        with open(file_path, 'rb') as f:
            files = {'file': (file_path.name, f, content_type), **form}
            data = self._request('POST', '/upload', files=files)
        return UploadResult.from_dict(data or {})

    def delete_knowledge_base(self, kb_id: int) -> None:
        """
        Delete a knowledge base.

        Args:
            kb_id: Knowledge base ID
        """
        self._request('DELETE', f'/{kb_id}')

    def query_knowledge_base(self, kb_ids: Iterable[int], question: str) -> QueryAnswer:
        """
        Ask a question against one or more knowledge bases.

        Args:
            kb_ids: Knowledge base IDs to answer from
            question: The question

        Returns:
            The answer and the knowledge base it is attributed to
        """
        body = {'knowledgeBaseIds': sorted(kb_ids), 'question': question}
        data = self._request('POST', '/query', json=body)
        return QueryAnswer.from_dict(data or {})
