"""
Data models for the knowledge base client.

Wire payloads use camelCase keys; the dataclasses here use snake_case and
convert with to_dict()/from_dict().
"""

import dataclasses
import time
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Optional


def _timestamp() -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S")


def format_file_size(size: int) -> str:
    """
    Format a byte count for display.

    Args:
        size: Size in bytes

    Returns:
        Formatted string, e.g. '512 B', '1.5 KB', '2.0 MB'
    """
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


@dataclasses.dataclass(frozen=True)
class KnowledgeBaseEntry:
    """
    A knowledge base as listed by the service.

    Attributes:
        id: Server-assigned identifier
        name: Display name
        original_filename: Name of the uploaded file
        file_size: Size of the uploaded file in bytes
        content_type: Detected MIME type
        uploaded_at: Upload timestamp
        last_accessed_at: Last query timestamp
        access_count: Number of accesses
        question_count: Number of questions answered against it
    """
    id: int
    name: str
    original_filename: str = ''
    file_size: int = 0
    content_type: str = ''
    uploaded_at: str = ''
    last_accessed_at: str = ''
    access_count: int = 0
    question_count: int = 0

    def to_dict(self) -> dict:
        """Convert to the wire representation."""
        return {
            'id': self.id,
            'name': self.name,
            'originalFilename': self.original_filename,
            'fileSize': self.file_size,
            'contentType': self.content_type,
            'uploadedAt': self.uploaded_at,
            'lastAccessedAt': self.last_accessed_at,
            'accessCount': self.access_count,
            'questionCount': self.question_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'KnowledgeBaseEntry':
        """Create from the wire representation."""
        return cls(
            id=int(data['id']),
            name=data.get('name') or '',
            original_filename=data.get('originalFilename') or '',
            file_size=int(data.get('fileSize') or 0),
            content_type=data.get('contentType') or '',
            uploaded_at=data.get('uploadedAt') or '',
            last_accessed_at=data.get('lastAccessedAt') or '',
            access_count=int(data.get('accessCount') or 0),
            question_count=int(data.get('questionCount') or 0),
        )

    @property
    def display_size(self) -> str:
        return format_file_size(self.file_size)


@dataclasses.dataclass(frozen=True)
class UploadResult:
    """
    Descriptor returned by a successful upload.

    `duplicate` means the service recognized identical content and reused the
    stored file. It says nothing about whether the registry entry is new.
    """
    id: int
    name: str
    file_size: int
    content_length: int
    file_key: str
    file_url: str
    duplicate: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> 'UploadResult':
        """Create from the wire representation."""
        kb = data.get('knowledgeBase') or {}
        storage = data.get('storage') or {}
        return cls(
            id=int(kb['id']),
            name=kb.get('name') or '',
            file_size=int(kb.get('fileSize') or 0),
            content_length=int(kb.get('contentLength') or 0),
            file_key=storage.get('fileKey') or '',
            file_url=storage.get('fileUrl') or '',
            duplicate=bool(data.get('duplicate', False)),
        )


@dataclasses.dataclass(frozen=True)
class QueryAnswer:
    """Answer returned by the query endpoint."""
    answer: str
    knowledge_base_id: Optional[int] = None
    knowledge_base_name: str = ''

    @classmethod
    def from_dict(cls, data: dict) -> 'QueryAnswer':
        """Create from the wire representation."""
        kb_id = data.get('knowledgeBaseId')
        return cls(
            answer=data.get('answer') or '',
            knowledge_base_id=int(kb_id) if kb_id is not None else None,
            knowledge_base_name=data.get('knowledgeBaseName') or '',
        )


class Role(Enum):
    """Author of a query turn."""
    USER = 'user'
    ASSISTANT = 'assistant'


@dataclasses.dataclass(frozen=True)
class QueryTurn:
    """
    One question or answer in a transcript.

    Turns are never modified once appended. A failed question is recorded as
    an assistant turn with is_error set.
    """
    role: Role
    content: str
    created_at: str = dataclasses.field(default_factory=_timestamp)
    knowledge_base_id: Optional[int] = None
    knowledge_base_name: str = ''
    is_error: bool = False

    @classmethod
    def user(cls, content: str) -> 'QueryTurn':
        return cls(role=Role.USER, content=content)

    @classmethod
    def answer(cls, answer: QueryAnswer) -> 'QueryTurn':
        return cls(
            role=Role.ASSISTANT,
            content=answer.answer,
            knowledge_base_id=answer.knowledge_base_id,
            knowledge_base_name=answer.knowledge_base_name,
        )

    @classmethod
    def failure(cls, message: str) -> 'QueryTurn':
        return cls(role=Role.ASSISTANT, content=message, is_error=True)

    def to_message(self) -> dict:
        """Convert to a chat message dict ({'role', 'content'})."""
        return {'role': self.role.value, 'content': self.content}


@dataclasses.dataclass
class UploadDraft:
    """
    A file picked for upload but not yet accepted by the service.

    Attributes:
        file_path: Local file to send
        file_size: Size in bytes at selection time
        name: Optional display name override
    """
    file_path: Path
    file_size: int
    name: Optional[str] = None

    @classmethod
    def from_path(cls, file_path: Path, name: Optional[str] = None) -> 'UploadDraft':
        file_path = Path(file_path)
        size = file_path.stat().st_size if file_path.is_file() else 0
        return cls(file_path=file_path, file_size=size, name=name)

    @property
    def effective_name(self) -> Optional[str]:
        """Name override to send, None when blank."""
        if self.name is None:
            return None
        name = self.name.strip()
        return name or None


@dataclasses.dataclass(frozen=True)
class PendingDeletion:
    """Target of an open delete confirmation."""
    kb_id: int
    name: str

    @property
    def prompt(self) -> str:
        return f'确定要删除知识库"{self.name}"吗？删除后无法恢复。'


@dataclasses.dataclass(frozen=True)
class TranscriptSnapshot:
    """Read-only copy of a transcript."""
    turns: tuple
    scope: Optional[FrozenSet[int]]
    epoch: int
