"""
Client for a knowledge base question answering service.

Upload documents as knowledge bases, select some of them, and ask questions
answered from their content.
"""

from .api import KnowledgeBaseAPI
from .errors import (
    DeletionError, KnowledgeBaseError, RemoteError, TransportError, ValidationError
)
from .models import KnowledgeBaseEntry, QueryAnswer, QueryTurn, Role, UploadResult
from .session import KnowledgeBaseSession

__all__ = [
    'KnowledgeBaseAPI',
    'DeletionError', 'KnowledgeBaseError', 'RemoteError', 'TransportError', 'ValidationError',
    'KnowledgeBaseEntry', 'QueryAnswer', 'QueryTurn', 'Role', 'UploadResult',
    'KnowledgeBaseSession',
]
