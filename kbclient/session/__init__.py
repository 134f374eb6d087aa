"""
Interactive session components: upload, question answering and deletion.
"""

from .deletion import DeletionState, DeletionWorkflow
from .query import QuerySession, QueryState, Transcript
from .session import KnowledgeBaseSession
from .upload import UploadSession, UploadState

__all__ = [
    'DeletionState', 'DeletionWorkflow',
    'QuerySession', 'QueryState', 'Transcript',
    'KnowledgeBaseSession',
    'UploadSession', 'UploadState',
]
