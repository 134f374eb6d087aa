"""
Knowledge base registry and selection.

Tracks which knowledge bases exist on the service and which of them are
selected for question answering.
"""

from .registry import KnowledgeBaseRegistry
from .selection import SelectionSet

__all__ = ['KnowledgeBaseRegistry', 'SelectionSet']
