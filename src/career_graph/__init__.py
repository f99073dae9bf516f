"""
career_graph - a local knowledge graph of professional entities that learns from feedback
"""

from .errors import (
    CareerGraphError,
    ConflictError,
    NotFoundError,
    QueryTimeoutError,
    StorageError,
    ValidationError,
)
from .feedback import FeedbackLedger, GraphLearner, Verdict, VerdictReport
from .knowledge_graph import GraphQueryEngine, SQLiteEntityStore
from .matching import RelevanceMatcher, RequestContext

__version__ = "0.1.0"

__all__ = [
    "CareerGraphError",
    "ConflictError",
    "FeedbackLedger",
    "GraphLearner",
    "GraphQueryEngine",
    "NotFoundError",
    "QueryTimeoutError",
    "RelevanceMatcher",
    "RequestContext",
    "SQLiteEntityStore",
    "StorageError",
    "ValidationError",
    "Verdict",
    "VerdictReport",
]
