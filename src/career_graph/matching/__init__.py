"""Relevance matching of graph entities against request contexts."""

from .context import INTENT_KEYWORDS, RequestContext
from .matcher import FieldRequest, Match, MatchPolicy, RelevanceMatcher, Suggestion

__all__ = ["INTENT_KEYWORDS", "FieldRequest", "Match", "MatchPolicy", "RelevanceMatcher", "RequestContext", "Suggestion"]
