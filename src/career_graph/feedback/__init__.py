"""Feedback ledger and the learning loop that feeds it back into the graph."""

from .learner import GraphLearner, LearningPolicy
from .ledger import FeedbackLedger
from .models import FeedbackRecord, Verdict, VerdictReport

__all__ = ["FeedbackLedger", "FeedbackRecord", "GraphLearner", "LearningPolicy", "Verdict", "VerdictReport"]
