"""
readalong - Online read-along alignment.

Follows a reader through a reference text using a stream of recognized
phrases: a beam-search aligner marks each word correct, incorrect or skipped,
and an auto-backtrack policy rolls the position back when it drifts.
"""

__version__ = "0.1.0"

from .aligner import AlignerSettings, BeamAligner
from .backtrack import BacktrackController, RollbackPlan
from .decision_buffer import DecisionBuffer, DecisionRecord
from .hooks import SessionHooks
from .server import ReadAlongServer
from .session import ReadingSession
from .similarity import combined_similarity, similarity

__all__ = [
    "AlignerSettings",
    "BeamAligner",
    "BacktrackController",
    "RollbackPlan",
    "DecisionBuffer",
    "DecisionRecord",
    "SessionHooks",
    "ReadingSession",
    "ReadAlongServer",
    "similarity",
    "combined_similarity",
]
