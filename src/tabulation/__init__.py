"""
Tabulation module for ranked-choice (instant-runoff) elections.

- tabulate / IRVTabulator: single-winner instant-runoff count
- ResultsVerifier: independent recount and invariant checks of a result
- PyRankVoteCrossCheck: winner cross-check against the PyRankVote library
"""

from .cross_check import PyRankVoteCrossCheck
from .irv import (
    MAX_ROUNDS,
    Ballot,
    Candidate,
    IRVTabulator,
    Ranking,
    RoundResult,
    TabulationResult,
    majority_threshold,
    tabulate,
)
from .verification import ResultsVerifier

__all__ = [
    "tabulate",
    "IRVTabulator",
    "majority_threshold",
    "MAX_ROUNDS",
    "Ballot",
    "Candidate",
    "Ranking",
    "RoundResult",
    "TabulationResult",
    "ResultsVerifier",
    "PyRankVoteCrossCheck",
]
