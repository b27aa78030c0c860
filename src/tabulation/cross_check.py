import logging
from typing import Any, Dict, List, Optional, Sequence

import pyrankvote
from pyrankvote import Ballot as PRVBallot
from pyrankvote import Candidate as PRVCandidate

try:
    from .irv import Ballot, Candidate, CandidateId, TabulationResult, tabulate
except ImportError:
    from tabulation.irv import Ballot, Candidate, CandidateId, TabulationResult, tabulate

logger = logging.getLogger(__name__)


class PyRankVoteCrossCheck:
    """
    Recounts an election with PyRankVote's instant-runoff implementation and
    compares the winner with ours.

    PyRankVote breaks ties for last place differently, so a disagreement in an
    election that needed a tie-break is reported but is not necessarily a bug.
    """

    def __init__(self, ballots: Sequence[Ballot], candidates: Sequence[Candidate]):
        """
        Initialize the cross-check.

        Args:
            ballots: Ballots to count
            candidates: Contestants standing in the election
        """
        self.ballots = list(ballots)
        self.candidates = list(candidates)

        # PyRankVote objects
        self.candidates_map: Dict[CandidateId, PRVCandidate] = {}
        self.ballots_data: List[PRVBallot] = []
        self.pyrankvote_result = None

    def _prepare_pyrankvote_data(self):
        """Convert our ballots to PyRankVote format."""
        self.candidates_map = {}
        for candidate in self.candidates:
            if candidate.id not in self.candidates_map:
                # repr keeps int 1 and str "1" apart
                self.candidates_map[candidate.id] = PRVCandidate(repr(candidate.id))

        self.ballots_data = []
        for ballot in self.ballots:
            ranked_candidates = []
            seen_candidates = set()  # PyRankVote rejects repeated candidates

            for candidate_id in ballot.ordered_preferences():
                if (
                    candidate_id in self.candidates_map
                    and candidate_id not in seen_candidates
                ):
                    ranked_candidates.append(self.candidates_map[candidate_id])
                    seen_candidates.add(candidate_id)

            if ranked_candidates:
                self.ballots_data.append(PRVBallot(ranked_candidates=ranked_candidates))

        logger.info(
            f"Prepared {len(self.candidates_map)} candidates and {len(self.ballots_data)} ballots for PyRankVote"
        )

    def _candidate_id_for(self, prv_candidate: PRVCandidate) -> Optional[CandidateId]:
        for candidate_id, mapped in self.candidates_map.items():
            if mapped.name == prv_candidate.name:
                return candidate_id
        return None

    def run_cross_check(
        self, result: Optional[TabulationResult] = None
    ) -> Dict[str, Any]:
        """
        Compare our winner with PyRankVote's.

        Args:
            result: Our tabulation result; computed here when omitted

        Returns:
            Dictionary describing both winners and whether they agree
        """
        if result is None:
            result = tabulate(self.ballots, self.candidates)

        our_winner = result.winner.id if result.winner else None
        tie_encountered = any(
            r.eliminated is not None
            and list(r.votes.values()).count(r.votes[r.eliminated]) > 1
            for r in result.rounds
        )

        report: Dict[str, Any] = {
            "available": False,
            "our_winner": our_winner,
            "pyrankvote_winner": None,
            "agrees": None,
            "tie_encountered": tie_encountered,
            "error": None,
        }

        self._prepare_pyrankvote_data()

        if not self.ballots_data or not self.candidates_map:
            report["error"] = "No valid ballots to cross-check"
            logger.warning(report["error"])
            return report

        try:
            self.pyrankvote_result = pyrankvote.instant_runoff_voting(
                candidates=list(self.candidates_map.values()),
                ballots=self.ballots_data,
            )
        except Exception as e:
            logger.error(f"PyRankVote tabulation failed: {e}")
            report["error"] = str(e)
            return report

        winners = self.pyrankvote_result.get_winners()
        pyrankvote_winner = self._candidate_id_for(winners[0]) if winners else None

        report["available"] = True
        report["pyrankvote_winner"] = pyrankvote_winner
        report["agrees"] = pyrankvote_winner == our_winner

        if report["agrees"]:
            logger.info(f"PyRankVote agrees on winner {our_winner}")
        else:
            logger.warning(
                f"PyRankVote winner {pyrankvote_winner} differs from ours ({our_winner})"
            )

        return report

    def get_pyrankvote_detailed_results(self) -> str:
        """
        Get detailed results from PyRankVote (for debugging/comparison).

        Returns:
            String representation of PyRankVote results
        """
        if self.pyrankvote_result:
            return str(self.pyrankvote_result)
        return "No PyRankVote results available"
