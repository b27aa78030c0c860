import logging
import re
from typing import Dict, List, Optional, Sequence

import pandas as pd

try:
    from .irv import (
        MAX_ROUNDS,
        Ballot,
        Candidate,
        CandidateId,
        TabulationResult,
        _id_sort_key,
        majority_threshold,
    )
except ImportError:
    from tabulation.irv import (
        MAX_ROUNDS,
        Ballot,
        Candidate,
        CandidateId,
        TabulationResult,
        _id_sort_key,
        majority_threshold,
    )

logger = logging.getLogger(__name__)


def normalize_candidate_name(name: str) -> str:
    """
    Normalize candidate name for comparison.

    Args:
        name: Raw candidate name

    Returns:
        Normalized name
    """
    if not name:
        return ""

    normalized = name.strip().lower()
    normalized = re.sub(r"\s+", " ", normalized)

    # Drop nicknames like "(Mike)"
    normalized = re.sub(r"\s*\([^)]*\)\s*", " ", normalized)
    normalized = re.sub(r"\s*-\s*", "-", normalized)

    return normalized.strip()


class ResultsVerifier:
    """
    Re-checks a tabulation result against the ballots it was computed from.

    Every round is recounted independently and tested for vote conservation,
    majority correctness and last-place elimination, so a bug in the engine
    (or a tampered result) shows up as a list of violations.
    """

    def __init__(
        self,
        ballots: Sequence[Ballot],
        candidates: Sequence[Candidate],
        max_rounds: int = MAX_ROUNDS,
    ):
        self.ballots = list(ballots)
        self.candidates = list(candidates)
        self.max_rounds = max_rounds
        self._preferences = [b.ordered_preferences() for b in self.ballots]

    def _recount(self, active: set) -> Dict[CandidateId, int]:
        counts = {cid: 0 for cid in active}
        for ranked_ids in self._preferences:
            for cid in ranked_ids:
                if cid in active:
                    counts[cid] += 1
                    break
        return counts

    def verify_results(
        self, result: TabulationResult, expected_winner: Optional[str] = None
    ) -> Dict:
        """
        Verify a tabulation result.

        Args:
            result: Result produced by tabulate()
            expected_winner: Optional name of the winner to compare against

        Returns:
            Verification report dictionary
        """
        logger.info(f"Verifying tabulation with {len(result.rounds)} rounds")

        violations: List[str] = []
        round_checks = []

        expected_ballots = len(self.ballots)
        if result.total_ballots != expected_ballots:
            violations.append(
                f"Total ballots {result.total_ballots} does not match {expected_ballots} ballots supplied"
            )

        candidate_ids = {c.id for c in self.candidates}
        active = set(candidate_ids) if self.ballots else set()
        round_winner: Optional[CandidateId] = None

        max_expected_rounds = min(max(len(candidate_ids) - 1, 0), self.max_rounds)
        if len(result.rounds) > max_expected_rounds:
            violations.append(
                f"{len(result.rounds)} rounds recorded, at most {max_expected_rounds} possible"
            )

        for index, round_obj in enumerate(result.rounds, 1):
            n = round_obj.round_number
            problems = []

            if n != index:
                problems.append(f"round numbered {n}, expected {index}")

            total = sum(round_obj.votes.values())
            threshold = majority_threshold(round_obj.total_votes)

            if round_obj.total_votes != total:
                problems.append(
                    f"totalVotes {round_obj.total_votes} != sum of votes {total}"
                )
            if round_obj.total_votes > result.total_ballots:
                problems.append("more votes counted than ballots cast")

            if set(round_obj.votes) != active:
                problems.append("vote map does not match the active candidates")

            matches_recount = round_obj.votes == self._recount(active)
            if not matches_recount:
                problems.append("vote counts do not match an independent recount")

            if round_obj.winner is not None and round_obj.eliminated is not None:
                problems.append("round has both a winner and an elimination")
            elif round_obj.winner is not None:
                if round_obj.votes.get(round_obj.winner, 0) < threshold:
                    problems.append(
                        f"winner {round_obj.winner} is below the majority threshold {threshold}"
                    )
                if index != len(result.rounds):
                    problems.append("rounds recorded after a majority winner")
                round_winner = round_obj.winner
            elif round_obj.eliminated is not None:
                if any(votes >= threshold for votes in round_obj.votes.values()):
                    problems.append("candidate eliminated although a majority existed")
                if round_obj.votes:
                    min_votes = min(round_obj.votes.values())
                    tied = [c for c, v in round_obj.votes.items() if v == min_votes]
                    expected = min(tied, key=_id_sort_key)
                    if round_obj.eliminated != expected:
                        problems.append(
                            f"eliminated {round_obj.eliminated}, expected {expected}"
                        )
                active.discard(round_obj.eliminated)
            else:
                problems.append("round has neither a winner nor an elimination")

            if round_obj.winner is not None:
                outcome = f"winner {round_obj.winner}"
            elif round_obj.eliminated is not None:
                outcome = f"eliminated {round_obj.eliminated}"
            else:
                outcome = "no outcome"

            round_checks.append(
                {
                    "round": n,
                    "total_votes": round_obj.total_votes,
                    "majority_threshold": threshold,
                    "winner": round_obj.winner,
                    "eliminated": round_obj.eliminated,
                    "outcome": outcome,
                    "matches_recount": matches_recount,
                    "passed": not problems,
                }
            )
            violations.extend(f"Round {n}: {p}" for p in problems)

        if round_winner is not None:
            expected_winner_id = round_winner
        elif len(active) == 1:
            expected_winner_id = next(iter(active))
        else:
            expected_winner_id = None

        actual_winner_id = result.winner.id if result.winner else None
        if actual_winner_id != expected_winner_id:
            violations.append(
                f"Declared winner {actual_winner_id} does not follow from the rounds (expected {expected_winner_id})"
            )

        our_winner = result.winner.name if result.winner else None
        winner_matches_expected = None
        if expected_winner is not None:
            winner_matches_expected = normalize_candidate_name(
                our_winner or ""
            ) == normalize_candidate_name(expected_winner)

        verification_report = {
            "verification_passed": not violations
            and winner_matches_expected is not False,
            "violations": violations,
            "round_checks": pd.DataFrame(
                round_checks,
                columns=[
                    "round",
                    "total_votes",
                    "majority_threshold",
                    "winner",
                    "eliminated",
                    "outcome",
                    "matches_recount",
                    "passed",
                ],
                dtype=object,
            ),
            "our_winner": our_winner,
            "expected_winner": expected_winner,
            "winner_matches_expected": winner_matches_expected,
            "total_ballots": result.total_ballots,
            "rounds": len(result.rounds),
        }

        if violations:
            logger.warning(f"Verification found {len(violations)} violations")

        return verification_report

    def generate_verification_report(self, verification_results: Dict) -> str:
        """
        Generate a human-readable verification report.

        Args:
            verification_results: Results from verify_results()

        Returns:
            Formatted verification report string
        """
        report = []
        report.append("=" * 60)
        report.append("TABULATION VERIFICATION REPORT")
        report.append("=" * 60)

        if verification_results["verification_passed"]:
            report.append("✅ VERIFICATION PASSED - Every round checks out")
        else:
            report.append("❌ VERIFICATION FAILED - Discrepancies found")

        report.append("")
        report.append(f"Total ballots: {verification_results['total_ballots']}")
        report.append(f"Rounds: {verification_results['rounds']}")
        report.append(f"Winner: {verification_results['our_winner'] or 'none'}")

        if verification_results["expected_winner"] is not None:
            report.append("")
            report.append("WINNER VERIFICATION:")
            if verification_results["winner_matches_expected"]:
                report.append("✅ Winner matches expected result")
            else:
                report.append("❌ Winner does not match expected result")
            report.append(f"Expected winner: {verification_results['expected_winner']}")

        report.append("")
        report.append("ROUND CHECKS:")
        for _, row in verification_results["round_checks"].iterrows():
            symbol = "✅" if row["passed"] else "❌"
            report.append(
                f"  {symbol} Round {row['round']}: {row['total_votes']} votes, majority {row['majority_threshold']}, {row['outcome']}"
            )

        if verification_results["violations"]:
            report.append("")
            report.append("VIOLATIONS:")
            for violation in verification_results["violations"]:
                report.append(f"  - {violation}")

        return "\n".join(report)
