import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

logger = logging.getLogger(__name__)

CandidateId = Union[int, str]

# Rounds ceiling; elimination is monotonic so a real election never gets here
MAX_ROUNDS = 100


def _id_sort_key(candidate_id: CandidateId) -> Tuple[int, Any]:
    """Sort key placing integer ids before string ids so mixed ids still compare."""
    if isinstance(candidate_id, str):
        return (1, candidate_id)
    return (0, candidate_id)


def _decode_id(value: Any) -> Any:
    """JSON object keys are always strings; restore integer ids."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    return value


@dataclass(frozen=True)
class Candidate:
    """A contestant. Extra descriptive fields ride along untouched."""

    id: CandidateId
    name: str
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extra, "id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        extra = {k: v for k, v in data.items() if k not in ("id", "name")}
        return cls(id=data["id"], name=data.get("name", ""), extra=extra)


@dataclass(frozen=True)
class Ranking:
    contestant_id: CandidateId
    rank: int


@dataclass(frozen=True)
class Ballot:
    """
    One voter's ranked preferences.

    Rankings may arrive in any order and may leave out candidates; only the
    relative order of ``rank`` values matters.
    """

    rankings: Tuple[Ranking, ...] = ()
    ballot_id: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "rankings", tuple(self.rankings))

    def ordered_preferences(self) -> List[CandidateId]:
        """Contestant ids from most to least preferred."""
        return [
            r.contestant_id for r in sorted(self.rankings, key=lambda r: r.rank)
        ]

    @classmethod
    def from_preferences(
        cls, candidate_ids: Iterable[CandidateId], ballot_id: Optional[str] = None
    ) -> "Ballot":
        """Build a ballot ranking ``candidate_ids`` 1, 2, 3, ... in order."""
        return cls(
            rankings=tuple(
                Ranking(contestant_id=cid, rank=position)
                for position, cid in enumerate(candidate_ids, 1)
            ),
            ballot_id=ballot_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rankings": [
                {"contestantId": r.contestant_id, "rank": r.rank}
                for r in self.rankings
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ballot":
        rankings = []
        for item in data.get("rankings", []):
            contestant_id = item.get("contestantId", item.get("contestant_id"))
            rankings.append(Ranking(contestant_id=contestant_id, rank=item["rank"]))
        ballot_id = data.get("id")
        return cls(
            rankings=tuple(rankings),
            ballot_id=str(ballot_id) if ballot_id is not None else None,
        )


@dataclass(frozen=True)
class RoundResult:
    """Outcome of one counting round. At most one of winner/eliminated is set."""

    round_number: int
    votes: Dict[CandidateId, int]
    total_votes: int
    eliminated: Optional[CandidateId] = None
    winner: Optional[CandidateId] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "round": self.round_number,
            "votes": dict(self.votes),
            "totalVotes": self.total_votes,
        }
        if self.eliminated is not None:
            data["eliminated"] = self.eliminated
        if self.winner is not None:
            data["winner"] = self.winner
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoundResult":
        return cls(
            round_number=data["round"],
            votes={_decode_id(k): v for k, v in data["votes"].items()},
            total_votes=data["totalVotes"],
            eliminated=data.get("eliminated"),
            winner=data.get("winner"),
        )


@dataclass(frozen=True)
class TabulationResult:
    rounds: List[RoundResult]
    winner: Optional[Candidate]
    total_ballots: int

    @property
    def inconclusive(self) -> bool:
        """True when no winner could be declared."""
        return self.winner is None

    def inactive_ballots(self, round_result: RoundResult) -> int:
        """Ballots not counted for any candidate in ``round_result``."""
        return self.total_ballots - round_result.total_votes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rounds": [r.to_dict() for r in self.rounds],
            "winner": self.winner.to_dict() if self.winner else None,
            "totalBallots": self.total_ballots,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TabulationResult":
        winner = data.get("winner")
        return cls(
            rounds=[RoundResult.from_dict(r) for r in data.get("rounds", [])],
            winner=Candidate.from_dict(winner) if winner else None,
            total_ballots=data.get("totalBallots", 0),
        )


def majority_threshold(total_votes: int) -> int:
    """
    Votes needed to win a round outright: floor(total_votes / 2) + 1

    Args:
        total_votes: Votes counted for active candidates this round

    Returns:
        Majority threshold
    """
    return total_votes // 2 + 1


def _first_choice_counts(
    preferences: Iterable[List[CandidateId]], candidate_ids: Iterable[CandidateId]
) -> Dict[CandidateId, int]:
    """Count each ballot for its most preferred id in ``candidate_ids``, keeping their order."""
    counts = {cid: 0 for cid in candidate_ids}
    for ranked_ids in preferences:
        for cid in ranked_ids:
            if cid in counts:
                counts[cid] += 1
                break
    return counts


def tabulate(
    ballots: Sequence[Ballot],
    candidates: Sequence[Candidate],
    max_rounds: int = MAX_ROUNDS,
) -> TabulationResult:
    """
    Run a single-winner instant-runoff count.

    Each round every ballot counts for its most preferred active candidate.
    A candidate holding a strict majority of the counted votes wins the round.
    Otherwise the candidate with the fewest votes is eliminated; ties for last
    place eliminate the smallest id. When only one candidate is left it is
    declared the winner without an extra round being recorded.

    Args:
        ballots: Ballots to count (not modified)
        candidates: Contestants standing; duplicate ids keep the first entry
        max_rounds: Give up without a winner after this many rounds

    Returns:
        TabulationResult with the round log, winner and ballot count
    """
    if not ballots:
        return TabulationResult(rounds=[], winner=None, total_ballots=0)

    candidates_by_id: Dict[CandidateId, Candidate] = {}
    for candidate in candidates:
        candidates_by_id.setdefault(candidate.id, candidate)

    active = set(candidates_by_id)
    preferences = [ballot.ordered_preferences() for ballot in ballots]

    logger.info(
        f"Starting IRV tabulation: {len(ballots)} ballots, {len(active)} candidates"
    )

    rounds: List[RoundResult] = []
    winner_id: Optional[CandidateId] = None
    round_number = 1

    while len(active) > 1:
        if round_number > max_rounds:
            logger.warning(
                f"Stopping after {max_rounds} rounds without a winner - possible infinite loop"
            )
            break

        vote_counts = _first_choice_counts(
            preferences, sorted(active, key=_id_sort_key)
        )
        total_votes = sum(vote_counts.values())
        threshold = majority_threshold(total_votes)
        logger.debug(
            f"Round {round_number}: {vote_counts} (total {total_votes}, majority {threshold})"
        )

        leader = next(
            (cid for cid, votes in vote_counts.items() if votes >= threshold), None
        )
        if leader is not None:
            logger.info(
                f"Candidate {leader} wins round {round_number} with {vote_counts[leader]} of {total_votes} votes"
            )
            rounds.append(
                RoundResult(round_number, vote_counts, total_votes, winner=leader)
            )
            winner_id = leader
            break

        min_votes = min(vote_counts.values())
        tied = [cid for cid, votes in vote_counts.items() if votes == min_votes]
        eliminated = min(tied, key=_id_sort_key)
        if len(tied) > 1:
            logger.info(
                f"Tie for last place between {tied}, eliminating lowest id {eliminated}"
            )
        else:
            logger.info(f"Eliminating candidate {eliminated} with {min_votes} votes")

        rounds.append(
            RoundResult(round_number, vote_counts, total_votes, eliminated=eliminated)
        )
        active.discard(eliminated)
        round_number += 1

    if winner_id is None and len(active) == 1:
        winner_id = next(iter(active))
        logger.info(f"Candidate {winner_id} wins as the last candidate remaining")

    winner = candidates_by_id.get(winner_id) if winner_id is not None else None
    logger.info(f"IRV tabulation complete after {len(rounds)} rounds")

    return TabulationResult(rounds=rounds, winner=winner, total_ballots=len(ballots))


class IRVTabulator:
    """
    Instant-runoff tabulation engine.
    Wraps tabulate() and presents the round log as DataFrames for reporting.
    """

    def __init__(
        self,
        ballots: Sequence[Ballot],
        candidates: Sequence[Candidate],
        max_rounds: int = MAX_ROUNDS,
    ):
        """
        Initialize IRV tabulator.

        Args:
            ballots: Ballots to count
            candidates: Contestants standing in the election
            max_rounds: Round ceiling passed through to tabulate()
        """
        self.ballots = list(ballots)
        self.candidates = list(candidates)
        self.max_rounds = max_rounds
        self.result: Optional[TabulationResult] = None

    @property
    def rounds(self) -> List[RoundResult]:
        return self.result.rounds if self.result else []

    @property
    def winner(self) -> Optional[Candidate]:
        return self.result.winner if self.result else None

    def _candidate_names(self) -> Dict[CandidateId, str]:
        names: Dict[CandidateId, str] = {}
        for candidate in self.candidates:
            names.setdefault(candidate.id, candidate.name)
        return names

    def run_tabulation(self) -> TabulationResult:
        """Run the count and keep the result on the tabulator."""
        self.result = tabulate(self.ballots, self.candidates, self.max_rounds)
        return self.result

    def get_initial_vote_counts(self) -> pd.DataFrame:
        """First preference vote counts for all candidates."""
        names = self._candidate_names()
        counts = _first_choice_counts(
            (ballot.ordered_preferences() for ballot in self.ballots), names
        )

        rows = [
            {"candidate_id": cid, "candidate_name": names[cid], "votes": votes}
            for cid, votes in sorted(
                counts.items(), key=lambda item: (-item[1], _id_sort_key(item[0]))
            )
        ]
        return pd.DataFrame(rows, columns=["candidate_id", "candidate_name", "votes"])

    def get_round_summary(self) -> pd.DataFrame:
        """
        Get summary of all rounds as a DataFrame.

        Returns:
            DataFrame with one row per candidate per round
        """
        if not self.rounds:
            return pd.DataFrame()

        names = self._candidate_names()
        summary_data = []
        for round_obj in self.rounds:
            for candidate_id, votes in round_obj.votes.items():
                summary_data.append(
                    {
                        "round": round_obj.round_number,
                        "candidate_id": candidate_id,
                        "candidate_name": names.get(
                            candidate_id, f"Unknown-{candidate_id}"
                        ),
                        "votes": votes,
                        "total_votes": round_obj.total_votes,
                        "majority_threshold": majority_threshold(
                            round_obj.total_votes
                        ),
                        "status": self._get_candidate_status(candidate_id, round_obj),
                        "inactive_ballots": self.result.inactive_ballots(round_obj),
                    }
                )

        return pd.DataFrame(summary_data)

    def _get_candidate_status(
        self, candidate_id: CandidateId, round_obj: RoundResult
    ) -> str:
        """Get the status of a candidate in a given round."""
        if candidate_id == round_obj.winner:
            return "elected"
        elif candidate_id == round_obj.eliminated:
            return "eliminated"
        return "continuing"

    def get_final_results(self) -> pd.DataFrame:
        """
        Get final election results.

        Returns:
            DataFrame with each candidate's last counted votes and outcome
        """
        if self.result is None:
            return pd.DataFrame()

        winner_id = self.winner.id if self.winner else None
        final_votes: Dict[CandidateId, int] = {}
        elimination_round: Dict[CandidateId, int] = {}
        for round_obj in self.rounds:
            final_votes.update(round_obj.votes)
            if round_obj.eliminated is not None:
                elimination_round[round_obj.eliminated] = round_obj.round_number

        results_data = []
        for candidate_id, name in self._candidate_names().items():
            results_data.append(
                {
                    "candidate_id": candidate_id,
                    "candidate_name": name,
                    "final_votes": final_votes.get(candidate_id, 0),
                    "status": "elected" if candidate_id == winner_id else "not_elected",
                    "elimination_round": elimination_round.get(candidate_id),
                }
            )

        columns = [
            "candidate_id",
            "candidate_name",
            "final_votes",
            "status",
            "elimination_round",
        ]
        return pd.DataFrame(results_data, columns=columns).sort_values(
            "final_votes", ascending=False, kind="stable"
        )
