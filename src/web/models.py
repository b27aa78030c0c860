"""
Pydantic request models for the results API
"""

from typing import List, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

try:
    from ..tabulation.irv import Ballot, Candidate, Ranking
except ImportError:
    from tabulation.irv import Ballot, Candidate, Ranking

ContestantId = Union[int, str]


class ContestantModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: ContestantId
    name: str

    def to_candidate(self) -> Candidate:
        return Candidate(id=self.id, name=self.name, extra=dict(self.model_extra or {}))


class RankingModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contestant_id: ContestantId = Field(alias="contestantId")
    rank: int

    @field_validator("rank")
    @classmethod
    def validate_rank(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Rank must be a positive integer")
        return v


class BallotModel(BaseModel):
    rankings: List[RankingModel] = []

    def to_ballot(self) -> Ballot:
        return Ballot(
            rankings=tuple(
                Ranking(contestant_id=r.contestant_id, rank=r.rank)
                for r in self.rankings
            )
        )


class TabulateRequest(BaseModel):
    contestants: List[ContestantModel] = []
    ballots: List[BallotModel] = []

    @model_validator(mode="before")
    @classmethod
    def accept_candidates_key(cls, data):
        if isinstance(data, dict) and "contestants" not in data and "candidates" in data:
            data = {**data, "contestants": data["candidates"]}
        return data

