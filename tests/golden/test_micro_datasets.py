"""
Golden dataset validation tests.

These tests run our IRV implementation against hand-computed micro datasets
to ensure algorithmic correctness on known scenarios.
"""

import json
from pathlib import Path

import pytest

from data.ballot_loader import BallotLoader
from tabulation.irv import Ballot, Candidate, TabulationResult, tabulate
from tabulation.verification import ResultsVerifier

GOLDEN_DIR = Path(__file__).parent / "micro"
DATASETS = sorted(p.stem for p in GOLDEN_DIR.glob("*.json"))


def load_golden_dataset(name):
    """Load a golden dataset from JSON file."""
    with open(GOLDEN_DIR / f"{name}.json") as f:
        return json.load(f)


def election_from(dataset):
    candidates = [Candidate.from_dict(c) for c in dataset["contestants"]]
    ballots = [Ballot.from_dict(b) for b in dataset["ballots"]]
    return ballots, candidates


@pytest.mark.golden
def test_datasets_present():
    assert len(DATASETS) >= 5


@pytest.mark.golden
@pytest.mark.parametrize("name", DATASETS)
def test_hand_computed_result(name):
    """Tabulation must reproduce the hand count exactly."""
    dataset = load_golden_dataset(name)
    ballots, candidates = election_from(dataset)

    result = tabulate(ballots, candidates)

    assert result == TabulationResult.from_dict(dataset["expected"])


@pytest.mark.golden
@pytest.mark.parametrize("name", DATASETS)
def test_hand_computed_result_passes_verification(name):
    dataset = load_golden_dataset(name)
    ballots, candidates = election_from(dataset)
    expected = TabulationResult.from_dict(dataset["expected"])

    report = ResultsVerifier(ballots, candidates).verify_results(
        expected, expected_winner=dataset["expected"]["winner"]["name"]
    )

    assert report["verification_passed"], report["violations"]


@pytest.mark.golden
@pytest.mark.integration
@pytest.mark.parametrize("name", DATASETS)
def test_hand_computed_result_through_database(name, tmp_path):
    """Loading the dataset into DuckDB and reading it back loses nothing."""
    dataset = load_golden_dataset(name)
    json_path = GOLDEN_DIR / f"{name}.json"

    with BallotLoader(str(tmp_path / "golden.duckdb")) as loader:
        stats = loader.load_json(str(json_path))
        ballots = loader.get_ballots()
        candidates = loader.get_candidates()

    direct_ballots, direct_candidates = election_from(dataset)
    assert stats["total_ballots"] == len(dataset["ballots"])
    assert [c.id for c in candidates] == [c.id for c in direct_candidates]
    assert [b.ordered_preferences() for b in ballots] == [
        b.ordered_preferences() for b in direct_ballots
    ]
    assert [b.ballot_id for b in ballots] == [b.ballot_id for b in direct_ballots]
    assert tabulate(ballots, candidates) == TabulationResult.from_dict(
        dataset["expected"]
    )
