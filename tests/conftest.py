"""
Shared pytest configuration and fixtures for rcv-tabulator.

This module provides common test fixtures and utilities used across
all test modules.
"""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.ballot_loader import BallotLoader  # noqa: E402
from data.database import BallotDatabase  # noqa: E402
from tabulation.irv import Ballot, Candidate  # noqa: E402


def make_ballots(*groups):
    """
    Build ballots from (preferences, count) pairs.

    make_ballots(([1, 2, 3], 3), ([2, 1, 3], 2)) -> five ballots
    """
    ballots = []
    for preferences, count in groups:
        for _ in range(count):
            ballots.append(
                Ballot.from_preferences(preferences, ballot_id=f"B{len(ballots) + 1:03d}")
            )
    return ballots


@pytest.fixture
def temp_db():
    """Provide a temporary in-memory database for testing."""
    db = BallotDatabase(read_only=False)
    yield db
    db.close()


@pytest.fixture
def temp_loader():
    """Provide a ballot loader over a temporary in-memory database."""
    loader = BallotLoader()
    yield loader
    loader.close()


@pytest.fixture
def temp_db_file(tmp_path):
    """Provide a path for a DuckDB file that does not exist yet."""
    return str(tmp_path / "election.duckdb")


@pytest.fixture
def sample_candidates():
    """Provide sample candidates for testing."""
    return [
        Candidate(id=1, name="Alice"),
        Candidate(id=2, name="Bob"),
        Candidate(id=3, name="Charlie"),
    ]


@pytest.fixture
def sample_ballots():
    """Five ballots where nobody has a first-round majority."""
    # Alice 2, Bob 2, Charlie 1; Charlie's ballot moves to Alice
    return make_ballots(([1, 2], 2), ([2, 3], 2), ([3, 1], 1))


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (medium speed, database required)",
    )
    config.addinivalue_line(
        "markers",
        "golden: marks tests as golden dataset validation (hand-computed results)",
    )
    config.addinivalue_line(
        "markers", "invariant: marks tests as mathematical invariant validation"
    )
    config.addinivalue_line(
        "markers", "smoke: marks tests as smoke tests (basic functionality check)"
    )
