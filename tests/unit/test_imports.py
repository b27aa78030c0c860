"""
Test basic imports and module structure.

These tests ensure all core modules can be imported without errors
and basic functionality is available.
"""

import pytest


@pytest.mark.unit
@pytest.mark.smoke
def test_database_import():
    """Test that database module imports successfully."""
    from data.database import BallotDatabase

    assert BallotDatabase is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_ballot_loader_import():
    """Test that ballot loader module imports successfully."""
    from data.ballot_loader import BallotLoader

    assert BallotLoader is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_irv_import():
    """Test that IRV module imports successfully."""
    from tabulation.irv import IRVTabulator, tabulate

    assert IRVTabulator is not None
    assert callable(tabulate)


@pytest.mark.unit
@pytest.mark.smoke
def test_verification_import():
    """Test that verification module imports successfully."""
    from tabulation.verification import ResultsVerifier

    assert ResultsVerifier is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_cross_check_import():
    """Test that PyRankVote cross-check imports successfully."""
    from tabulation.cross_check import PyRankVoteCrossCheck

    assert PyRankVoteCrossCheck is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_package_exports():
    import tabulation

    for name in [
        "tabulate",
        "IRVTabulator",
        "Ballot",
        "Candidate",
        "Ranking",
        "RoundResult",
        "TabulationResult",
        "ResultsVerifier",
        "PyRankVoteCrossCheck",
        "majority_threshold",
    ]:
        assert hasattr(tabulation, name), f"tabulation.{name} missing"


@pytest.mark.unit
@pytest.mark.smoke
def test_web_app_import():
    """Test that web application imports successfully."""
    from web.main import app

    assert app is not None
    assert app.title == "RCV Results"
