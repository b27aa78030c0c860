import logging
import math
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from fastapi import FastAPI, HTTPException

try:
    from ..data.ballot_loader import BallotLoader
    from ..tabulation.cross_check import PyRankVoteCrossCheck
    from ..tabulation.irv import Ballot, Candidate, IRVTabulator, tabulate
    from ..tabulation.verification import ResultsVerifier
    from .models import TabulateRequest
except ImportError:
    from data.ballot_loader import BallotLoader
    from tabulation.cross_check import PyRankVoteCrossCheck
    from tabulation.irv import Ballot, Candidate, IRVTabulator, tabulate
    from tabulation.verification import ResultsVerifier
    from web.models import TabulateRequest

logger = logging.getLogger(__name__)

DATABASE_ENV_VAR = "RCV_DATABASE_PATH"
NO_VOTES_MESSAGE = "No votes have been cast yet"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting RCV results API")
    yield
    logger.info("Shutting down RCV results API")


app = FastAPI(
    title="RCV Results",
    description="Instant-runoff tabulation of ranked ballots",
    lifespan=lifespan,
)

# Set by start_server.py; falls back to RCV_DATABASE_PATH
db_path = None


def convert_numpy_types(obj: Any) -> Any:
    """Convert numpy types to native Python types for JSON serialization."""
    if isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, (float, np.floating)):
        return None if math.isnan(obj) else float(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {k: convert_numpy_types(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [convert_numpy_types(item) for item in obj]
    else:
        return obj


def get_database_path() -> str:
    path = db_path or os.environ.get(DATABASE_ENV_VAR)
    if not path:
        raise HTTPException(status_code=500, detail="Database not configured")
    return path


def set_database_path(path: str):
    """Set the database path for the application."""
    global db_path
    db_path = path
    os.environ[DATABASE_ENV_VAR] = path
    logger.info(f"Database path set to: {path}")

    try:
        with BallotLoader(path, read_only=True) as loader:
            loader.db.table_exists("ballots")
        logger.info("Database connection test successful")
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        raise


def get_loader() -> BallotLoader:
    """Read-only loader over the configured database."""
    return BallotLoader(get_database_path(), read_only=True)


def load_election() -> Tuple[List[Ballot], List[Candidate]]:
    with get_loader() as loader:
        for table in ("contestants", "ballots", "rankings"):
            if not loader.db.table_exists(table):
                raise HTTPException(status_code=400, detail="No data loaded")
        return loader.get_ballots(), loader.get_candidates()


def build_results_payload(
    ballots: Sequence[Ballot], candidates: Sequence[Candidate]
) -> Dict[str, Any]:
    """Results in the shape the results page consumes."""
    contestants = [c.to_dict() for c in sorted(candidates, key=lambda c: c.name)]

    if not ballots:
        return {
            "results": None,
            "contestants": contestants,
            "totalVotes": 0,
            "message": NO_VOTES_MESSAGE,
        }

    result = tabulate(ballots, candidates)
    return {
        "results": result.to_dict(),
        "contestants": contestants,
        "totalVotes": len(ballots),
    }


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.post("/api/tabulate")
async def tabulate_ballots(request: TabulateRequest):
    """Tabulate ballots supplied in the request body."""
    ballots = [b.to_ballot() for b in request.ballots]
    candidates = [c.to_candidate() for c in request.contestants]
    return build_results_payload(ballots, candidates)


@app.get("/api/contestants")
async def get_contestants():
    """Get list of all contestants."""
    _, candidates = load_election()
    return [c.to_dict() for c in sorted(candidates, key=lambda c: c.name)]


@app.get("/api/results")
async def get_results():
    """Instant-runoff results for the loaded election."""
    try:
        ballots, candidates = load_election()
        return build_results_payload(ballots, candidates)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Results calculation error: {e}")
        raise HTTPException(
            status_code=500, detail=f"Results calculation failed: {str(e)}"
        )


@app.get("/api/results/rounds")
async def get_round_summary():
    """Round-by-round vote counts, one record per candidate per round."""
    try:
        ballots, candidates = load_election()
        tabulator = IRVTabulator(ballots, candidates)
        tabulator.run_tabulation()
        summary = tabulator.get_round_summary()
        return convert_numpy_types(summary.to_dict("records"))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Round summary failed: {e}")
        raise HTTPException(status_code=500, detail=f"Round summary failed: {str(e)}")


@app.get("/api/verify-results")
async def verify_results(
    expected_winner: Optional[str] = None, cross_check: bool = False
):
    """Recount the loaded election and check every round's invariants."""
    try:
        ballots, candidates = load_election()
        result = tabulate(ballots, candidates)

        verifier = ResultsVerifier(ballots, candidates)
        report = verifier.verify_results(result, expected_winner=expected_winner)
        payload = {
            **report,
            "round_checks": report["round_checks"].to_dict("records"),
            "report_text": verifier.generate_verification_report(report),
        }

        if cross_check:
            payload["cross_check"] = PyRankVoteCrossCheck(
                ballots, candidates
            ).run_cross_check(result)

        return convert_numpy_types(payload)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Verification failed: {e}")
        raise HTTPException(status_code=500, detail=f"Verification failed: {str(e)}")
