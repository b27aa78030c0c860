import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

try:
    from ..tabulation.irv import Ballot, Candidate, Ranking
    from .database import BallotDatabase
except ImportError:
    from data.database import BallotDatabase
    from tabulation.irv import Ballot, Candidate, Ranking

logger = logging.getLogger(__name__)

CONTESTANT_COLUMNS = ("id", "name")
RANKING_COLUMNS = ("ballot_id", "contestant_id", "rank")
ID_COLUMNS = ("contestant_id", "id_is_int", "contestant_name")


def _is_int_id(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(
        value, (bool, np.bool_)
    )


def _restore_id(value: Any, is_int: Any) -> Any:
    """Turn a stored (text, id_is_int) pair back into an int or str id."""
    text = str(value).strip()
    return int(text) if bool(is_int) else text


def _id_columns_sql(expression: str) -> str:
    """
    SELECT fragment storing a CSV id as text plus an integer flag.

    CSV cells carry no type, so any cell that parses as an integer is an
    integer id, regardless of what the rest of the column holds.
    """
    text = f"TRIM(CAST({expression} AS VARCHAR))"
    as_int = f"TRY_CAST({text} AS BIGINT)"
    return (
        f"COALESCE(CAST({as_int} AS VARCHAR), {text}) AS contestant_id,\n"
        f"                {as_int} IS NOT NULL AS id_is_int"
    )


def _to_native(value: Any) -> Any:
    if value is None or (np.isscalar(value) and pd.isna(value)) or value is pd.NA:
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def _quote_path(path: Path) -> str:
    return "'" + str(path).replace("'", "''") + "'"


class BallotLoader:
    """
    Loads contestants and ranked ballots into DuckDB and hands them out as
    Candidate / Ballot objects for tabulation.

    Tables:
        contestants(contestant_id, id_is_int, contestant_name, ...extra columns)
        ballots(ballot_key, ballot_id)
        rankings(ballot_key, contestant_id, id_is_int, rank_position)

    Ids are stored as text with an ``id_is_int`` flag so integer and string
    ids read back with their own type. ``ballot_key`` numbers ballots in load
    order; ``ballot_id`` is the optional id from the source and need not be
    unique.
    """

    def __init__(self, db_path: Optional[str] = None, read_only: bool = False):
        """
        Initialize ballot loader.

        Args:
            db_path: Path to DuckDB database file (default: in-memory)
            read_only: Open an already processed database for reading only
        """
        self.db = BallotDatabase(db_path, read_only=read_only)
        self._candidates: Optional[List[Candidate]] = None

    def _load_raw_csv(self, csv_path: str, table: str, required: tuple) -> Dict[str, str]:
        """Load a CSV into ``table``; map each required column to its header, extras to themselves."""
        path = Path(csv_path)
        if not path.exists():
            raise FileNotFoundError(f"CSV file not found: {path}")

        logger.info(f"Loading {path}")
        self.db.conn.execute(
            f"CREATE OR REPLACE TABLE {table} AS "
            f"SELECT * FROM read_csv_auto({_quote_path(path)}, header=true)"
        )

        headers = list(self.db.query(f"SELECT * FROM {table} LIMIT 0").columns)
        by_lower = {h.strip().lower(): h for h in headers}
        missing = [col for col in required if col not in by_lower]
        if missing:
            self.db.conn.execute(f"DROP TABLE {table}")
            raise ValueError(f"{path.name} is missing required columns: {missing}")

        cols = {col: by_lower[col] for col in required}
        for header in headers:
            if header not in cols.values():
                cols[header] = header
        return cols

    def load_contestants_csv(self, csv_path: str) -> int:
        """
        Load contestants from a CSV file with ``id`` and ``name`` columns.
        Any other columns are kept as descriptive fields.

        Returns:
            Number of contestants loaded
        """
        cols = self._load_raw_csv(csv_path, "contestants_raw", CONTESTANT_COLUMNS)
        extra_select = "".join(
            f',\n                "{header}"'
            for key, header in cols.items()
            if key not in CONTESTANT_COLUMNS
        )

        self.db.conn.execute(
            f"""
            CREATE OR REPLACE TABLE contestants AS
            SELECT
                {_id_columns_sql(f'"{cols["id"]}"')},
                CAST("{cols['name']}" AS VARCHAR) AS contestant_name{extra_select}
            FROM contestants_raw
            WHERE "{cols['id']}" IS NOT NULL
            """
        )
        self.db.conn.execute("DROP TABLE contestants_raw")
        self._candidates = None

        count = self.db.query("SELECT COUNT(*) AS n FROM contestants").iloc[0]["n"]
        logger.info(f"Loaded {count} contestants")
        return int(count)

    def load_rankings_csv(self, csv_path: str) -> Dict[str, int]:
        """
        Load long-format rankings (one row per ballot per ranked contestant).

        Rows sharing a ``ballot_id`` belong to the same ballot. Rows with an
        empty contestant or rank still register the ballot, so a blank ballot
        counts toward the ballot total.

        Returns:
            Dictionary with loading statistics
        """
        cols = self._load_raw_csv(csv_path, "rankings_raw", RANKING_COLUMNS)
        ballot_col = cols["ballot_id"]
        contestant_col = cols["contestant_id"]
        rank_col = cols["rank"]

        self.db.conn.execute(
            f"""
            CREATE OR REPLACE TABLE ballots AS
            SELECT
                ROW_NUMBER() OVER (ORDER BY ballot_id) AS ballot_key,
                ballot_id
            FROM (
                SELECT DISTINCT CAST("{ballot_col}" AS VARCHAR) AS ballot_id
                FROM rankings_raw
                WHERE "{ballot_col}" IS NOT NULL
            )
            """
        )
        self.db.conn.execute(
            f"""
            CREATE OR REPLACE TABLE rankings AS
            SELECT
                b.ballot_key,
                {_id_columns_sql(f'r."{contestant_col}"')},
                CAST(r."{rank_col}" AS INTEGER) AS rank_position
            FROM rankings_raw r
            JOIN ballots b ON b.ballot_id = CAST(r."{ballot_col}" AS VARCHAR)
            WHERE r."{contestant_col}" IS NOT NULL
              AND r."{rank_col}" IS NOT NULL
            """
        )
        self.db.conn.execute("DROP TABLE rankings_raw")

        return self.get_load_statistics()

    def load_json(self, json_path: str) -> Dict[str, int]:
        """
        Load an election from JSON:
        ``{"contestants": [{"id", "name", ...}], "ballots": [{"rankings": [{"contestantId", "rank"}]}]}``

        Every entry of ``ballots`` is its own ballot, whatever its ``id``.

        Returns:
            Dictionary with loading statistics
        """
        path = Path(json_path)
        if not path.exists():
            raise FileNotFoundError(f"JSON file not found: {path}")

        with open(path, "r") as f:
            try:
                payload = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path.name} is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise ValueError(f"{path.name} must contain a JSON object")

        contestants = payload.get("contestants", payload.get("candidates"))
        ballots = payload.get("ballots")
        if not isinstance(contestants, list) or not isinstance(ballots, list):
            raise ValueError(
                f"{path.name} needs 'contestants' and 'ballots' lists"
            )

        try:
            candidate_objs = [Candidate.from_dict(c) for c in contestants]
            ballot_objs = [Ballot.from_dict(b) for b in ballots]
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed contestant or ballot in {path.name}: {e}") from e

        self.store(candidate_objs, ballot_objs)
        return self.get_load_statistics()

    def store(self, candidates: List[Candidate], ballots: List[Ballot]):
        """Write Candidate / Ballot objects into the contestants, ballots and rankings tables."""
        extra_keys = sorted(
            {
                key
                for c in candidates
                for key, value in c.extra.items()
                if isinstance(value, str) and key.isidentifier()
            }
        )
        extra_columns = "".join(f', "{key}" VARCHAR' for key in extra_keys)

        conn = self.db.conn
        conn.execute(
            f"CREATE OR REPLACE TABLE contestants "
            f"(contestant_id VARCHAR, id_is_int BOOLEAN, contestant_name VARCHAR{extra_columns})"
        )
        conn.execute(
            "CREATE OR REPLACE TABLE ballots (ballot_key BIGINT, ballot_id VARCHAR)"
        )
        conn.execute(
            "CREATE OR REPLACE TABLE rankings "
            "(ballot_key BIGINT, contestant_id VARCHAR, id_is_int BOOLEAN, rank_position INTEGER)"
        )

        if candidates:
            placeholders = ", ".join(["?"] * (3 + len(extra_keys)))
            conn.executemany(
                f"INSERT INTO contestants VALUES ({placeholders})",
                [
                    [str(c.id), _is_int_id(c.id), c.name]
                    + [
                        c.extra.get(k) if isinstance(c.extra.get(k), str) else None
                        for k in extra_keys
                    ]
                    for c in candidates
                ],
            )

        ballot_rows = []
        ranking_rows = []
        for ballot_key, ballot in enumerate(ballots, 1):
            ballot_rows.append([ballot_key, ballot.ballot_id])
            for ranking in ballot.rankings:
                ranking_rows.append(
                    [
                        ballot_key,
                        str(ranking.contestant_id),
                        _is_int_id(ranking.contestant_id),
                        ranking.rank,
                    ]
                )

        if ballot_rows:
            conn.executemany("INSERT INTO ballots VALUES (?, ?)", ballot_rows)
        if ranking_rows:
            conn.executemany("INSERT INTO rankings VALUES (?, ?, ?, ?)", ranking_rows)

        self._candidates = None
        logger.info(
            f"Stored {len(candidates)} contestants and {len(ballot_rows)} ballots"
        )

    def _require_loaded(self):
        for table in ("contestants", "ballots", "rankings"):
            if not self.db.table_exists(table):
                raise RuntimeError(
                    f"Must load ballot data first (table '{table}' not found)"
                )

    def get_candidates(self) -> List[Candidate]:
        """Get all contestants as Candidate objects, integer ids first."""
        if self._candidates is not None:
            return self._candidates

        self._require_loaded()
        df = self.db.query(
            """
            SELECT * FROM contestants
            ORDER BY
                NOT id_is_int,
                CASE WHEN id_is_int THEN TRY_CAST(contestant_id AS BIGINT) END,
                contestant_id
            """
        )

        candidates = []
        for row in df.to_dict("records"):
            extra = {
                key: _to_native(value)
                for key, value in row.items()
                if key not in ID_COLUMNS
            }
            candidates.append(
                Candidate(
                    id=_restore_id(row["contestant_id"], row["id_is_int"]),
                    name=str(row["contestant_name"] or ""),
                    extra=extra,
                )
            )

        self._candidates = candidates
        return candidates

    def get_ballots(self) -> List[Ballot]:
        """
        Get all ballots with their rankings.

        Returns:
            List of Ballot objects in load order
        """
        self._require_loaded()
        ballot_prefs = self.db.query(
            """
            SELECT
                b.ballot_key,
                b.ballot_id,
                r.contestant_id,
                r.id_is_int,
                r.rank_position
            FROM ballots b
            LEFT JOIN rankings r ON b.ballot_key = r.ballot_key
            ORDER BY b.ballot_key, r.rank_position
            """
        )

        ballots = []
        for _, group in ballot_prefs.groupby("ballot_key", sort=True):
            rankings = [
                Ranking(
                    contestant_id=_restore_id(row["contestant_id"], row["id_is_int"]),
                    rank=int(row["rank_position"]),
                )
                for _, row in group.iterrows()
                if not pd.isna(row["contestant_id"]) and not pd.isna(row["rank_position"])
            ]
            ballot_id = group["ballot_id"].iloc[0]
            ballots.append(
                Ballot(
                    rankings=tuple(rankings),
                    ballot_id=None if pd.isna(ballot_id) else str(ballot_id),
                )
            )

        logger.info(f"Read {len(ballots)} ballots")
        return ballots

    def get_load_statistics(self) -> Dict[str, int]:
        """
        Summarize what was loaded and flag rankings the tabulator will ignore.

        Returns:
            Dictionary with loading statistics
        """
        self._require_loaded()
        counts = self.db.query(
            """
            SELECT
                (SELECT COUNT(*) FROM ballots) AS total_ballots,
                (SELECT COUNT(*) FROM rankings) AS ranking_rows,
                (SELECT COUNT(*) FROM contestants) AS contestants,
                (SELECT COUNT(*) FROM ballots
                  WHERE ballot_key NOT IN (SELECT ballot_key FROM rankings)
                ) AS ballots_without_rankings,
                (SELECT COUNT(DISTINCT ballot_key) FROM (
                    SELECT ballot_key FROM rankings
                    GROUP BY ballot_key, contestant_id, id_is_int
                    HAVING COUNT(*) > 1
                )) AS ballots_with_repeats,
                (SELECT COUNT(*) FROM (
                    SELECT ballot_id FROM ballots
                    WHERE ballot_id IS NOT NULL
                    GROUP BY ballot_id
                    HAVING COUNT(*) > 1
                )) AS duplicate_ballot_ids
            """
        ).to_dict("records")[0]
        stats = {key: int(value) for key, value in counts.items()}

        known_ids = {c.id for c in self.get_candidates()}
        ranked = self.db.query("SELECT contestant_id, id_is_int FROM rankings")
        stats["unknown_contestant_rows"] = sum(
            1
            for cid, is_int in zip(ranked["contestant_id"], ranked["id_is_int"])
            if _restore_id(cid, is_int) not in known_ids
        )

        logger.info(
            f"Loaded {stats['total_ballots']} ballots with {stats['ranking_rows']} rankings"
        )
        if stats["unknown_contestant_rows"] > 0:
            logger.warning(
                f"Found {stats['unknown_contestant_rows']} rankings for unknown contestants; they will not count"
            )
        if stats["ballots_with_repeats"] > 0:
            logger.warning(
                f"Found {stats['ballots_with_repeats']} ballots ranking the same contestant more than once"
            )
        if stats["duplicate_ballot_ids"] > 0:
            logger.warning(
                f"Found {stats['duplicate_ballot_ids']} ballot ids shared by more than one ballot; each ballot is still counted"
            )

        return stats

    def close(self):
        """Close database connection."""
        self.db.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
