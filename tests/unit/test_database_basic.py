"""
Basic database functionality unit tests.

These tests verify core database operations without requiring
external data files or complex setups.
"""

from unittest.mock import patch

import duckdb
import pandas as pd
import pytest

from data.database import BallotDatabase, connect_with_retry


@pytest.mark.unit
def test_database_creation(temp_db):
    """Test that database can be created and closed."""
    assert temp_db is not None
    assert temp_db.conn is not None


@pytest.mark.unit
def test_basic_query(temp_db):
    """Test basic SQL query execution."""
    result = temp_db.query("SELECT 1 as test_value")
    assert isinstance(result, pd.DataFrame)
    assert len(result) == 1
    assert result.iloc[0]["test_value"] == 1


@pytest.mark.unit
def test_query_with_parameters(temp_db):
    temp_db.conn.execute("CREATE TABLE ballots (ballot_id VARCHAR)")
    temp_db.conn.execute("INSERT INTO ballots VALUES ('B1'), ('B2')")

    result = temp_db.query("SELECT * FROM ballots WHERE ballot_id = ?", ["B2"])

    assert result["ballot_id"].tolist() == ["B2"]


@pytest.mark.unit
def test_table_exists(temp_db):
    assert not temp_db.table_exists("rankings")

    temp_db.conn.execute(
        "CREATE TABLE rankings (ballot_id VARCHAR, contestant_id BIGINT, rank_position INTEGER)"
    )

    assert temp_db.table_exists("rankings")


@pytest.mark.unit
def test_close_is_idempotent(temp_db):
    temp_db.conn.execute("SELECT 1")
    temp_db.close()
    temp_db.close()
    assert temp_db._conn is None


@pytest.mark.unit
def test_connection_reopens_after_close():
    db = BallotDatabase(read_only=False)
    db.close()
    assert db.query("SELECT 2 AS n").iloc[0]["n"] == 2
    db.close()


@pytest.mark.unit
def test_context_manager_closes(temp_db_file):
    with BallotDatabase(temp_db_file, read_only=False) as db:
        db.conn.execute("CREATE TABLE contestants (contestant_id BIGINT)")
    assert db._conn is None


@pytest.mark.unit
def test_read_only_file_rejects_writes(temp_db_file):
    with BallotDatabase(temp_db_file, read_only=False) as db:
        db.conn.execute("CREATE TABLE contestants (contestant_id BIGINT)")

    with BallotDatabase(temp_db_file, read_only=True) as db:
        assert db.table_exists("contestants")
        with pytest.raises(duckdb.Error):
            db.conn.execute("INSERT INTO contestants VALUES (1)")


@pytest.mark.unit
def test_connect_retries_on_lock(temp_db_file):
    """A lock error is retried; the next attempt succeeds."""
    real_connect = duckdb.connect
    calls = []

    def flaky_connect(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise duckdb.IOException("Could not set lock on file")
        return real_connect(*args, **kwargs)

    with patch("data.database.duckdb.connect", side_effect=flaky_connect), patch(
        "data.database.time.sleep"
    ) as sleep:
        conn = connect_with_retry(temp_db_file, read_only=False)

    conn.close()
    assert len(calls) == 2
    sleep.assert_called_once()


@pytest.mark.unit
def test_connect_gives_up_on_other_errors(temp_db_file):
    with patch(
        "data.database.duckdb.connect",
        side_effect=duckdb.IOException("permission denied"),
    ):
        with pytest.raises(duckdb.IOException):
            connect_with_retry(temp_db_file, read_only=False)
