from datetime import datetime, timezone

import mysql.connector
import pytest

from quaver_mirror.database import (
    MAP_COLUMNS,
    MAPSET_COLUMNS,
    MapsetDatabase,
    parse_timestamp,
)
from quaver_mirror.errors import StorageError


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def execute(self, query, values=()):
        if self.conn.error is not None:
            raise self.conn.error
        self.conn.executed.append((query, values))

    def fetchall(self):
        return self.conn.rows

    def close(self):
        pass


class FakeConnection:
    def __init__(self, rows=(), error=None):
        self.rows = list(rows)
        self.error = error
        self.executed = []
        self.commits = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def close(self):
        self.closed = True


def test_column_counts():
    assert len(MAPSET_COLUMNS) == 15
    assert len(MAP_COLUMNS) == 27


def test_parse_timestamp():
    assert parse_timestamp("2021-03-04T05:06:07.000Z") == datetime(2021, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    assert parse_timestamp("2021-03-04T05:06:07") == datetime(2021, 3, 4, 5, 6, 7)
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None


def test_parse_timestamp_odd_fraction_lengths():
    utc = timezone.utc
    assert parse_timestamp("2021-03-04T05:06:07.1234567Z") == datetime(2021, 3, 4, 5, 6, 7, 123456, tzinfo=utc)
    assert parse_timestamp("2021-03-04T05:06:07.5Z") == datetime(2021, 3, 4, 5, 6, 7, 500000, tzinfo=utc)
    assert parse_timestamp("2021-03-04T05:06:07.12+00:00") == datetime(2021, 3, 4, 5, 6, 7, 120000, tzinfo=utc)


def test_existing_mapset_ids():
    db = MapsetDatabase(FakeConnection(rows=[(20,), (30,)]))
    assert db.existing_mapset_ids() == {20, 30}


def test_upsert_mapset_replaces_by_id_with_parsed_dates():
    conn = FakeConnection()
    db = MapsetDatabase(conn)

    db.upsert_mapset({
        "id": 10,
        "creator_username": "Swan",
        "artist": "Camellia",
        "title": "Exit This Earth's Atomosphere",
        "date_submitted": "2019-01-02T03:04:05Z",
        "ranking_queue_status": 2,
    })

    query, values = conn.executed[0]
    assert query.startswith("REPLACE INTO Mapset (id, creator_id,")
    assert query.count("%s") == 15
    assert values[0] == 10
    assert values[MAPSET_COLUMNS.index("artist")] == "Camellia"
    assert values[MAPSET_COLUMNS.index("date_submitted")] == datetime(2019, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert values[MAPSET_COLUMNS.index("date_last_updated")] is None
    assert conn.commits == 1


def test_upsert_map_keeps_column_order():
    conn = FakeConnection()
    db = MapsetDatabase(conn)
    map_ = {column: i for i, column in enumerate(MAP_COLUMNS)}

    db.upsert_map(map_)

    query, values = conn.executed[0]
    assert query.startswith("REPLACE INTO Map (")
    assert values == tuple(range(27))


def test_database_errors_become_storage_errors():
    db = MapsetDatabase(FakeConnection(error=mysql.connector.Error("Lost connection")))

    with pytest.raises(StorageError, match="mapset 10"):
        db.upsert_mapset({"id": 10})
    with pytest.raises(StorageError, match="map 1"):
        db.upsert_map({"id": 1})
    with pytest.raises(StorageError):
        db.existing_mapset_ids()


def test_create_tables():
    conn = FakeConnection()
    MapsetDatabase(conn).create_tables()

    assert "CREATE TABLE IF NOT EXISTS Mapset" in conn.executed[0][0]
    assert "CREATE TABLE IF NOT EXISTS Map (" in conn.executed[1][0]
