"""MySQL mirror of mapset and map metadata."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Set

import mysql.connector

from .config import Settings
from .errors import StorageError

MAPSET_COLUMNS = (
    "id",
    "creator_id",
    "creator_username",
    "creator_avatar_url",
    "artist",
    "title",
    "source",
    "tags",
    "description",
    "date_submitted",
    "date_last_updated",
    "ranking_queue_status",
    "ranking_queue_last_updated",
    "ranking_queue_vote_count",
    "mapset_ranking_queue_id",
)

MAP_COLUMNS = (
    "id",
    "mapset_id",
    "md5",
    "alternative_md5",
    "creator_id",
    "creator_username",
    "game_mode",
    "ranked_status",
    "artist",
    "title",
    "source",
    "tags",
    "description",
    "difficulty_name",
    "length",
    "bpm",
    "difficulty_rating",
    "count_hitobject_normal",
    "count_hitobject_long",
    "play_count",
    "fail_count",
    "mods_pending",
    "mods_accepted",
    "mods_denied",
    "mods_ignored",
    "online_offset",
    "clan_ranked",
)

MAPSET_TIMESTAMPS = ("date_submitted", "date_last_updated", "ranking_queue_last_updated")

CREATE_MAPSET = """
CREATE TABLE IF NOT EXISTS Mapset (
    id INT NOT NULL PRIMARY KEY,
    creator_id INT NULL,
    creator_username VARCHAR(255) NULL,
    creator_avatar_url TEXT NULL,
    artist TEXT NULL,
    title TEXT NULL,
    source TEXT NULL,
    tags TEXT NULL,
    description TEXT NULL,
    date_submitted DATETIME NULL,
    date_last_updated DATETIME NULL,
    ranking_queue_status INT NULL,
    ranking_queue_last_updated DATETIME NULL,
    ranking_queue_vote_count INT NULL,
    mapset_ranking_queue_id INT NULL
)
"""

CREATE_MAP = """
CREATE TABLE IF NOT EXISTS Map (
    id INT NOT NULL PRIMARY KEY,
    mapset_id INT NOT NULL,
    md5 VARCHAR(32) NOT NULL,
    alternative_md5 VARCHAR(32) NULL,
    creator_id INT NULL,
    creator_username VARCHAR(255) NULL,
    game_mode INT NULL,
    ranked_status INT NULL,
    artist TEXT NULL,
    title TEXT NULL,
    source TEXT NULL,
    tags TEXT NULL,
    description TEXT NULL,
    difficulty_name TEXT NULL,
    length INT NULL,
    bpm DOUBLE NULL,
    difficulty_rating DOUBLE NULL,
    count_hitobject_normal INT NULL,
    count_hitobject_long INT NULL,
    play_count INT NULL,
    fail_count INT NULL,
    mods_pending INT NULL,
    mods_accepted INT NULL,
    mods_denied INT NULL,
    mods_ignored INT NULL,
    online_offset INT NULL,
    clan_ranked TINYINT NULL,
    INDEX (mapset_id)
)
"""


def parse_timestamp(value: Any) -> Optional[datetime]:
    """API timestamps are ISO-8601, usually with a trailing ``Z``."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only accepts 3 or 6 fractional digits
    text = re.sub(r"\.(\d+)", lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return datetime.fromisoformat(text)


def mapset_row(mapset: Dict[str, Any]) -> tuple:
    values = []
    for column in MAPSET_COLUMNS:
        value = mapset.get(column)
        if column in MAPSET_TIMESTAMPS:
            value = parse_timestamp(value)
        values.append(value)
    return tuple(values)


def map_row(map_: Dict[str, Any]) -> tuple:
    return tuple(map_.get(column) for column in MAP_COLUMNS)


def _replace_query(table: str, columns: Iterable[str]) -> str:
    columns = list(columns)
    placeholders = ", ".join(["%s"] * len(columns))
    return f"REPLACE INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


class MapsetDatabase:
    """Insert-or-replace store keyed by mapset / map id."""

    def __init__(self, connection):
        self.connection = connection

    @classmethod
    def connect(cls, settings: Settings) -> "MapsetDatabase":
        try:
            connection = mysql.connector.connect(
                host=settings.DATABASE_HOST,
                user=settings.DATABASE_USER,
                password=settings.DATABASE_PASSWORD,
                database=settings.DATABASE_NAME,
            )
        except mysql.connector.Error as exc:
            raise StorageError(f"Unable to connect to MySQL at {settings.DATABASE_HOST}: {exc}") from exc
        return cls(connection)

    def _execute(self, query: str, values: tuple = ()) -> None:
        try:
            cur = self.connection.cursor()
            try:
                cur.execute(query, values)
            finally:
                cur.close()
            self.connection.commit()
        except mysql.connector.Error as exc:
            raise StorageError(str(exc)) from exc

    def create_tables(self) -> None:
        self._execute(CREATE_MAPSET)
        self._execute(CREATE_MAP)

    def existing_mapset_ids(self) -> Set[int]:
        try:
            cur = self.connection.cursor()
            try:
                cur.execute("SELECT id FROM Mapset")
                rows = cur.fetchall()
            finally:
                cur.close()
        except mysql.connector.Error as exc:
            raise StorageError(f"Unable to read mapset ids: {exc}") from exc
        return {int(row[0]) for row in rows}

    def upsert_mapset(self, mapset: Dict[str, Any]) -> None:
        try:
            self._execute(_replace_query("Mapset", MAPSET_COLUMNS), mapset_row(mapset))
        except StorageError as exc:
            raise StorageError(f"Unable to upsert mapset {mapset.get('id')}: {exc}") from exc

    def upsert_map(self, map_: Dict[str, Any]) -> None:
        try:
            self._execute(_replace_query("Map", MAP_COLUMNS), map_row(map_))
        except StorageError as exc:
            raise StorageError(f"Unable to upsert map {map_.get('id')}: {exc}") from exc

    def close(self) -> None:
        self.connection.close()
