"""
SQLite catalog for the station.
Holds track metadata seeded from library.json, fast search and the
per-user recently played history.
"""

import json
import logging
import re
import sqlite3
import time
from pathlib import Path
from typing import List, Dict, Any, Optional

from shared.models import Track, LibraryMetadata, locator_to_dict
from shared.constants import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_DATABASE_FILENAME,
    RECENTLY_PLAYED_LIMIT,
    SEARCH_RESULT_LIMIT,
)

logger = logging.getLogger(__name__)

_TRACK_COLUMNS = (
    "id", "title", "artist", "album", "duration", "mime_type", "locator",
    "cover_image", "year", "genre", "track_number", "created_at",
)


class DatabaseManager:
    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            db_dir = Path(DEFAULT_CONFIG_DIR).expanduser()
            db_dir.mkdir(parents=True, exist_ok=True)
            self.db_path = db_dir / DEFAULT_DATABASE_FILENAME
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.fts_enabled = False
        self._init_db()

    def _get_connection(self):
        conn = sqlite3.connect(self.db_path)
        # WAL lets concurrent stream requests read while a sync writes
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize the database schema."""
        conn = self._get_connection()
        try:
            conn.execute("BEGIN TRANSACTION")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS tracks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    artist TEXT NOT NULL,
                    album TEXT,
                    duration INTEGER DEFAULT 0,
                    mime_type TEXT,
                    locator TEXT,
                    cover_image TEXT,
                    year INTEGER,
                    genre TEXT,
                    track_number INTEGER,
                    created_at TEXT
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS library_info (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS recently_played (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    track_id TEXT NOT NULL,
                    played_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_recently_played_user
                ON recently_played (user_id, played_at)
            """)

            # Search index (FTS5), kept in sync by triggers
            try:
                conn.execute("""
                    CREATE VIRTUAL TABLE IF NOT EXISTS tracks_fts USING fts5(
                        id UNINDEXED,
                        title,
                        artist,
                        album,
                        content='tracks',
                        content_rowid='rowid'
                    )
                """)
                conn.execute("DROP TRIGGER IF EXISTS tracks_ai")
                conn.execute("""
                    CREATE TRIGGER tracks_ai AFTER INSERT ON tracks BEGIN
                        INSERT INTO tracks_fts(rowid, id, title, artist, album)
                        VALUES (new.rowid, new.id, new.title, new.artist, new.album);
                    END
                """)
                conn.execute("DROP TRIGGER IF EXISTS tracks_ad")
                conn.execute("""
                    CREATE TRIGGER tracks_ad AFTER DELETE ON tracks BEGIN
                        INSERT INTO tracks_fts(tracks_fts, rowid, id, title, artist, album)
                        VALUES('delete', old.rowid, old.id, old.title, old.artist, old.album);
                    END
                """)
                conn.execute("DROP TRIGGER IF EXISTS tracks_au")
                conn.execute("""
                    CREATE TRIGGER tracks_au AFTER UPDATE ON tracks BEGIN
                        INSERT INTO tracks_fts(tracks_fts, rowid, id, title, artist, album)
                        VALUES('delete', old.rowid, old.id, old.title, old.artist, old.album);
                        INSERT INTO tracks_fts(rowid, id, title, artist, album)
                        VALUES (new.rowid, new.id, new.title, new.artist, new.album);
                    END
                """)
                self.fts_enabled = True
            except sqlite3.OperationalError:
                logger.info("FTS5 not available, search falls back to LIKE")

            conn.execute("COMMIT")
        except sqlite3.Error:
            conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @staticmethod
    def _track_params(track: Track) -> tuple:
        locator = locator_to_dict(track.locator)
        return (
            track.id, track.title, track.artist, track.album, track.duration,
            track.mime_type, json.dumps(locator) if locator else None,
            track.cover_image, track.year, track.genre, track.track_number,
            track.created_at,
        )

    def _upsert(self, conn: sqlite3.Connection, track: Track):
        placeholders = ", ".join("?" for _ in _TRACK_COLUMNS)
        updates = ", ".join(f"{c}=excluded.{c}" for c in _TRACK_COLUMNS if c not in ("id", "created_at"))
        conn.execute(
            f"INSERT INTO tracks ({', '.join(_TRACK_COLUMNS)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}",
            self._track_params(track),
        )

    def upsert_track(self, track: Track):
        """Insert a track or replace its metadata and locator."""
        conn = self._get_connection()
        try:
            with conn:
                self._upsert(conn, track)
        finally:
            conn.close()

    def sync_from_metadata(self, metadata: LibraryMetadata):
        """
        Make the catalog match a LibraryMetadata manifest.
        Tracks missing from the manifest are pruned in the same transaction.
        """
        conn = self._get_connection()
        try:
            conn.execute("BEGIN TRANSACTION")
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO library_info (key, value) VALUES ('version', ?)",
                    (str(metadata.version),),
                )

                incoming_ids = [t.id for t in metadata.tracks]
                if incoming_ids:
                    placeholders = ','.join(['?'] * len(incoming_ids))
                    conn.execute(f"DELETE FROM tracks WHERE id NOT IN ({placeholders})", incoming_ids)
                else:
                    conn.execute("DELETE FROM tracks")

                for track in metadata.tracks:
                    self._upsert(conn, track)
                conn.execute("COMMIT")
            except sqlite3.Error:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()
        logger.info("Catalog synced: %d tracks (manifest v%s)", len(metadata.tracks), metadata.version)

    def sync_from_file(self, path: str) -> bool:
        """Seed the catalog from a library.json file; False when there is none."""
        manifest = Path(path).expanduser()
        if not manifest.exists():
            logger.warning("No catalog manifest at %s", manifest)
            return False
        self.sync_from_metadata(LibraryMetadata.from_json(manifest.read_text(encoding="utf-8")))
        return True

    def _query_tracks(self, sql: str, params: tuple = ()) -> List[Track]:
        conn = self._get_connection()
        try:
            return [self._row_to_track(row) for row in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def get_all_tracks(self) -> List[Track]:
        """All tracks, newest first."""
        return self._query_tracks("SELECT * FROM tracks ORDER BY created_at DESC, title")

    def find_track_by_id(self, track_id: str) -> Optional[Track]:
        tracks = self._query_tracks("SELECT * FROM tracks WHERE id = ?", (track_id,))
        return tracks[0] if tracks else None

    @staticmethod
    def _fts_query(query: str) -> Optional[str]:
        # Quote every token so user input can never be read as FTS syntax
        tokens = re.findall(r"\w+", query)
        if not tokens:
            return None
        return " ".join(f'"{token}"*' for token in tokens)

    def find_tracks_matching(self, query: str, limit: int = SEARCH_RESULT_LIMIT) -> List[Track]:
        """
        Case-insensitive search over title, artist and album.
        Uses FTS5 prefix matching, then a substring LIKE scan when FTS finds
        nothing or is unavailable. An empty query matches nothing.
        """
        query = (query or "").strip()
        if not query:
            return []

        fts_query = self._fts_query(query) if self.fts_enabled else None
        if fts_query:
            try:
                results = self._query_tracks("""
                    SELECT t.* FROM tracks t
                    JOIN tracks_fts f ON t.id = f.id
                    WHERE tracks_fts MATCH ?
                    ORDER BY rank
                    LIMIT ?
                """, (fts_query, limit))
                if results:
                    return results
            except sqlite3.OperationalError as e:
                logger.debug("FTS search failed for %r: %s", query, e)

        pattern = "%" + query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        return self._query_tracks("""
            SELECT * FROM tracks
            WHERE title LIKE ? ESCAPE '\\' OR artist LIKE ? ESCAPE '\\' OR album LIKE ? ESCAPE '\\'
            ORDER BY artist, title
            LIMIT ?
        """, (pattern, pattern, pattern, limit))

    def get_albums(self) -> List[Dict[str, Any]]:
        """
        Group tracks into albums, sorted by album name.

        The album artist is that of the first track seen and the cover comes
        from the first track that has one.
        """
        albums: Dict[str, Dict[str, Any]] = {}
        for track in self.get_all_tracks():
            album = albums.get(track.album)
            if album is None:
                album = albums[track.album] = {
                    "name": track.album,
                    "artist": track.artist,
                    "cover_image": None,
                    "songs": [],
                    "song_count": 0,
                    "total_duration": 0,
                }
            if not album["cover_image"] and track.cover_image:
                album["cover_image"] = track.cover_image
            album["songs"].append(track)
            album["song_count"] += 1
            album["total_duration"] += track.duration
        return [albums[name] for name in sorted(albums)]

    def record_play(self, user_id: str, track_id: str):
        """
        Move a track to the top of a user's history.
        Only the newest RECENTLY_PLAYED_LIMIT entries are kept.
        """
        conn = self._get_connection()
        try:
            with conn:
                conn.execute(
                    "DELETE FROM recently_played WHERE user_id = ? AND track_id = ?",
                    (user_id, track_id),
                )
                conn.execute(
                    "INSERT INTO recently_played (user_id, track_id, played_at) VALUES (?, ?, ?)",
                    (user_id, track_id, time.time()),
                )
                conn.execute("""
                    DELETE FROM recently_played
                    WHERE user_id = ? AND id NOT IN (
                        SELECT id FROM recently_played WHERE user_id = ?
                        ORDER BY played_at DESC, id DESC
                        LIMIT ?
                    )
                """, (user_id, user_id, RECENTLY_PLAYED_LIMIT))
        finally:
            conn.close()

    def get_recently_played(self, user_id: str) -> List[Track]:
        """A user's history, newest first. Entries for deleted tracks are skipped."""
        return self._query_tracks("""
            SELECT t.* FROM recently_played r
            JOIN tracks t ON t.id = r.track_id
            WHERE r.user_id = ?
            ORDER BY r.played_at DESC, r.id DESC
        """, (user_id,))

    def _row_to_track(self, row: sqlite3.Row) -> Track:
        return Track.from_dict(dict(row))

    def get_stats(self) -> Dict[str, int]:
        conn = self._get_connection()
        try:
            total = conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0]
            albums = conn.execute("SELECT COUNT(DISTINCT album) FROM tracks").fetchone()[0]
            return {"tracks": total, "albums": albums}
        finally:
            conn.close()
