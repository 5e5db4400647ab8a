"""
Local word store: a durable, partitioned cache of WordRecords.

Durable storage is a small sqlite database; every read after startup is
served from an in-memory mirror keyed by "<category>_<difficulty>".
Durable errors degrade the store to memory-only for the rest of the
process instead of failing callers.
"""

import asyncio
import logging
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from .exceptions import PersistenceError
from .models import CachePartition, WordRecord, partition_key

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


class LocalWordStore:
    def __init__(self, db_path: Optional[str] = None, ttl_secs: float = 24 * 60 * 60,
                 min_words: int = 15, clock: Callable[[], float] = time.time):
        self.db_path = Path(db_path) if db_path else None
        self.ttl_secs = ttl_secs
        self.min_words = min_words
        self.clock = clock
        self._memory: Dict[str, List[WordRecord]] = {}
        self._partitions: Dict[str, CachePartition] = {}
        self._initialized = False
        self._durable = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def durable(self) -> bool:
        return self._durable

    # ------------------------------------------------------------------
    # sqlite plumbing (runs in worker threads)
    # ------------------------------------------------------------------
    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if self.db_path is None:
            raise PersistenceError("No cache database configured")
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        version = conn.execute("PRAGMA user_version;").fetchone()[0]
        if version != SCHEMA_VERSION:
            # The cache is disposable: rebuild instead of migrating.
            if version:
                logger.info(f"Cache schema v{version} -> v{SCHEMA_VERSION}; rebuilding local cache")
            conn.execute("DROP TABLE IF EXISTS words;")
            conn.execute("DROP TABLE IF EXISTS cache_stats;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS words (
                id TEXT PRIMARY KEY,
                text TEXT NOT NULL,
                category TEXT NOT NULL,
                difficulty TEXT NOT NULL,
                use_count INTEGER NOT NULL DEFAULT 0,
                last_used_at TEXT,
                cached_at REAL NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_words_partition ON words(category, difficulty);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_words_cached_at ON words(cached_at);")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS cache_stats (
                category TEXT NOT NULL,
                difficulty TEXT NOT NULL,
                word_count INTEGER NOT NULL,
                last_sync_at REAL NOT NULL,
                schema_version INTEGER NOT NULL,
                PRIMARY KEY (category, difficulty)
            );
            """
        )
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")

    def _load(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            self._ensure_schema(conn)
            words = [
                WordRecord(
                    id=row["id"],
                    text=row["text"],
                    category=row["category"],
                    difficulty=row["difficulty"],
                    use_count=row["use_count"],
                    last_used_at=row["last_used_at"],
                    cached_at=row["cached_at"],
                )
                for row in conn.execute("SELECT * FROM words;").fetchall()
            ]
            stats = [
                CachePartition(
                    category=row["category"],
                    difficulty=row["difficulty"],
                    word_count=row["word_count"],
                    last_sync_at=row["last_sync_at"],
                    schema_version=row["schema_version"],
                )
                for row in conn.execute("SELECT * FROM cache_stats;").fetchall()
            ]
        return words, stats

    def _write_partition(self, meta: CachePartition, records: Sequence[WordRecord]) -> None:
        # One transaction: readers of the file never see a half-replaced partition.
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM words WHERE category = ? AND difficulty = ?;",
                (meta.category, meta.difficulty),
            )
            conn.executemany(
                "INSERT OR REPLACE INTO words (id, text, category, difficulty, use_count, last_used_at, cached_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?);",
                [
                    (r.id, r.text, r.category, r.difficulty, r.use_count, r.last_used_at, r.cached_at)
                    for r in records
                ],
            )
            conn.execute(
                "INSERT OR REPLACE INTO cache_stats (category, difficulty, word_count, last_sync_at, schema_version) "
                "VALUES (?, ?, ?, ?, ?);",
                (meta.category, meta.difficulty, meta.word_count, meta.last_sync_at, meta.schema_version),
            )

    def _write_usage(self, word_id: str, use_count: int, used_at: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE words SET use_count = ?, last_used_at = ? WHERE id = ?;",
                (use_count, used_at, word_id),
            )

    def _delete_expired(self, cutoff: float) -> int:
        with self._connect() as conn:
            removed = conn.execute("DELETE FROM words WHERE cached_at < ?;", (cutoff,)).rowcount
            conn.execute("DELETE FROM cache_stats WHERE last_sync_at < ?;", (cutoff,))
        return removed

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def initialize(self) -> bool:
        """Open the durable store and load it into memory. Safe to call repeatedly."""
        if self._initialized:
            return True
        if self.db_path is None:
            logger.info("Local word cache running in memory-only mode")
            self._initialized = True
            return True
        try:
            words, stats = await asyncio.to_thread(self._load)
        except (sqlite3.Error, OSError, PersistenceError) as e:
            logger.error(f"Failed to open local word cache at {self.db_path}: {e}")
            return False

        self._memory = {}
        for word in words:
            self._memory.setdefault(word.partition, []).append(word)
        self._partitions = {stat.key: stat for stat in stats}
        self._durable = True
        self._initialized = True
        logger.info(f"Loaded {len(words)} words into memory cache from {self.db_path}")
        return True

    def is_fresh(self, category: str, difficulty: str) -> bool:
        meta = self._partitions.get(partition_key(category, difficulty))
        if meta is None or meta.word_count < self.min_words:
            return False
        return self.clock() - meta.last_sync_at < self.ttl_secs

    def get_partition(self, category: str, difficulty: str) -> List[WordRecord]:
        return list(self._memory.get(partition_key(category, difficulty), []))

    async def replace_partition(self, category: str, difficulty: str,
                                records: Sequence[WordRecord]) -> None:
        """Swap a partition for a new snapshot. Never merges with the old records."""
        now = self.clock()
        stamped = [
            replace(r, category=category, difficulty=difficulty, cached_at=now)
            for r in records
        ]
        meta = CachePartition(
            category=category,
            difficulty=difficulty,
            word_count=len(stamped),
            last_sync_at=now,
            schema_version=SCHEMA_VERSION,
        )
        if self._durable:
            try:
                await asyncio.to_thread(self._write_partition, meta, stamped)
            except (sqlite3.Error, OSError, PersistenceError) as e:
                logger.warning(f"Could not persist partition {meta.key}; keeping it in memory only: {e}")
        self._memory[meta.key] = stamped
        self._partitions[meta.key] = meta
        logger.info(f"Cached {len(stamped)} words for {category}/{difficulty}")

    async def mark_used(self, word_id: str, use_count: int, used_at: str) -> bool:
        """Reflect a served word's new usage in the mirror (and on disk, best effort)."""
        found = False
        for words in self._memory.values():
            for word in words:
                if word.id == word_id:
                    word.use_count = use_count
                    word.last_used_at = used_at
                    found = True
                    break
            if found:
                break
        if not found:
            return False
        if self._durable:
            try:
                await asyncio.to_thread(self._write_usage, word_id, use_count, used_at)
            except (sqlite3.Error, OSError, PersistenceError) as e:
                logger.warning(f"Could not persist usage for word {word_id}: {e}")
        return True

    async def evict_expired(self) -> int:
        """Drop records and partition metadata older than the TTL."""
        cutoff = self.clock() - self.ttl_secs
        if self._durable:
            try:
                await asyncio.to_thread(self._delete_expired, cutoff)
            except (sqlite3.Error, OSError, PersistenceError) as e:
                logger.warning(f"Could not evict expired words from disk: {e}")

        removed = 0
        for key in list(self._memory):
            kept = [w for w in self._memory[key] if (w.cached_at or 0) >= cutoff]
            removed += len(self._memory[key]) - len(kept)
            if kept:
                self._memory[key] = kept
            else:
                del self._memory[key]
        for key in list(self._partitions):
            meta = self._partitions[key]
            if meta.last_sync_at < cutoff:
                del self._partitions[key]
            else:
                meta.word_count = len(self._memory.get(key, []))
        if removed:
            logger.info(f"Evicted {removed} expired words from local cache")
        return removed

    def total_word_count(self) -> int:
        return sum(len(words) for words in self._memory.values())

    def stats_snapshot(self) -> Dict[str, CachePartition]:
        return {key: replace(meta) for key, meta in self._partitions.items()}
