"""
Word supply orchestrator: the single entry point the game calls for words.

get_words runs CheckFreshness -> (CacheHit | RemoteBackfill) -> Filter ->
Select -> ReturnResult, then schedules mark-used bookkeeping as detached
tasks. Two overlapping calls may score with a slightly stale use_count;
selection is probabilistic, so that is accepted rather than locked away.
"""

import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .categories import DIFFICULTIES
from .config import Settings
from .exceptions import ConfigurationError, GeneratorAuthError, NoSourceAvailableError
from .generator import OpenRouterWordGenerator
from .local_store import LocalWordStore
from .models import WordRecord, partition_key
from .monitoring import CacheMonitor
from .recent_words import RecentWordsTracker
from .remote_store import DynamoDBWordStore, RemoteWordStore
from .selection import weighted_sample

logger = logging.getLogger(__name__)


def _dedupe_by_text(records: Sequence[WordRecord]) -> List[WordRecord]:
    seen: Set[str] = set()
    unique = []
    for record in records:
        key = record.text.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


class WordService:
    def __init__(self, store: LocalWordStore, tracker: RecentWordsTracker,
                 remote: Optional[RemoteWordStore] = None,
                 generator: Optional[OpenRouterWordGenerator] = None,
                 fetch_limit: int = 100,
                 monitor: Optional[CacheMonitor] = None,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.tracker = tracker
        self.remote = remote
        self.generator = generator
        self.fetch_limit = fetch_limit
        self.monitor = monitor or CacheMonitor(enabled=False)
        self.rng = rng or random.Random()
        self._inflight: Dict[str, asyncio.Future] = {}
        self._pending: Set[asyncio.Task] = set()
        self._cache_attempted = False

    @classmethod
    def from_settings(cls, settings: Settings) -> 'WordService':
        store = LocalWordStore(
            settings.cache_db_path,
            ttl_secs=settings.cache_ttl_secs,
            min_words=settings.min_words_per_partition,
        )
        tracker = RecentWordsTracker(
            settings.recent_words_file,
            cooldown_secs=settings.cooldown_secs,
            max_entries=settings.max_recent_words,
            max_sessions=settings.max_sessions,
        )
        return cls(
            store,
            tracker,
            remote=DynamoDBWordStore.from_settings(settings),
            generator=OpenRouterWordGenerator.from_settings(settings),
            fetch_limit=settings.fetch_limit,
            monitor=CacheMonitor(settings.environment, enabled=settings.enable_metrics,
                                 region=settings.aws_region),
        )

    @property
    def remote_configured(self) -> bool:
        return self.remote is not None and self.remote.is_configured

    @property
    def generator_configured(self) -> bool:
        return self.generator is not None and self.generator.is_configured

    # ------------------------------------------------------------------
    # cache plumbing
    # ------------------------------------------------------------------
    async def initialize_cache(self) -> bool:
        self._cache_attempted = True
        ok = await self.store.initialize()
        if not ok:
            logger.warning("Local cache unavailable; continuing without durable cache")
        return ok

    async def _ensure_cache(self) -> None:
        if not self.store.initialized and not self._cache_attempted:
            await self.initialize_cache()

    async def _fetch_and_replace(self, category: str, difficulty: str) -> Optional[List[WordRecord]]:
        """Backfill one partition. None means the remote store gave no answer."""
        key = partition_key(category, difficulty)
        started = time.monotonic()
        try:
            records = await asyncio.to_thread(
                self.remote.fetch_words, [category], difficulty, self.fetch_limit
            )
        except Exception as e:
            logger.warning(f"Remote fetch failed for {category}/{difficulty}: {e}")
            self.monitor.track_error('RemoteFetch')
            return None
        if not records:
            logger.warning(f"No words found remotely for {category}/{difficulty}")
            return []
        await self.store.replace_partition(category, difficulty, records)
        self.monitor.track_backfill_latency(key, (time.monotonic() - started) * 1000)
        return self.store.get_partition(category, difficulty)

    async def _backfill(self, category: str, difficulty: str) -> Optional[List[WordRecord]]:
        # Overlapping backfills of one partition share a single fetch so a slow
        # response can never overwrite a newer snapshot.
        key = partition_key(category, difficulty)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_replace(category, difficulty))
            self._inflight[key] = task

            def _release(done, key=key):
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_release)
        return await asyncio.shield(task)

    async def _collect_candidates(self, categories: Sequence[str],
                                  difficulty: str) -> Tuple[List[WordRecord], bool]:
        candidates: List[WordRecord] = []
        answered = False
        for category in categories:
            key = partition_key(category, difficulty)
            if self.store.is_fresh(category, difficulty):
                self.monitor.track_cache_hit(key)
                candidates.extend(self.store.get_partition(category, difficulty))
                answered = True
                continue

            self.monitor.track_cache_miss(key)
            logger.info(f"Cache miss for {category}/{difficulty}")
            records: List[WordRecord] = []
            if self.remote_configured:
                fetched = await self._backfill(category, difficulty)
                if fetched is not None:
                    answered = True
                    records = fetched
            if not records:
                stale = self.store.get_partition(category, difficulty)
                if stale:
                    logger.info(f"Serving {len(stale)} stale cached words for {category}/{difficulty}")
                    records = stale
                    answered = True
            candidates.extend(records)
        return candidates, answered

    # ------------------------------------------------------------------
    # main entry point
    # ------------------------------------------------------------------
    async def get_words(self, categories: Sequence[str], difficulty: str, count: int) -> List[str]:
        """Return up to `count` distinct words, preferring the local cache."""
        if count <= 0:
            return []
        categories = list(categories)
        await self._ensure_cache()

        candidates, answered = await self._collect_candidates(categories, difficulty)
        available = _dedupe_by_text(self.tracker.filter(candidates))
        if not available and candidates:
            logger.warning(f"Every cached word for [{', '.join(categories)}]/{difficulty} "
                           f"was used recently; reusing the full pool")
            if self.tracker.cleanup_expired(persist=False):
                await self.tracker.flush()
            available = _dedupe_by_text(candidates)
        if len(available) < count:
            logger.warning(f"Only {len(available)}/{count} non-recent words available "
                           f"for [{', '.join(categories)}]/{difficulty}")
            self.monitor.track_shortage(count - len(available))

        selected = weighted_sample(available, count, rng=self.rng, now=self.store.clock())
        words = [record.text for record in selected]

        generated: List[str] = []
        if len(words) < count and self.generator_configured:
            try:
                generated = await self._generate_shortfall(categories, difficulty, count - len(words), words)
                answered = True
            except GeneratorAuthError:
                raise
            except Exception as e:
                logger.warning(f"Word generator failed: {e}")
                self.monitor.track_error('Generator')
            words.extend(generated)

        if not words:
            if not self.remote_configured and not self.generator_configured and not answered:
                logger.error("No word source (word table or generator) is configured")
                raise ConfigurationError()
            if not answered:
                raise NoSourceAvailableError(
                    "No word source is available right now. Check the word table and generator configuration."
                )
            logger.warning("Could not fetch any words; the sources may be empty for these criteria")

        if selected or generated:
            self._spawn(self._mark_used(selected, generated, categories, difficulty))
        logger.info(f"Serving {len(words)} words ({len(generated)} generated)")
        return words

    async def _generate_shortfall(self, categories: List[str], difficulty: str,
                                  missing: int, already: List[str]) -> List[str]:
        blocked = [
            e.text for e in self.tracker.recent_words()
            if e.category in categories and e.difficulty == difficulty
        ]
        logger.info(f"Need {missing} more words; asking the generator")
        new_words = await self.generator.generate(categories, difficulty, missing, already + blocked)
        new_words = new_words[:missing]
        if new_words and self.remote_configured:
            await self._write_back(new_words, categories, difficulty)
        return new_words

    async def _write_back(self, words: List[str], categories: List[str], difficulty: str) -> None:
        for category in categories:
            try:
                existing = await asyncio.to_thread(self.remote.existing_texts, category, difficulty)
                fresh = [w for w in words if w.lower() not in existing]
                if fresh:
                    inserted = await asyncio.to_thread(self.remote.insert_words, fresh, category, difficulty)
                    logger.info(f"Saved {inserted} generated words for {category}/{difficulty}")
            except Exception as e:
                logger.warning(f"Could not save generated words for {category}/{difficulty}: {e}")
                self.monitor.track_error('RemoteWrite')

    # ------------------------------------------------------------------
    # mark-used bookkeeping
    # ------------------------------------------------------------------
    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Mark-used bookkeeping failed: {error}")

    async def drain(self) -> None:
        """Wait for outstanding mark-used tasks."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _mark_used(self, selected: List[WordRecord], generated: List[str],
                         categories: List[str], difficulty: str) -> None:
        used_at = datetime.fromtimestamp(self.store.clock(), timezone.utc).isoformat()
        uses = [(record.text, record.category, record.difficulty) for record in selected]
        uses += [(word, category, difficulty) for word in generated for category in categories]
        self.tracker.mark_many(uses, persist=False)
        await self.tracker.flush()
        for record in selected:
            new_count = int(record.use_count or 0) + 1
            if self.remote_configured:
                try:
                    new_count = await asyncio.to_thread(self.remote.increment_usage, record.id, used_at)
                except Exception as e:
                    logger.warning(f"Failed to mark word {record.id} as used remotely: {e}")
            await self.store.mark_used(record.id, new_count, used_at)

    # ------------------------------------------------------------------
    # caller-facing helpers
    # ------------------------------------------------------------------
    async def preload_words(self, categories: Sequence[str],
                            difficulties: Sequence[str] = DIFFICULTIES,
                            pause: float = 0.1) -> None:
        """Warm every stale partition of the given categories/difficulties."""
        await self._ensure_cache()
        if not self.remote_configured:
            logger.warning("Word table not configured; nothing to preload")
            return
        logger.info("Starting preload of words...")
        for category in categories:
            for difficulty in difficulties:
                if self.store.is_fresh(category, difficulty):
                    continue
                await self._backfill(category, difficulty)
                if pause > 0:
                    await asyncio.sleep(pause)
        logger.info("Preload completed")

    def get_cache_statistics(self) -> Dict[str, Any]:
        return {
            'stats': {key: meta.to_dict() for key, meta in self.store.stats_snapshot().items()},
            'total_words': self.store.total_word_count(),
        }

    async def clear_expired_cache(self) -> int:
        return await self.store.evict_expired()

    def get_recent_words_statistics(self) -> Dict[str, Any]:
        return self.tracker.statistics()

    def health_status(self, categories: Sequence[str], difficulty: str,
                      estimate: int = 150) -> Dict[str, Any]:
        return self.tracker.health_status(categories, difficulty, estimate).to_dict()

    def start_session(self, categories: Sequence[str], difficulty: str) -> str:
        return self.tracker.start_session(categories, difficulty)

    def end_session(self) -> None:
        self.tracker.end_session()

    def cleanup_recent_words(self) -> int:
        return self.tracker.cleanup_expired()

    def reset_recent_history(self) -> None:
        self.tracker.reset()

    async def reset_usage_counters(self) -> Dict[str, Any]:
        """Zero the remote usage counters of every word (admin action)."""
        if not self.remote_configured:
            return {'success': False, 'affected_rows': 0,
                    'message': 'Word table is not configured or available.'}
        try:
            affected = await asyncio.to_thread(self.remote.reset_usage)
        except Exception as e:
            logger.error(f"Error resetting usage counters: {e}")
            return {'success': False, 'affected_rows': 0, 'message': f"Reset failed: {e}"}
        return {'success': True, 'affected_rows': affected,
                'message': f"Reset completed: {affected} words were reset."}
