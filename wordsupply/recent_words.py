"""
Recent-use tracker: remembers which literal words this device served
recently so they are not dealt again within the cooldown window, even
across app restarts. State is a small JSON file.
"""

import asyncio
import json
import logging
import os
import threading
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .models import HealthStatus, RecentUseEntry, Session

logger = logging.getLogger(__name__)

T = TypeVar("T")

RISK_CRITICAL = "critical"
RISK_HIGH = "high"
RISK_MODERATE = "moderate"
RISK_LOW = "low"

_RISK_MESSAGES = {
    RISK_CRITICAL: "Almost every word was used recently! Switch categories to avoid repeats.",
    RISK_HIGH: "Few new words left. Consider switching category or difficulty.",
    RISK_MODERATE: "Words may start repeating soon. How about another category?",
    RISK_LOW: "",
}


class RecentWordsTracker:
    def __init__(self, state_file: Optional[str] = None, cooldown_secs: float = 2 * 60 * 60,
                 max_entries: int = 200, max_sessions: int = 10,
                 clock: Callable[[], float] = time.time):
        self.state_file = Path(state_file) if state_file else None
        self.cooldown_secs = cooldown_secs
        self.max_entries = max_entries
        self.max_sessions = max_sessions
        self.clock = clock
        self.entries: List[RecentUseEntry] = []
        self.sessions: List[Session] = []
        self.current_session: Optional[Session] = None
        self._version = 0
        self._written_version = 0
        self._write_lock = threading.Lock()
        self._load()
        self.cleanup_expired()

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------
    def _load(self) -> None:
        if self.state_file is None or not self.state_file.exists():
            return
        try:
            with open(self.state_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("state file is not a JSON object")
            self.entries = [RecentUseEntry.from_dict(e) for e in data.get('recent_words') or []]
            self.sessions = [Session.from_dict(s) for s in data.get('sessions') or []]
            current = data.get('current_session')
            self.current_session = Session.from_dict(current) if current else None
            logger.info(f"Loaded {len(self.entries)} recent words from {self.state_file}")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Could not load recent words from {self.state_file}: {e}")
            self.entries = []
            self.sessions = []
            self.current_session = None

    def _snapshot(self) -> Tuple[int, Dict[str, Any]]:
        self._version += 1
        return self._version, {
            'recent_words': [e.to_dict() for e in self.entries],
            'sessions': [s.to_dict() for s in self.sessions],
            'current_session': self.current_session.to_dict() if self.current_session else None,
        }

    def _write(self, version: int, data: Dict[str, Any]) -> None:
        # Writers may run on worker threads; never let an older snapshot win.
        with self._write_lock:
            if version <= self._written_version:
                return
            try:
                self.state_file.parent.mkdir(parents=True, exist_ok=True)
                tmp = self.state_file.with_suffix(self.state_file.suffix + '.tmp')
                with open(tmp, 'w', encoding='utf-8') as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp, self.state_file)
                self._written_version = version
            except OSError as e:
                logger.warning(f"Could not save recent words to {self.state_file}: {e}")

    def _save(self) -> None:
        if self.state_file is None:
            return
        self._write(*self._snapshot())

    async def flush(self) -> None:
        """Persist the current state from a worker thread."""
        if self.state_file is None:
            return
        version, data = self._snapshot()
        await asyncio.to_thread(self._write, version, data)

    # ------------------------------------------------------------------
    # sessions
    # ------------------------------------------------------------------
    def start_session(self, categories: Sequence[str], difficulty: str) -> str:
        """Begin a game session. Prior recent-word history is kept."""
        if self.current_session is not None:
            self._close_current_session()
        now = self.clock()
        session_id = f"session_{int(now * 1000)}_{uuid.uuid4().hex[:9]}"
        self.current_session = Session(
            session_id=session_id,
            started_at=now,
            categories=list(categories),
            difficulty=difficulty,
        )
        logger.info(f"New session started: {session_id} ({', '.join(categories)}, {difficulty})")
        self._save()
        return session_id

    def _close_current_session(self) -> None:
        self.sessions.append(self.current_session)
        if len(self.sessions) > self.max_sessions:
            self.sessions = self.sessions[-self.max_sessions:]
        logger.info(
            f"Session ended: {self.current_session.session_id} "
            f"({len(self.current_session.words_used)} words used)"
        )
        self.current_session = None

    def end_session(self) -> None:
        if self.current_session is None:
            return
        self._close_current_session()
        self._save()

    # ------------------------------------------------------------------
    # tracking
    # ------------------------------------------------------------------
    def mark_used(self, text: str, category: str, difficulty: str) -> None:
        self.mark_many([(text, category, difficulty)])

    def mark_many(self, words: Iterable[Tuple[str, str, str]], persist: bool = True) -> int:
        """Record (text, category, difficulty) uses; the state file is written once."""
        now = self.clock()
        session_id = self.current_session.session_id if self.current_session else None
        added = 0
        for text, category, difficulty in words:
            entry = RecentUseEntry(
                text=text,
                category=category,
                difficulty=difficulty,
                used_at=now,
                session_id=session_id,
            )
            self.entries.append(entry)
            if self.current_session is not None:
                self.current_session.words_used.append(entry)
            logger.debug(f"Word marked as used: {text!r} ({category}/{difficulty})")
            added += 1
        if len(self.entries) > self.max_entries:
            self.entries = self.entries[-self.max_entries:]
        if added and persist:
            self._save()
        return added

    def _is_active(self, entry: RecentUseEntry, now: float) -> bool:
        return now - entry.used_at < self.cooldown_secs

    def is_recently_used(self, text: str, category: str, difficulty: str) -> bool:
        now = self.clock()
        wanted = (text or '').lower()
        return any(
            e.text.lower() == wanted
            and e.category == category
            and e.difficulty == difficulty
            and self._is_active(e, now)
            for e in self.entries
        )

    def filter(self, candidates: Iterable[T]) -> List[T]:
        """Drop candidates (objects with text/category/difficulty) still in cooldown."""
        candidates = list(candidates)
        now = self.clock()
        blocked = {
            (e.text.lower(), e.category, e.difficulty)
            for e in self.entries
            if self._is_active(e, now)
        }
        kept = [
            c for c in candidates
            if (c.text.lower(), c.category, c.difficulty) not in blocked
        ]
        removed = len(candidates) - len(kept)
        if removed:
            logger.info(f"Filtered {removed} recently used words out of {len(candidates)}")
        return kept

    def recent_words(self) -> List[RecentUseEntry]:
        """Entries still inside the cooldown window."""
        now = self.clock()
        return [e for e in self.entries if self._is_active(e, now)]

    def current_session_words(self) -> List[RecentUseEntry]:
        return list(self.current_session.words_used) if self.current_session else []

    def health_status(self, categories: Sequence[str], difficulty: str,
                      total_available_estimate: int = 100) -> HealthStatus:
        """How much of a category/difficulty combination is blocked by cooldowns."""
        now = self.clock()
        wanted = set(categories)
        blocked_count = sum(
            1 for e in self.entries
            if e.category in wanted and e.difficulty == difficulty and self._is_active(e, now)
        )
        if total_available_estimate > 0:
            ratio = (total_available_estimate - blocked_count) * 100 / total_available_estimate
            health = max(0.0, min(100.0, ratio))
        else:
            health = 0.0 if blocked_count else 100.0

        if health <= 5:
            risk = RISK_CRITICAL
        elif health <= 15:
            risk = RISK_HIGH
        elif health <= 30:
            risk = RISK_MODERATE
        else:
            risk = RISK_LOW
        return HealthStatus(
            health_percentage=health,
            blocked_count=blocked_count,
            total_recent_words=len(self.entries),
            risk_level=risk,
            should_warn=risk != RISK_LOW,
            message=_RISK_MESSAGES[risk],
        )

    def statistics(self) -> Dict[str, Any]:
        now = self.clock()
        active = self.recent_words()
        oldest = min((e.used_at for e in active), default=None)
        current = None
        if self.current_session is not None:
            current = {
                'id': self.current_session.session_id,
                'duration': now - self.current_session.started_at,
                'categories': list(self.current_session.categories),
                'difficulty': self.current_session.difficulty,
            }
        return {
            'total_recent_words': len(active),
            'current_session_words': len(self.current_session_words()),
            'total_sessions': len(self.sessions),
            'cooldown_hours': self.cooldown_secs / 3600,
            'oldest_recent_word': (
                datetime.fromtimestamp(oldest, timezone.utc).isoformat() if oldest is not None else None
            ),
            'current_session': current,
        }

    # ------------------------------------------------------------------
    # maintenance
    # ------------------------------------------------------------------
    def cleanup_expired(self, persist: bool = True) -> int:
        now = self.clock()
        before = len(self.entries)
        self.entries = [e for e in self.entries if self._is_active(e, now)]
        removed = before - len(self.entries)
        if removed:
            logger.info(f"Cleanup: removed {removed} expired recent words")
            if persist:
                self._save()
        return removed

    def remove_word(self, text: str) -> bool:
        """Forget every entry for a word, whatever its category."""
        wanted = (text or '').lower()
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.text.lower() != wanted]
        removed = len(self.entries) != before
        if removed:
            self._save()
            logger.info(f"Removed {text!r} from recent words")
        return removed

    def reset(self) -> None:
        self.entries = []
        self.sessions = []
        self.current_session = None
        self._save()
        logger.info("Recent words history fully reset")
