"""
Weighted random selection of cached words.

Each candidate gets a score: a fixed base, minus a penalty per global use,
minus a penalty when the remote store saw it used in the last day or week.
Scores never drop below MIN_SCORE, so every candidate keeps a nonzero
chance. Draws are roulette-wheel picks without replacement.
"""

import random
import time
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .models import WordRecord

logger = logging.getLogger(__name__)

BASE_SCORE = 100
USE_COUNT_PENALTY = 10
LAST_DAY_PENALTY = 30
LAST_WEEK_PENALTY = 10
MIN_SCORE = 1

_HOUR = 60 * 60


def parse_timestamp(value: Optional[str]) -> Optional[float]:
    """Parse an ISO-8601 timestamp (with or without 'Z') into epoch seconds."""
    if not value:
        return None
    try:
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        dt = datetime.fromisoformat(text)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.timestamp()
    except (TypeError, ValueError):
        logger.debug(f"Unparsable last_used_at: {value!r}")
        return None


def score_word(record: WordRecord, now: Optional[float] = None) -> int:
    now = time.time() if now is None else now
    score = BASE_SCORE - int(record.use_count or 0) * USE_COUNT_PENALTY
    last_used = parse_timestamp(record.last_used_at)
    if last_used is not None:
        hours_since = (now - last_used) / _HOUR
        if hours_since < 24:
            score -= LAST_DAY_PENALTY
        elif hours_since < 24 * 7:
            score -= LAST_WEEK_PENALTY
    return max(score, MIN_SCORE)


def weighted_sample(candidates: Sequence[WordRecord], count: int,
                    rng: Optional[random.Random] = None,
                    now: Optional[float] = None) -> List[WordRecord]:
    """Draw up to `count` records, weighted by score, never the same record twice."""
    if count <= 0 or not candidates:
        return []
    rng = rng or random
    now = time.time() if now is None else now
    pool = [(record, score_word(record, now)) for record in candidates]
    selected: List[WordRecord] = []
    while pool and len(selected) < count:
        total = sum(weight for _, weight in pool)
        target = rng.random() * total
        index = len(pool) - 1
        for i, (_, weight) in enumerate(pool):
            target -= weight
            if target <= 0:
                index = i
                break
        record, _ = pool.pop(index)
        selected.append(record)
    return selected
