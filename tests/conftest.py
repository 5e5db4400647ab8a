import os
import uuid
from typing import Iterable, List, Optional, Sequence, Set

import pytest

from wordsupply.exceptions import TransientFetchError
from wordsupply.models import WordRecord
from wordsupply.remote_store import RemoteWordStore, usage_sort_key

START_TIME = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemoteStore(RemoteWordStore):
    """In-memory word table with call counters and switchable failures."""

    def __init__(self, records: Iterable[WordRecord] = (), configured: bool = True):
        self.records: List[WordRecord] = list(records)
        self.configured = configured
        self.fail_fetch = False
        self.fail_increment = False
        self.fetch_calls = 0
        self.increment_calls: List[str] = []
        self.inserted: List[tuple] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def fetch_words(self, categories: Sequence[str], difficulty: str, limit: int) -> List[WordRecord]:
        self.fetch_calls += 1
        if self.fail_fetch:
            raise TransientFetchError("table unavailable")
        matches = [
            WordRecord(**r.to_dict())
            for r in self.records
            if r.category in categories and r.difficulty == difficulty
        ]
        return sorted(matches, key=usage_sort_key)[:limit]

    def insert_words(self, texts: Iterable[str], category: str, difficulty: str) -> int:
        count = 0
        for text in texts:
            self.records.append(WordRecord(uuid.uuid4().hex, text, category, difficulty))
            self.inserted.append((text, category, difficulty))
            count += 1
        return count

    def increment_usage(self, word_id: str, used_at: str) -> int:
        self.increment_calls.append(word_id)
        if self.fail_increment:
            raise TransientFetchError("update failed")
        for record in self.records:
            if record.id == word_id:
                record.use_count += 1
                record.last_used_at = used_at
                return record.use_count
        raise TransientFetchError(f"Word {word_id} not found")

    def existing_texts(self, category: str, difficulty: str) -> Set[str]:
        return {
            r.text.lower() for r in self.records
            if r.category == category and r.difficulty == difficulty
        }

    def reset_usage(self) -> int:
        for record in self.records:
            record.use_count = 0
            record.last_used_at = None
        return len(self.records)


class FakeGenerator:
    def __init__(self, words: Sequence[str] = (), configured: bool = True,
                 error: Optional[Exception] = None):
        self.words = list(words)
        self.configured = configured
        self.error = error
        self.calls: List[dict] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def generate(self, categories, difficulty, count, exclude=()):
        self.calls.append({
            'categories': list(categories),
            'difficulty': difficulty,
            'count': count,
            'exclude': list(exclude),
        })
        if self.error is not None:
            raise self.error
        blocked = {w.lower() for w in exclude}
        return [w for w in self.words if w.lower() not in blocked]


def make_records(count: int, category: str = 'animals', difficulty: str = 'easy',
                 prefix: Optional[str] = None) -> List[WordRecord]:
    prefix = prefix or category.capitalize()
    return [
        WordRecord(id=f"{category}-{difficulty}-{i}", text=f"{prefix} {i}",
                   category=category, difficulty=difficulty)
        for i in range(count)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
