"""
Data model shared by the local store, the recent-use tracker and the word service.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


def partition_key(category: str, difficulty: str) -> str:
    return f"{category}_{difficulty}"


@dataclass
class WordRecord:
    """A candidate word usable in play.

    use_count and last_used_at mirror the remote store (which is
    authoritative); cached_at is local-only and never sent remotely.
    """
    id: str
    text: str
    category: str
    difficulty: str
    use_count: int = 0
    last_used_at: Optional[str] = None
    cached_at: Optional[float] = None

    @property
    def partition(self) -> str:
        return partition_key(self.category, self.difficulty)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_remote_item(self) -> Dict[str, Any]:
        item = {
            "id": self.id,
            "text": self.text,
            "category": self.category,
            "difficulty": self.difficulty,
            "use_count": int(self.use_count or 0),
        }
        if self.last_used_at:
            item["last_used_at"] = self.last_used_at
        return item

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WordRecord":
        return cls(
            id=str(data["id"]),
            text=str(data["text"]),
            category=str(data["category"]),
            difficulty=str(data["difficulty"]),
            use_count=int(data.get("use_count") or 0),
            last_used_at=data.get("last_used_at") or None,
            cached_at=float(data["cached_at"]) if data.get("cached_at") is not None else None,
        )


@dataclass
class CachePartition:
    """Freshness metadata for one (category, difficulty) partition."""
    category: str
    difficulty: str
    word_count: int
    last_sync_at: float
    schema_version: int = 1

    @property
    def key(self) -> str:
        return partition_key(self.category, self.difficulty)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RecentUseEntry:
    text: str
    category: str
    difficulty: str
    used_at: float
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecentUseEntry":
        return cls(
            text=str(data["text"]),
            category=str(data["category"]),
            difficulty=str(data["difficulty"]),
            used_at=float(data["used_at"]),
            session_id=data.get("session_id"),
        )


@dataclass
class Session:
    session_id: str
    started_at: float
    categories: List[str]
    difficulty: str
    words_used: List[RecentUseEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at,
            "categories": list(self.categories),
            "difficulty": self.difficulty,
            "words_used": [w.to_dict() for w in self.words_used],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            session_id=str(data["session_id"]),
            started_at=float(data["started_at"]),
            categories=list(data.get("categories") or []),
            difficulty=str(data.get("difficulty") or ""),
            words_used=[RecentUseEntry.from_dict(w) for w in data.get("words_used") or []],
        )


@dataclass
class HealthStatus:
    health_percentage: float
    blocked_count: int
    total_recent_words: int
    risk_level: str
    should_warn: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
