import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from the project root .env (never overrides real env)
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer for {name}; using default {default}")
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(f"Invalid number for {name}; using default {default}")
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_path(name: str, default: str) -> Optional[str]:
    value = os.getenv(name, default)
    return value.strip() or None


@dataclass(frozen=True)
class Settings:
    # Local cache
    cache_db_path: Optional[str] = 'game_data/word_cache.sqlite3'
    cache_ttl_secs: float = 24 * 60 * 60
    min_words_per_partition: int = 15
    fetch_limit: int = 100

    # Recent-use tracking
    recent_words_file: Optional[str] = 'game_data/recent_words.json'
    cooldown_secs: float = 2 * 60 * 60
    max_recent_words: int = 200
    max_sessions: int = 10

    maintenance_interval_secs: float = 60 * 60

    # Remote word store
    words_table: Optional[str] = None
    aws_region: str = 'us-east-1'
    dynamodb_endpoint_url: Optional[str] = None

    # Remote word generator
    openrouter_api_key: Optional[str] = None
    primary_model: str = 'mistralai/mistral-small-24b-instruct-2501:free'
    fallback_model: str = 'openai/gpt-4o-mini'
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    request_timeout: float = 30.0

    enable_metrics: bool = False
    environment: str = 'Development'

    @classmethod
    def from_env(cls) -> 'Settings':
        """Build settings from the process environment (and .env)."""
        return cls(
            cache_db_path=_env_path('WORD_CACHE_DB', cls.cache_db_path),
            cache_ttl_secs=_env_float('CACHE_TTL_SECS', cls.cache_ttl_secs),
            min_words_per_partition=_env_int('MIN_WORDS_PER_PARTITION', cls.min_words_per_partition),
            fetch_limit=_env_int('CACHE_FETCH_LIMIT', cls.fetch_limit),
            recent_words_file=_env_path('RECENT_WORDS_FILE', cls.recent_words_file),
            cooldown_secs=_env_float('RECENT_COOLDOWN_SECS', cls.cooldown_secs),
            max_recent_words=_env_int('RECENT_WORDS_LIMIT', cls.max_recent_words),
            max_sessions=_env_int('RECENT_SESSIONS_LIMIT', cls.max_sessions),
            maintenance_interval_secs=_env_float('MAINTENANCE_INTERVAL_SECS', cls.maintenance_interval_secs),
            words_table=os.getenv('WORDS_TABLE') or None,
            aws_region=os.getenv('AWS_REGION', cls.aws_region),
            dynamodb_endpoint_url=os.getenv('DYNAMODB_ENDPOINT_URL') or None,
            openrouter_api_key=os.getenv('OPENROUTER_API_KEY') or None,
            primary_model=os.getenv('OPENROUTER_MODEL_PRIMARY', cls.primary_model),
            fallback_model=os.getenv('OPENROUTER_MODEL_FALLBACK', cls.fallback_model),
            retry_max_attempts=_env_int('OPENROUTER_RETRY_MAX_ATTEMPTS', cls.retry_max_attempts),
            retry_base_delay=_env_float('OPENROUTER_RETRY_BASE_DELAY_S', cls.retry_base_delay),
            retry_max_delay=_env_float('OPENROUTER_RETRY_MAX_DELAY_S', cls.retry_max_delay),
            request_timeout=_env_float('OPENROUTER_TIMEOUT_S', cls.request_timeout),
            enable_metrics=_env_bool('ENABLE_CLOUDWATCH_METRICS', False),
            environment=os.getenv('ENVIRONMENT', cls.environment),
        )
