from unittest.mock import patch

import pytest

from wordsupply.config import Settings


@pytest.mark.unit
def test_defaults():
    with patch.dict('os.environ', {}, clear=True):
        settings = Settings.from_env()

    assert settings.cache_ttl_secs == 24 * 60 * 60
    assert settings.min_words_per_partition == 15
    assert settings.cooldown_secs == 2 * 60 * 60
    assert settings.words_table is None
    assert settings.openrouter_api_key is None
    assert settings.enable_metrics is False


@pytest.mark.unit
def test_overrides():
    with patch.dict('os.environ', {
        'WORD_CACHE_DB': '',
        'CACHE_TTL_SECS': '60',
        'MIN_WORDS_PER_PARTITION': '5',
        'WORDS_TABLE': 'words',
        'OPENROUTER_API_KEY': 'sk-test',
        'ENABLE_CLOUDWATCH_METRICS': 'true',
        'ENVIRONMENT': 'Production',
    }, clear=True):
        settings = Settings.from_env()

    assert settings.cache_db_path is None
    assert settings.cache_ttl_secs == 60
    assert settings.min_words_per_partition == 5
    assert settings.words_table == 'words'
    assert settings.openrouter_api_key == 'sk-test'
    assert settings.enable_metrics is True
    assert settings.environment == 'Production'


@pytest.mark.unit
def test_invalid_numbers_fall_back_to_defaults():
    with patch.dict('os.environ', {'CACHE_FETCH_LIMIT': 'many', 'RECENT_COOLDOWN_SECS': 'soon'}, clear=True):
        settings = Settings.from_env()

    assert settings.fetch_limit == 100
    assert settings.cooldown_secs == 2 * 60 * 60
