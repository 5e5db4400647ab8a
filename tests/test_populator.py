import asyncio

import pytest

from conftest import FakeGenerator, FakeRemoteStore
from wordsupply.exceptions import ConfigurationError, GeneratorAuthError, TransientFetchError
from wordsupply.models import WordRecord
from wordsupply.populator import populate_database


@pytest.mark.unit
def test_populate_skips_existing_words():
    remote = FakeRemoteStore([WordRecord('lion', 'Lion', 'animals', 'easy')])
    generator = FakeGenerator(['lion', 'Tiger', 'Bear'])
    progress = []

    result = asyncio.run(populate_database(
        remote, generator, categories=['animals'], difficulties=['easy', 'hard'],
        batch_size=3, on_progress=lambda message, percent: progress.append(percent), pause=0,
    ))

    assert result == {'success': 5, 'errors': 0, 'duplicates': 1}
    assert [(t, d) for t, _, d in remote.inserted] == [
        ('Tiger', 'easy'), ('Bear', 'easy'), ('lion', 'hard'), ('Tiger', 'hard'), ('Bear', 'hard'),
    ]
    assert generator.calls[0]['count'] == 3
    assert progress == [0.0, 50.0, 100.0, 100.0]


@pytest.mark.unit
def test_failing_pair_is_counted_and_run_continues():
    generator = FakeGenerator(error=TransientFetchError("bad output"))

    result = asyncio.run(populate_database(
        FakeRemoteStore(), generator, categories=['animals', 'food'], difficulties=['easy'], pause=0,
    ))

    assert result == {'success': 0, 'errors': 2, 'duplicates': 0}
    assert len(generator.calls) == 2


@pytest.mark.unit
def test_auth_error_aborts():
    with pytest.raises(GeneratorAuthError):
        asyncio.run(populate_database(
            FakeRemoteStore(), FakeGenerator(error=GeneratorAuthError()), pause=0,
        ))


@pytest.mark.unit
@pytest.mark.parametrize("remote, generator", [
    (FakeRemoteStore(configured=False), FakeGenerator(['Lion'])),
    (FakeRemoteStore(), FakeGenerator(['Lion'], configured=False)),
])
def test_requires_both_sources(remote, generator):
    with pytest.raises(ConfigurationError):
        asyncio.run(populate_database(remote, generator, pause=0))
