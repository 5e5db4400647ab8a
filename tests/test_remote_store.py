import pytest
from moto import mock_aws

from wordsupply.exceptions import TransientFetchError
from wordsupply.remote_store import DynamoDBWordStore


@pytest.fixture
def word_table(aws_credentials):
    with mock_aws():
        store = DynamoDBWordStore('test_words', region='us-east-1')
        assert store.create_table() is True
        yield store


@pytest.mark.unit
def test_unconfigured_store():
    assert DynamoDBWordStore(None).is_configured is False
    assert DynamoDBWordStore('words').is_configured is True


@pytest.mark.cloud
def test_create_table_is_idempotent(word_table):
    assert word_table.create_table() is False


@pytest.mark.cloud
def test_insert_and_fetch(word_table):
    assert word_table.insert_words(['Lion', 'Tiger', 'Bear'], 'animals', 'easy') == 3
    word_table.insert_words(['Eagle'], 'animals', 'hard')
    word_table.insert_words(['Pizza'], 'food', 'easy')

    records = word_table.fetch_words(['animals'], 'easy', 100)

    assert sorted(r.text for r in records) == ['Bear', 'Lion', 'Tiger']
    assert all(r.use_count == 0 and r.last_used_at is None for r in records)
    assert all(r.category == 'animals' and r.difficulty == 'easy' for r in records)


@pytest.mark.cloud
def test_fetch_spans_categories_and_respects_limit(word_table):
    word_table.insert_words(['Lion', 'Tiger'], 'animals', 'easy')
    word_table.insert_words(['Pizza', 'Sushi'], 'food', 'easy')

    assert len(word_table.fetch_words(['animals', 'food'], 'easy', 100)) == 4
    assert len(word_table.fetch_words(['animals', 'food'], 'easy', 3)) == 3


@pytest.mark.cloud
def test_fetch_orders_least_used_first(word_table):
    word_table.insert_words(['Lion', 'Tiger', 'Bear'], 'animals', 'easy')
    by_text = {r.text: r for r in word_table.fetch_words(['animals'], 'easy', 100)}

    assert word_table.increment_usage(by_text['Lion'].id, '2024-01-02T00:00:00+00:00') == 1
    assert word_table.increment_usage(by_text['Lion'].id, '2024-01-03T00:00:00+00:00') == 2
    word_table.increment_usage(by_text['Tiger'].id, '2024-01-01T00:00:00+00:00')

    ordered = word_table.fetch_words(['animals'], 'easy', 100)

    assert [r.text for r in ordered] == ['Bear', 'Tiger', 'Lion']
    assert ordered[2].use_count == 2
    assert ordered[2].last_used_at == '2024-01-03T00:00:00+00:00'


@pytest.mark.cloud
def test_increment_unknown_word(word_table):
    with pytest.raises(TransientFetchError):
        word_table.increment_usage('does-not-exist', '2024-01-01T00:00:00+00:00')


@pytest.mark.cloud
def test_existing_texts_are_lowercased(word_table):
    word_table.insert_words(['Lion', 'Snow Leopard'], 'animals', 'easy')
    assert word_table.existing_texts('animals', 'easy') == {'lion', 'snow leopard'}
    assert word_table.existing_texts('animals', 'hard') == set()


@pytest.mark.cloud
def test_reset_usage(word_table):
    word_table.insert_words(['Lion', 'Tiger'], 'animals', 'easy')
    for record in word_table.fetch_words(['animals'], 'easy', 100):
        word_table.increment_usage(record.id, '2024-01-01T00:00:00+00:00')

    assert word_table.reset_usage() == 2
    records = word_table.fetch_words(['animals'], 'easy', 100)
    assert all(r.use_count == 0 and r.last_used_at is None for r in records)


@pytest.mark.cloud
def test_missing_table_is_a_transient_error(aws_credentials):
    with mock_aws():
        store = DynamoDBWordStore('missing_table', region='us-east-1')
        with pytest.raises(TransientFetchError):
            store.fetch_words(['animals'], 'easy', 10)
