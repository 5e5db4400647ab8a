"""
Remote word store: the shared, authoritative table of words and their
global usage counters. Only the DynamoDB implementation ships; tests use
in-memory fakes of the same interface.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import TransientFetchError
from .models import WordRecord
from .selection import parse_timestamp

logger = logging.getLogger(__name__)

PARTITION_INDEX = 'partition-index'


def usage_sort_key(record: WordRecord):
    """Least used first, then never-used before longest-idle before recently used."""
    last_used = parse_timestamp(record.last_used_at)
    return (int(record.use_count or 0), last_used is not None, last_used or 0.0)


class RemoteWordStore(ABC):
    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    def fetch_words(self, categories: Sequence[str], difficulty: str, limit: int) -> List[WordRecord]:
        """Rows for the categories/difficulty, least used and longest idle first."""

    @abstractmethod
    def insert_words(self, texts: Iterable[str], category: str, difficulty: str) -> int:
        """Insert new rows with zero usage. Returns how many were written."""

    @abstractmethod
    def increment_usage(self, word_id: str, used_at: str) -> int:
        """Bump a row's use counter and last-use stamp. Returns the new counter."""

    @abstractmethod
    def existing_texts(self, category: str, difficulty: str) -> Set[str]:
        """Lowercased texts already stored for a category/difficulty."""

    @abstractmethod
    def reset_usage(self) -> int:
        """Zero every usage counter. Returns the number of rows touched."""


class DynamoDBWordStore(RemoteWordStore):
    """
    Words table keyed by `id`, with a global secondary index on
    `partition_key` ("<category>#<difficulty>") for partition queries.
    """

    def __init__(self, table_name: Optional[str], region: str = 'us-east-1',
                 endpoint_url: Optional[str] = None):
        self.table_name = table_name
        self.region = region
        self.endpoint_url = endpoint_url
        self._resource = None

    @classmethod
    def from_settings(cls, settings) -> 'DynamoDBWordStore':
        return cls(settings.words_table, settings.aws_region, settings.dynamodb_endpoint_url)

    @property
    def is_configured(self) -> bool:
        return bool(self.table_name)

    @property
    def resource(self):
        if self._resource is None:
            self._resource = boto3.resource(
                'dynamodb', region_name=self.region, endpoint_url=self.endpoint_url
            )
        return self._resource

    @property
    def table(self):
        return self.resource.Table(self.table_name)

    @staticmethod
    def _partition_key(category: str, difficulty: str) -> str:
        return f"{category}#{difficulty}"

    @staticmethod
    def _to_record(item: Dict) -> WordRecord:
        return WordRecord(
            id=str(item['id']),
            text=str(item['text']),
            category=str(item['category']),
            difficulty=str(item['difficulty']),
            use_count=int(item.get('use_count') or 0),
            last_used_at=item.get('last_used_at') or None,
        )

    def create_table(self) -> bool:
        """Create the words table if it does not exist yet."""
        client = self.resource.meta.client
        try:
            client.create_table(
                TableName=self.table_name,
                KeySchema=[{'AttributeName': 'id', 'KeyType': 'HASH'}],
                AttributeDefinitions=[
                    {'AttributeName': 'id', 'AttributeType': 'S'},
                    {'AttributeName': 'partition_key', 'AttributeType': 'S'},
                ],
                GlobalSecondaryIndexes=[{
                    'IndexName': PARTITION_INDEX,
                    'KeySchema': [{'AttributeName': 'partition_key', 'KeyType': 'HASH'}],
                    'Projection': {'ProjectionType': 'ALL'},
                }],
                BillingMode='PAY_PER_REQUEST',
            )
            client.get_waiter('table_exists').wait(TableName=self.table_name)
            logger.info(f"Created table: {self.table_name}")
            return True
        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceInUseException':
                logger.info(f"Table already exists: {self.table_name}")
                return False
            raise

    def _query_partition(self, category: str, difficulty: str, **extra) -> List[Dict]:
        kwargs = {
            'IndexName': PARTITION_INDEX,
            'KeyConditionExpression': Key('partition_key').eq(self._partition_key(category, difficulty)),
        }
        kwargs.update(extra)
        items: List[Dict] = []
        while True:
            response = self.table.query(**kwargs)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            kwargs['ExclusiveStartKey'] = last_key

    def fetch_words(self, categories: Sequence[str], difficulty: str, limit: int) -> List[WordRecord]:
        try:
            items: List[Dict] = []
            for category in categories:
                items.extend(self._query_partition(category, difficulty))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error fetching words for {list(categories)}/{difficulty}: {e}")
            raise TransientFetchError(f"Failed to fetch words: {e}") from e
        records = sorted((self._to_record(i) for i in items), key=usage_sort_key)
        return records[:max(0, limit)]

    def insert_words(self, texts: Iterable[str], category: str, difficulty: str) -> int:
        now = datetime.now(timezone.utc).isoformat()
        written = 0
        try:
            with self.table.batch_writer() as batch:
                for text in texts:
                    batch.put_item(Item={
                        'id': uuid.uuid4().hex,
                        'partition_key': self._partition_key(category, difficulty),
                        'text': text,
                        'category': category,
                        'difficulty': difficulty,
                        'use_count': 0,
                        'created_at': now,
                        'updated_at': now,
                    })
                    written += 1
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error inserting words for {category}/{difficulty}: {e}")
            raise TransientFetchError(f"Failed to insert words: {e}") from e
        return written

    def increment_usage(self, word_id: str, used_at: str) -> int:
        try:
            response = self.table.update_item(
                Key={'id': word_id},
                UpdateExpression='SET last_used_at = :now, updated_at = :now ADD use_count :one',
                ConditionExpression='attribute_exists(#id)',
                ExpressionAttributeNames={'#id': 'id'},
                ExpressionAttributeValues={':now': used_at, ':one': 1},
                ReturnValues='UPDATED_NEW',
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                raise TransientFetchError(f"Word {word_id} not found") from e
            raise TransientFetchError(f"Failed to update word {word_id}: {e}") from e
        except BotoCoreError as e:
            raise TransientFetchError(f"Failed to update word {word_id}: {e}") from e
        return int(response['Attributes']['use_count'])

    def existing_texts(self, category: str, difficulty: str) -> Set[str]:
        try:
            items = self._query_partition(
                category, difficulty,
                ProjectionExpression='#t',
                ExpressionAttributeNames={'#t': 'text'},
            )
        except (ClientError, BotoCoreError) as e:
            raise TransientFetchError(f"Failed to list words for {category}/{difficulty}: {e}") from e
        return {str(i['text']).strip().lower() for i in items if i.get('text')}

    def reset_usage(self) -> int:
        now = datetime.now(timezone.utc).isoformat()
        touched = 0
        try:
            kwargs = {'ProjectionExpression': '#id', 'ExpressionAttributeNames': {'#id': 'id'}}
            while True:
                response = self.table.scan(**kwargs)
                for item in response.get('Items', []):
                    self.table.update_item(
                        Key={'id': item['id']},
                        UpdateExpression='SET use_count = :zero, updated_at = :now REMOVE last_used_at',
                        ExpressionAttributeValues={':zero': 0, ':now': now},
                    )
                    touched += 1
                last_key = response.get('LastEvaluatedKey')
                if not last_key:
                    break
                kwargs['ExclusiveStartKey'] = last_key
        except (ClientError, BotoCoreError) as e:
            raise TransientFetchError(f"Failed to reset usage counters: {e}") from e
        logger.info(f"Reset usage counters on {touched} words")
        return touched
