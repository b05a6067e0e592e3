"""Shared DynamoDB table access for the sync stores."""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from processor.errors import PersistenceError

logger = logging.getLogger(__name__)


def to_iso_date(value: Optional[date]) -> Optional[str]:
    """Serialize a date as YYYY-MM-DD."""
    if value is None:
        return None
    return value.isoformat()


def from_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse a YYYY-MM-DD string."""
    if not value:
        return None
    return date.fromisoformat(value)


def to_iso_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp as a UTC ISO-8601 string with second precision."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='seconds')


def from_iso_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a timestamp written by to_iso_timestamp."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compact_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Drop attributes whose value is None (index keys may not be NULL)."""
    return {key: value for key, value in item.items() if value is not None}


class DynamoDBManager:
    """Manager for DynamoDB operations on one table."""

    def __init__(self, table_name: str, dynamodb=None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            dynamodb: boto3 DynamoDB service resource (created when omitted)
        """
        self.table_name = table_name
        self.dynamodb = dynamodb or boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized {type(self).__name__} for table: {table_name}")

    def get_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch one item by its ``id`` hash key.

        Args:
            item_id: Item identifier

        Returns:
            Item dictionary or None if absent
        """
        try:
            response = self.table.get_item(Key={'id': item_id})
        except ClientError as e:
            logger.error(f"Error reading {item_id} from {self.table_name}: {e}")
            raise PersistenceError(f"Failed to read {item_id}: {e}") from e
        return response.get('Item')

    def put_item(self, item: Dict[str, Any], only_if_new: bool = False) -> None:
        """
        Write one item.

        Args:
            item: Item dictionary; None-valued attributes are dropped
            only_if_new: Fail instead of overwriting an existing id

        Raises:
            PersistenceError: If the write fails
        """
        kwargs = {'Item': compact_item(item)}
        if only_if_new:
            kwargs['ConditionExpression'] = 'attribute_not_exists(id)'

        try:
            self.table.put_item(**kwargs)
        except ClientError as e:
            logger.error(f"Error writing {item.get('id')} to {self.table_name}: {e}")
            raise PersistenceError(f"Failed to write {item.get('id')}: {e}") from e

    def update_fields(self, item_id: str, fields: Dict[str, Any]) -> None:
        """
        Set (or, for None values, remove) attributes of an existing item.

        Args:
            item_id: Item identifier
            fields: Attribute name to new value

        Raises:
            PersistenceError: If the item is missing or the update fails
        """
        if not fields:
            return

        set_clauses = []
        remove_clauses = []
        names = {}
        values = {}

        for index, (name, value) in enumerate(sorted(fields.items())):
            names[f"#f{index}"] = name
            if value is None:
                remove_clauses.append(f"#f{index}")
            else:
                values[f":v{index}"] = value
                set_clauses.append(f"#f{index} = :v{index}")

        expression = []
        if set_clauses:
            expression.append('SET ' + ', '.join(set_clauses))
        if remove_clauses:
            expression.append('REMOVE ' + ', '.join(remove_clauses))

        kwargs = {
            'Key': {'id': item_id},
            'UpdateExpression': ' '.join(expression),
            'ExpressionAttributeNames': names,
            'ConditionExpression': 'attribute_exists(id)',
        }
        if values:
            kwargs['ExpressionAttributeValues'] = values

        try:
            self.table.update_item(**kwargs)
        except ClientError as e:
            logger.error(f"Error updating {item_id} in {self.table_name}: {e}")
            raise PersistenceError(f"Failed to update {item_id}: {e}") from e

    def scan_all(self, **kwargs) -> List[Dict[str, Any]]:
        """
        Scan the whole table, following pagination.

        Args:
            **kwargs: Extra scan arguments (e.g. FilterExpression)

        Returns:
            List of items
        """
        try:
            response = self.table.scan(**kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table {self.table_name}: {e}")
            raise PersistenceError(f"Failed to scan {self.table_name}: {e}") from e

        return items

    def query_index(
        self,
        index_name: str,
        key_name: str,
        key_value: str,
        **kwargs
    ) -> List[Dict[str, Any]]:
        """
        Query a global secondary index by hash key, following pagination.

        Args:
            index_name: Index name
            key_name: Hash key attribute of the index
            key_value: Hash key value
            **kwargs: Extra query arguments (e.g. FilterExpression)

        Returns:
            List of items
        """
        query_kwargs = dict(
            IndexName=index_name,
            KeyConditionExpression=Key(key_name).eq(key_value),
            **kwargs
        )

        try:
            response = self.table.query(**query_kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **query_kwargs
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(
                f"Error querying {index_name} on {self.table_name}: {e}"
            )
            raise PersistenceError(f"Failed to query {self.table_name}: {e}") from e

        return items
