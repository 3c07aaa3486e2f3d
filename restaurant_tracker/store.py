"""
Key-value table abstraction for DynamoDB and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from restaurant_tracker.errors import StorageError
from restaurant_tracker.models import INDEX_KEYS, PARTITION_KEY, SORT_KEY

logger = logging.getLogger(__name__)


class ConditionFailed(Exception):
    """A conditional write was rejected by the store."""


@dataclass(frozen=True)
class KeyCondition:
    """Partition equality plus an optional sort-key `eq` or `begins_with`."""

    partition_name: str
    partition_value: str
    sort_name: Optional[str] = None
    sort_value: Optional[str] = None
    sort_op: str = "eq"

    def matches(self, item: dict) -> bool:
        if item.get(self.partition_name) != self.partition_value:
            return False
        if self.sort_name is None:
            return True
        sort = item.get(self.sort_name)
        if not isinstance(sort, str):
            return False
        if self.sort_op == "begins_with":
            return sort.startswith(self.sort_value)
        return sort == self.sort_value


@dataclass(frozen=True)
class FilterClause:
    """Post-read filter applied by the store after the key lookup."""

    attribute: str
    op: str  # "contains" | "begins_with" | "eq"
    value: Any

    def matches(self, item: dict) -> bool:
        current = item.get(self.attribute)
        if self.op == "eq":
            return current == self.value
        if not isinstance(current, str):
            return False
        if self.op == "begins_with":
            return current.startswith(self.value)
        return self.value in current


@dataclass
class QueryPage:
    items: list[dict] = field(default_factory=list)
    last_evaluated_key: Optional[dict] = None


class TableClient(Protocol):
    """Operations the repositories need from the single table."""

    def put_item(self, item: dict, *, if_not_exists: bool = False) -> None:
        ...

    def get_item(self, key: dict) -> Optional[dict]:
        ...

    def update_item(
        self,
        key: dict,
        set_fields: dict,
        remove_fields: Sequence[str] = (),
        *,
        must_exist: bool = True,
    ) -> Optional[dict]:
        ...

    def delete_item(self, key: dict) -> None:
        ...

    def query(
        self,
        condition: KeyCondition,
        *,
        index_name: Optional[str] = None,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[dict] = None,
        scan_forward: bool = True,
        filters: Sequence[FilterClause] = (),
    ) -> QueryPage:
        ...

    def scan(
        self,
        *,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[dict] = None,
        filters: Sequence[FilterClause] = (),
    ) -> QueryPage:
        ...


def key_attributes(index_name: Optional[str]) -> tuple[str, ...]:
    """Attributes that make up a LastEvaluatedKey for the given index."""
    if index_name is None:
        return (PARTITION_KEY, SORT_KEY)
    hash_key, range_key = INDEX_KEYS[index_name]
    return (PARTITION_KEY, SORT_KEY, hash_key, range_key)


class InMemoryTableClient:
    """
    Dict-backed table for development and tests.

    Mirrors the DynamoDB behaviour the repositories rely on: sorted sort keys,
    sparse secondary indexes, `Limit` applied before filters, and
    LastEvaluatedKey-based resumption.
    """

    def __init__(self, indexes: dict[str, tuple[str, str]] | None = None):
        self.items: dict[tuple[str, str], dict] = {}
        self.indexes = dict(INDEX_KEYS if indexes is None else indexes)

    @staticmethod
    def _pk(key: dict) -> tuple[str, str]:
        return key[PARTITION_KEY], key[SORT_KEY]

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.items.clear()

    def put_item(self, item: dict, *, if_not_exists: bool = False) -> None:
        pk = self._pk(item)
        if if_not_exists and pk in self.items:
            raise ConditionFailed(f"Item already exists: {pk}")
        self.items[pk] = copy.deepcopy(item)

    def get_item(self, key: dict) -> Optional[dict]:
        item = self.items.get(self._pk(key))
        return copy.deepcopy(item) if item is not None else None

    def update_item(
        self,
        key: dict,
        set_fields: dict,
        remove_fields: Sequence[str] = (),
        *,
        must_exist: bool = True,
    ) -> Optional[dict]:
        pk = self._pk(key)
        current = self.items.get(pk)
        if current is None:
            if must_exist:
                return None
            current = {PARTITION_KEY: pk[0], SORT_KEY: pk[1]}
        updated = dict(current)
        updated.update(copy.deepcopy(set_fields))
        for name in remove_fields:
            updated.pop(name, None)
        self.items[pk] = updated
        return copy.deepcopy(updated)

    def delete_item(self, key: dict) -> None:
        self.items.pop(self._pk(key), None)

    def _ordering(self, index_name: Optional[str]):
        if index_name is None:
            return lambda item: (item[PARTITION_KEY], item[SORT_KEY])
        _, range_key = self.indexes[index_name]
        return lambda item: (item[range_key], item[PARTITION_KEY], item[SORT_KEY])

    def _page(
        self,
        candidates: list[dict],
        *,
        index_name: Optional[str],
        limit: Optional[int],
        exclusive_start_key: Optional[dict],
        scan_forward: bool,
        filters: Sequence[FilterClause],
    ) -> QueryPage:
        order = self._ordering(index_name)
        candidates.sort(key=order, reverse=not scan_forward)
        if exclusive_start_key:
            start = order(exclusive_start_key)
            if scan_forward:
                candidates = [c for c in candidates if order(c) > start]
            else:
                candidates = [c for c in candidates if order(c) < start]

        evaluated = candidates if limit is None else candidates[:limit]
        last_key = None
        if limit is not None and len(candidates) > limit and evaluated:
            last = evaluated[-1]
            last_key = {
                name: last[name]
                for name in key_attributes(index_name)
                if name in last
            }
        items = [
            copy.deepcopy(item)
            for item in evaluated
            if all(clause.matches(item) for clause in filters)
        ]
        return QueryPage(items=items, last_evaluated_key=last_key)

    def query(
        self,
        condition: KeyCondition,
        *,
        index_name: Optional[str] = None,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[dict] = None,
        scan_forward: bool = True,
        filters: Sequence[FilterClause] = (),
    ) -> QueryPage:
        required: tuple[str, ...] = (PARTITION_KEY, SORT_KEY)
        if index_name is not None:
            required = required + self.indexes[index_name]
        candidates = [
            item
            for item in self.items.values()
            if all(name in item for name in required) and condition.matches(item)
        ]
        return self._page(
            candidates,
            index_name=index_name,
            limit=limit,
            exclusive_start_key=exclusive_start_key,
            scan_forward=scan_forward,
            filters=filters,
        )

    def scan(
        self,
        *,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[dict] = None,
        filters: Sequence[FilterClause] = (),
    ) -> QueryPage:
        return self._page(
            list(self.items.values()),
            index_name=None,
            limit=limit,
            exclusive_start_key=exclusive_start_key,
            scan_forward=True,
            filters=filters,
        )


def _to_dynamo(value: Any) -> Any:
    # The boto3 resource layer rejects floats; numbers travel as Decimal.
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


def _filter_expression(filters: Sequence[FilterClause]):
    expression = None
    for clause in filters:
        attr = Attr(clause.attribute)
        if clause.op == "contains":
            part = attr.contains(clause.value)
        elif clause.op == "begins_with":
            part = attr.begins_with(clause.value)
        else:
            part = attr.eq(_to_dynamo(clause.value))
        expression = part if expression is None else expression & part
    return expression


@dataclass
class DynamoTableClient:
    """
    DynamoDB-backed single table using the boto3 resource API.
    """

    table_name: str
    region: str
    endpoint_url: Optional[str] = None

    def __post_init__(self):
        config = Config(retries={"mode": "standard"})
        self._resource = boto3.resource(
            "dynamodb",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            config=config,
        )
        self._table = self._resource.Table(self.table_name)

    def _storage_error(self, operation: str, error: Exception) -> StorageError:
        logger.error("DynamoDB %s on %s failed: %s", operation, self.table_name, error)
        return StorageError(f"Storage operation failed: {operation}")

    def put_item(self, item: dict, *, if_not_exists: bool = False) -> None:
        kwargs: dict[str, Any] = {"Item": _to_dynamo(item)}
        if if_not_exists:
            kwargs["ConditionExpression"] = Attr(PARTITION_KEY).not_exists()
        try:
            self._table.put_item(**kwargs)
        except ClientError as error:
            if error.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise ConditionFailed(str(error)) from error
            raise self._storage_error("put_item", error) from error
        except BotoCoreError as error:
            raise self._storage_error("put_item", error) from error

    def get_item(self, key: dict) -> Optional[dict]:
        try:
            response = self._table.get_item(Key=key)
        except (ClientError, BotoCoreError) as error:
            raise self._storage_error("get_item", error) from error
        item = response.get("Item")
        return _from_dynamo(item) if item is not None else None

    def update_item(
        self,
        key: dict,
        set_fields: dict,
        remove_fields: Sequence[str] = (),
        *,
        must_exist: bool = True,
    ) -> Optional[dict]:
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        set_parts = []
        for i, (name, value) in enumerate(set_fields.items()):
            names[f"#s{i}"] = name
            values[f":s{i}"] = _to_dynamo(value)
            set_parts.append(f"#s{i} = :s{i}")
        remove_parts = []
        for i, name in enumerate(remove_fields):
            names[f"#r{i}"] = name
            remove_parts.append(f"#r{i}")

        expression = []
        if set_parts:
            expression.append("SET " + ", ".join(set_parts))
        if remove_parts:
            expression.append("REMOVE " + ", ".join(remove_parts))

        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": " ".join(expression),
            "ExpressionAttributeNames": names,
            "ReturnValues": "ALL_NEW",
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values
        if must_exist:
            kwargs["ConditionExpression"] = Attr(PARTITION_KEY).exists()
        try:
            response = self._table.update_item(**kwargs)
        except ClientError as error:
            if error.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise self._storage_error("update_item", error) from error
        except BotoCoreError as error:
            raise self._storage_error("update_item", error) from error
        return _from_dynamo(response.get("Attributes", {}))

    def delete_item(self, key: dict) -> None:
        try:
            self._table.delete_item(Key=key)
        except (ClientError, BotoCoreError) as error:
            raise self._storage_error("delete_item", error) from error

    def query(
        self,
        condition: KeyCondition,
        *,
        index_name: Optional[str] = None,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[dict] = None,
        scan_forward: bool = True,
        filters: Sequence[FilterClause] = (),
    ) -> QueryPage:
        key_expression = Key(condition.partition_name).eq(condition.partition_value)
        if condition.sort_name is not None:
            sort = Key(condition.sort_name)
            if condition.sort_op == "begins_with":
                key_expression = key_expression & sort.begins_with(condition.sort_value)
            else:
                key_expression = key_expression & sort.eq(condition.sort_value)

        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_expression,
            "ScanIndexForward": scan_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if limit:
            kwargs["Limit"] = limit
        if exclusive_start_key:
            kwargs["ExclusiveStartKey"] = exclusive_start_key
        filter_expression = _filter_expression(filters)
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression

        try:
            response = self._table.query(**kwargs)
        except (ClientError, BotoCoreError) as error:
            raise self._storage_error("query", error) from error
        return QueryPage(
            items=[_from_dynamo(item) for item in response.get("Items", [])],
            last_evaluated_key=_from_dynamo(response.get("LastEvaluatedKey")),
        )

    def scan(
        self,
        *,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[dict] = None,
        filters: Sequence[FilterClause] = (),
    ) -> QueryPage:
        kwargs: dict[str, Any] = {}
        if limit:
            kwargs["Limit"] = limit
        if exclusive_start_key:
            kwargs["ExclusiveStartKey"] = exclusive_start_key
        filter_expression = _filter_expression(filters)
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        try:
            response = self._table.scan(**kwargs)
        except (ClientError, BotoCoreError) as error:
            raise self._storage_error("scan", error) from error
        return QueryPage(
            items=[_from_dynamo(item) for item in response.get("Items", [])],
            last_evaluated_key=_from_dynamo(response.get("LastEvaluatedKey")),
        )

    def create_table(self, wait: bool = True) -> bool:
        """
        Provision the table and its secondary indexes.

        Returns False when the table already exists.
        """
        attributes = {PARTITION_KEY, SORT_KEY}
        indexes = []
        for index_name, (hash_key, range_key) in INDEX_KEYS.items():
            attributes.update((hash_key, range_key))
            indexes.append(
                {
                    "IndexName": index_name,
                    "KeySchema": [
                        {"AttributeName": hash_key, "KeyType": "HASH"},
                        {"AttributeName": range_key, "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                }
            )
        client = self._resource.meta.client
        try:
            client.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {"AttributeName": PARTITION_KEY, "KeyType": "HASH"},
                    {"AttributeName": SORT_KEY, "KeyType": "RANGE"},
                ],
                AttributeDefinitions=[
                    {"AttributeName": name, "AttributeType": "S"}
                    for name in sorted(attributes)
                ],
                GlobalSecondaryIndexes=indexes,
                BillingMode="PAY_PER_REQUEST",
            )
        except ClientError as error:
            if error.response["Error"]["Code"] == "ResourceInUseException":
                logger.info("Table %s already exists", self.table_name)
                return False
            raise self._storage_error("create_table", error) from error
        if wait:
            client.get_waiter("table_exists").wait(TableName=self.table_name)
        logger.info("Created table %s", self.table_name)
        return True
