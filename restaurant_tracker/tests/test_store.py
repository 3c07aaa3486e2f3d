import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from restaurant_tracker.errors import StorageError
from restaurant_tracker.models import CUISINE_INDEX, RESTAURANT_TIMELINE_INDEX
from restaurant_tracker.store import (
    ConditionFailed,
    DynamoTableClient,
    FilterClause,
    InMemoryTableClient,
    KeyCondition,
)


def _client_error(code: str, operation: str = "Op") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def _restaurant(user_id, restaurant_id, name, **extra):
    item = {
        "PK": f"USER#{user_id}",
        "SK": f"RESTAURANT#{restaurant_id}",
        "userId": user_id,
        "restaurantId": restaurant_id,
        "name": name,
        "visited": "false",
        "createdAt": f"2024-01-01T00:00:0{restaurant_id[-1]}.000Z",
    }
    item.update(extra)
    return item


class InMemoryTableClientTests(unittest.TestCase):
    def setUp(self):
        self.table = InMemoryTableClient()

    def test_put_if_not_exists(self):
        item = {"PK": "USER#u1", "SK": "METADATA", "email": "a@example.com"}
        self.table.put_item(item, if_not_exists=True)
        with self.assertRaises(ConditionFailed):
            self.table.put_item(item, if_not_exists=True)

    def test_update_missing_item_returns_none(self):
        result = self.table.update_item(
            {"PK": "USER#u1", "SK": "RESTAURANT#nope"}, {"name": "x"}
        )
        self.assertIsNone(result)
        self.assertEqual(self.table.items, {})

    def test_update_sets_and_removes(self):
        self.table.put_item(_restaurant("u1", "r1", "A", location="Here"))
        updated = self.table.update_item(
            {"PK": "USER#u1", "SK": "RESTAURANT#r1"}, {"name": "B"}, ["location"]
        )
        self.assertEqual(updated["name"], "B")
        self.assertNotIn("location", updated)

    def test_secondary_index_is_sparse(self):
        self.table.put_item(_restaurant("u1", "r1", "A", cuisineType="Thai"))
        self.table.put_item(_restaurant("u1", "r2", "B"))
        page = self.table.query(
            KeyCondition("userId", "u1", "cuisineType", "Thai"),
            index_name=CUISINE_INDEX,
        )
        self.assertEqual([i["restaurantId"] for i in page.items], ["r1"])

    def test_limit_applies_before_filters(self):
        for n in range(1, 4):
            self.table.put_item(_restaurant("u1", f"r{n}", "Pizza" if n == 3 else "Taco"))
        page = self.table.query(
            KeyCondition("PK", "USER#u1", "SK", "RESTAURANT#", "begins_with"),
            limit=2,
            filters=[FilterClause("name", "contains", "Pizza")],
        )
        self.assertEqual(page.items, [])
        self.assertEqual(
            page.last_evaluated_key, {"PK": "USER#u1", "SK": "RESTAURANT#r2"}
        )

    def test_timeline_index_partitions_by_restaurant(self):
        for n in range(1, 4):
            self.table.put_item(_restaurant("u1", f"r{n}", "A"))
        condition = KeyCondition("restaurantId", "r2")
        page = self.table.query(
            condition, index_name=RESTAURANT_TIMELINE_INDEX, scan_forward=False
        )
        self.assertEqual(len(page.items), 1)
        self.assertIsNone(page.last_evaluated_key)


class DynamoTableClientTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("restaurant_tracker.store.boto3")
        self.mock_boto3 = patcher.start()
        self.addCleanup(patcher.stop)
        self.resource = self.mock_boto3.resource.return_value
        self.table = MagicMock()
        self.resource.Table.return_value = self.table
        self.client = DynamoTableClient(table_name="tracker", region="us-east-1")

    def test_query_passes_index_limit_and_start_key(self):
        self.table.query.return_value = {
            "Items": [{"PK": "USER#u1", "rating": Decimal("4.5"), "count": Decimal("3")}],
            "LastEvaluatedKey": {"PK": "USER#u1", "SK": "RESTAURANT#r1"},
        }
        start = {"PK": "USER#u1", "SK": "RESTAURANT#r0"}
        page = self.client.query(
            KeyCondition("userId", "u1", "cuisineType", "Thai"),
            index_name=CUISINE_INDEX,
            limit=5,
            exclusive_start_key=start,
            scan_forward=False,
        )
        kwargs = self.table.query.call_args.kwargs
        self.assertEqual(kwargs["IndexName"], CUISINE_INDEX)
        self.assertEqual(kwargs["Limit"], 5)
        self.assertEqual(kwargs["ExclusiveStartKey"], start)
        self.assertFalse(kwargs["ScanIndexForward"])
        self.assertNotIn("FilterExpression", kwargs)
        self.assertEqual(page.items[0]["rating"], 4.5)
        self.assertEqual(page.items[0]["count"], 3)
        self.assertEqual(page.last_evaluated_key["SK"], "RESTAURANT#r1")

    def test_query_adds_filter_expression(self):
        self.table.query.return_value = {"Items": []}
        page = self.client.query(
            KeyCondition("PK", "USER#u1", "SK", "RESTAURANT#", "begins_with"),
            filters=[FilterClause("name", "contains", "Piz")],
        )
        kwargs = self.table.query.call_args.kwargs
        self.assertIn("FilterExpression", kwargs)
        self.assertNotIn("IndexName", kwargs)
        self.assertIsNone(page.last_evaluated_key)

    def test_put_converts_floats_to_decimal(self):
        self.client.put_item({"PK": "USER#u1", "SK": "RESTAURANT#r1", "rating": 3.5})
        item = self.table.put_item.call_args.kwargs["Item"]
        self.assertEqual(item["rating"], Decimal("3.5"))

    def test_put_condition_failure(self):
        self.table.put_item.side_effect = _client_error("ConditionalCheckFailedException")
        with self.assertRaises(ConditionFailed):
            self.client.put_item({"PK": "USER#u1", "SK": "METADATA"}, if_not_exists=True)

    def test_update_builds_set_and_remove(self):
        self.table.update_item.return_value = {
            "Attributes": {"PK": "USER#u1", "SK": "RESTAURANT#r1", "name": "B"}
        }
        result = self.client.update_item(
            {"PK": "USER#u1", "SK": "RESTAURANT#r1"},
            {"name": "B", "rating": 4.0},
            ["location"],
        )
        kwargs = self.table.update_item.call_args.kwargs
        self.assertEqual(kwargs["UpdateExpression"], "SET #s0 = :s0, #s1 = :s1 REMOVE #r0")
        self.assertEqual(
            kwargs["ExpressionAttributeNames"],
            {"#s0": "name", "#s1": "rating", "#r0": "location"},
        )
        self.assertEqual(kwargs["ExpressionAttributeValues"][":s1"], Decimal("4.0"))
        self.assertIn("ConditionExpression", kwargs)
        self.assertEqual(result["name"], "B")

    def test_update_of_missing_item_returns_none(self):
        self.table.update_item.side_effect = _client_error(
            "ConditionalCheckFailedException"
        )
        self.assertIsNone(
            self.client.update_item({"PK": "USER#u1", "SK": "RESTAURANT#x"}, {"a": 1})
        )

    def test_other_client_errors_become_storage_errors(self):
        self.table.get_item.side_effect = _client_error(
            "ProvisionedThroughputExceededException"
        )
        with self.assertRaises(StorageError):
            self.client.get_item({"PK": "USER#u1", "SK": "METADATA"})

    def test_create_table_existing(self):
        self.resource.meta.client.create_table.side_effect = _client_error(
            "ResourceInUseException"
        )
        self.assertFalse(self.client.create_table())

    def test_create_table_declares_indexes(self):
        self.assertTrue(self.client.create_table(wait=False))
        kwargs = self.resource.meta.client.create_table.call_args.kwargs
        names = [index["IndexName"] for index in kwargs["GlobalSecondaryIndexes"]]
        self.assertEqual(names, ["GSI1", "GSI2", "GSI3"])
        self.assertEqual(kwargs["BillingMode"], "PAY_PER_REQUEST")
        self.resource.meta.client.get_waiter.assert_not_called()


if __name__ == "__main__":
    unittest.main()
