import unittest
from datetime import datetime, timezone

from member_sync.core import (
    CustomerCreated,
    CustomerDeleted,
    IdWasChecked,
    SubscriptionImported,
)
from member_sync.core.event_schemas import EVENT_REGISTRY, EVENT_SCHEMAS, decode_event, encode_event, validate_event
from member_sync.errors import ValidationError
from tests.helpers.customers import customer_payload


class EventSchemasTest(unittest.TestCase):
    def test_every_registered_event_has_a_schema(self) -> None:
        self.assertEqual(set(EVENT_REGISTRY), set(EVENT_SCHEMAS))

    def test_decode_customer_event(self) -> None:
        payload = customer_payload(id=7)
        event = decode_event(
            {
                "event_type": "CustomerCreated",
                "event_id": "evt-7",
                "occurred_at": "2026-03-01T12:00:00Z",
                "payload": payload,
            }
        )

        self.assertIsInstance(event, CustomerCreated)
        self.assertEqual(event.event_id, "evt-7")
        self.assertEqual(event.occurred_at, datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))
        self.assertEqual(event.customer, payload)

    def test_decode_subscription_event(self) -> None:
        event = decode_event(
            {
                "event_type": "SubscriptionImported",
                "payload": {"id": 90, "customer_id": 7, "status": "paused"},
            }
        )

        self.assertIsInstance(event, SubscriptionImported)
        self.assertEqual(event.subscription["customer_id"], 7)
        self.assertTrue(event.event_id)

    def test_decode_customer_reference_accepts_id_alias(self) -> None:
        by_customer_id = decode_event({"event_type": "CustomerDeleted", "payload": {"customer_id": 7}})
        by_id = decode_event({"event_type": "IdWasChecked", "payload": {"id": 7}})

        self.assertIsInstance(by_customer_id, CustomerDeleted)
        self.assertEqual(by_customer_id.customer_id, 7)
        self.assertIsInstance(by_id, IdWasChecked)
        self.assertEqual(by_id.customer_id, 7)

    def test_decode_rejects_unknown_event_type(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            decode_event({"event_type": "CustomerTeleported", "payload": {}})
        self.assertEqual(ctx.exception.payload["event_type"], "CustomerTeleported")

    def test_decode_rejects_missing_payload(self) -> None:
        with self.assertRaises(ValidationError):
            decode_event({"event_type": "CustomerCreated"})
        with self.assertRaises(ValidationError):
            decode_event(["CustomerCreated"])

    def test_decode_rejects_missing_required_fields(self) -> None:
        payload = customer_payload(id=7)
        del payload["username"]

        with self.assertLogs("member_sync", level="ERROR"):
            with self.assertRaises(ValidationError) as ctx:
                decode_event({"event_type": "CustomerImported", "payload": payload})

        self.assertEqual(ctx.exception.payload["missing_fields"], ["username"])

    def test_decode_rejects_bad_timestamp(self) -> None:
        with self.assertRaises(ValidationError):
            decode_event(
                {
                    "event_type": "MembershipActivated",
                    "occurred_at": "yesterday",
                    "payload": {"customer_id": 7},
                }
            )

    def test_validate_rejects_non_mapping_payload(self) -> None:
        with self.assertRaises(ValidationError):
            validate_event(CustomerCreated(customer=None))

    def test_encoded_event_decodes_to_an_equal_event(self) -> None:
        event = SubscriptionImported(subscription={"id": 90, "customer_id": 7, "status": "active"})

        envelope = encode_event(event)

        self.assertEqual(envelope["event_type"], "SubscriptionImported")
        self.assertTrue(envelope["occurred_at"].endswith("Z"))
        self.assertEqual(decode_event(envelope), event)


if __name__ == "__main__":
    unittest.main()
