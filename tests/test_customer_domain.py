import unittest
from datetime import date, datetime, timezone

from member_sync.contexts.membership.domain.customer import (
    CustomerRecord,
    customer_fields_from_payload,
    derive_display_name,
    normalize_birthday,
    normalize_customer_id,
)
from member_sync.errors import ValidationError


class DisplayNameTest(unittest.TestCase):
    def test_explicit_display_name_is_kept_verbatim(self) -> None:
        payload = {"display_name": "  Grace H. ", "first_name": "Grace", "last_name": "Hopper"}
        self.assertEqual(derive_display_name(payload), "  Grace H. ")

    def test_missing_or_blank_display_name_uses_first_and_last_name(self) -> None:
        for display_name in (None, "", "   "):
            with self.subTest(display_name=display_name):
                payload = {"display_name": display_name, "first_name": "Grace", "last_name": "Hopper"}
                self.assertEqual(derive_display_name(payload), "Grace Hopper")

    def test_fallback_keeps_the_single_space_separator(self) -> None:
        self.assertEqual(derive_display_name({"first_name": "Cher", "last_name": ""}), "Cher ")


class BirthdayTest(unittest.TestCase):
    def test_birthday_is_reduced_to_its_date(self) -> None:
        cases = {
            "1990-05-10": date(1990, 5, 10),
            "1990-05-10T23:45:00": date(1990, 5, 10),
            "1990-05-10 08:00:00": date(1990, 5, 10),
            "1990-05-10T00:00:00Z": date(1990, 5, 10),
        }
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                self.assertEqual(normalize_birthday(raw), expected)

        self.assertEqual(normalize_birthday(datetime(1990, 5, 10, 18, tzinfo=timezone.utc)), date(1990, 5, 10))
        self.assertEqual(normalize_birthday(date(1990, 5, 10)), date(1990, 5, 10))

    def test_empty_birthday_is_none(self) -> None:
        self.assertIsNone(normalize_birthday(None))
        self.assertIsNone(normalize_birthday("  "))

    def test_unparseable_birthday_raises_validation_error(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            normalize_birthday("tenth of may")
        self.assertEqual(ctx.exception.payload["field"], "birthday")

    def test_trailing_characters_after_the_date_are_rejected(self) -> None:
        for raw in ("1990-05-10xyz", "1990-05-10 not a time", "1990-05-1099"):
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError):
                    normalize_birthday(raw)

    def test_record_compares_birthday_on_date_only(self) -> None:
        record = CustomerRecord(
            id="7",
            username="ada",
            email="ada@example.org",
            first_name="Ada",
            last_name="Lovelace",
            display_name="Ada Lovelace",
            birthday=date(1990, 5, 10),
        )
        self.assertTrue(record.birthday_matches("1990-05-10T13:00:00"))
        self.assertFalse(record.birthday_matches("1990-05-09"))
        self.assertEqual(record.to_dict()["birthday"], "1990-05-10")


class CustomerIdTest(unittest.TestCase):
    def test_ids_are_normalized_to_text(self) -> None:
        self.assertEqual(normalize_customer_id(7), "7")
        self.assertEqual(normalize_customer_id(" cus_7 "), "cus_7")

    def test_blank_or_boolean_ids_are_rejected(self) -> None:
        for value in (None, "", "   ", True):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    normalize_customer_id(value)


class CustomerFieldsTest(unittest.TestCase):
    def test_payload_is_mapped_to_data_fields(self) -> None:
        fields = customer_fields_from_payload(
            {
                "id": 7,
                "username": "ada",
                "email": "ada@example.org",
                "first_name": "Ada",
                "last_name": "Lovelace",
                "birthday": "1990-05-10T10:00:00",
                "member": True,
            }
        )

        self.assertNotIn("id", fields)
        self.assertNotIn("member", fields)
        self.assertEqual(fields["display_name"], "Ada Lovelace")
        self.assertEqual(fields["birthday"], date(1990, 5, 10))
        self.assertIsNone(fields["slack_id"])


if __name__ == "__main__":
    unittest.main()
