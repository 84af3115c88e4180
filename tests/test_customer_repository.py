import unittest
from datetime import date

from member_sync.contexts.membership.domain.customer import customer_fields_from_payload
from member_sync.contexts.membership.infrastructure.customer_repository import CustomerRepository
from member_sync.errors import NotFoundError, ValidationError
from tests.helpers.customers import customer_payload, memory_database


class CustomerRepositoryTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db = memory_database()
        self.repository = CustomerRepository(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def _insert(self, **overrides) -> dict:
        payload = customer_payload(**overrides)
        self.repository.upsert(payload["id"], customer_fields_from_payload(payload))
        return payload

    def test_find_returns_none_for_unknown_id(self) -> None:
        self.assertIsNone(self.repository.find(404))
        self.assertFalse(self.repository.exists(404))

    def test_upsert_inserts_with_default_flags(self) -> None:
        self._insert(id=7, birthday="1990-05-10")

        customer = self.repository.find("7")
        self.assertEqual(customer.id, "7")
        self.assertEqual(customer.birthday, date(1990, 5, 10))
        self.assertFalse(customer.member)
        self.assertFalse(customer.id_checked)

    def test_integer_and_string_ids_address_the_same_customer(self) -> None:
        self._insert(id=7)

        self.assertTrue(self.repository.exists("7"))
        self.assertTrue(self.repository.exists(7))
        self.assertEqual(self.repository.find(7), self.repository.find(" 7 "))

    def test_upsert_overwrites_data_fields_and_keeps_flags(self) -> None:
        self._insert(id=7, email="before@example.org")
        self.repository.save(7, {"member": True, "id_checked": True})

        self._insert(id=7, email="after@example.org")

        customer = self.repository.find(7)
        self.assertEqual(customer.email, "after@example.org")
        self.assertTrue(customer.member)
        self.assertTrue(customer.id_checked)
        self.assertEqual(len(self.repository.list_all()), 1)

    def test_upsert_rejects_flag_fields(self) -> None:
        with self.assertRaises(ValidationError):
            self.repository.upsert(7, {"username": "x", "email": "x@example.org", "member": True})

    def test_save_updates_only_given_columns(self) -> None:
        self._insert(id=7, slack_id="UOLD")

        self.repository.save(7, {"slack_id": "UNEW"})

        customer = self.repository.find(7)
        self.assertEqual(customer.slack_id, "UNEW")
        self.assertFalse(customer.member)

    def test_save_on_unknown_customer_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            self.repository.save(404, {"member": True})

        self.assertEqual(ctx.exception.payload["customer_id"], "404")
        self.assertIsNone(self.repository.find(404))

    def test_save_rejects_unknown_columns(self) -> None:
        self._insert(id=7)

        with self.assertRaises(ValidationError):
            self.repository.save(7, {"favourite_colour": "green"})

    def test_delete_removes_customer(self) -> None:
        self._insert(id=7)

        self.repository.delete(7)

        self.assertIsNone(self.repository.find(7))

    def test_delete_on_unknown_customer_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.repository.delete(404)

    def test_list_all_and_clear(self) -> None:
        self._insert(id="a-1")
        self._insert(id="b-2")

        self.assertEqual([customer.id for customer in self.repository.list_all()], ["a-1", "b-2"])

        self.repository.clear()
        self.assertEqual(self.repository.list_all(), [])


if __name__ == "__main__":
    unittest.main()
