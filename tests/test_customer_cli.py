import json
import os
import unittest

from member_sync import create_app
from member_sync.config import Config
from member_sync.core import CustomerCreated, IdWasChecked, MembershipActivated
from member_sync.core.event_schemas import encode_event
from member_sync.db import close_db
from member_sync.observability import reset_metrics_for_tests
from tests.helpers.customers import customer_payload
from tests.helpers.temp_db import TempDbSandbox


class CustomerCliTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()
        self._temp_db = TempDbSandbox(prefix="member_sync_cli")
        self._prev_env = os.environ.get("FLASK_ENV")
        os.environ["FLASK_ENV"] = "development"

        TempConfig = self._temp_db.make_config(Config, TESTING=False, DB_AUTO_INIT=False)
        self.app = create_app(TempConfig)
        self.runner = self.app.test_cli_runner()
        result = self.runner.invoke(args=["db", "upgrade"])
        if result.exit_code != 0:
            raise RuntimeError(result.output)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        if self._prev_env is None:
            os.environ.pop("FLASK_ENV", None)
        else:
            os.environ["FLASK_ENV"] = self._prev_env
        self._temp_db.cleanup()
        reset_metrics_for_tests()

    def _write_events(self, name: str, lines) -> str:
        path = self._temp_db.path_for(name)
        with open(path, "w", encoding="utf-8") as handle:
            for line in lines:
                handle.write(line if isinstance(line, str) else json.dumps(line))
                handle.write("\n")
        return path

    def test_replay_show_and_list(self) -> None:
        path = self._write_events(
            "events.jsonl",
            [
                encode_event(CustomerCreated(customer=customer_payload(id=7, first_name="Ada", last_name="Lovelace"))),
                "",
                encode_event(CustomerCreated(customer=customer_payload(id=8))),
                encode_event(MembershipActivated(customer_id=7)),
                {"event_type": "IdWasChecked", "payload": {"id": 7}},
            ],
        )

        replay = self.runner.invoke(args=["customers", "replay", path])
        self.assertEqual(replay.exit_code, 0, msg=replay.output)
        summary = json.loads(replay.output.strip().splitlines()[-1])
        self.assertEqual(summary["total_events"], 4)
        self.assertEqual(summary["processed"], 4)

        show = self.runner.invoke(args=["customers", "show", "7"])
        self.assertEqual(show.exit_code, 0, msg=show.output)
        record = json.loads(show.output)
        self.assertEqual(record["display_name"], "Ada Lovelace")
        self.assertTrue(record["member"])
        self.assertTrue(record["id_checked"])
        self.assertEqual(record["birthday"], "1990-05-10")

        listing = self.runner.invoke(args=["customers", "list"])
        self.assertEqual(listing.exit_code, 0, msg=listing.output)
        ids = [json.loads(line)["id"] for line in listing.output.strip().splitlines()]
        self.assertEqual(ids, ["7", "8"])

    def test_show_unknown_customer_fails(self) -> None:
        result = self.runner.invoke(args=["customers", "show", "404"])

        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("customer 404 not found", result.output)

    def test_malformed_file_leaves_read_model_untouched(self) -> None:
        seeded = self._write_events("seed.jsonl", [encode_event(CustomerCreated(customer=customer_payload(id=7)))])
        self.assertEqual(self.runner.invoke(args=["customers", "replay", seeded]).exit_code, 0)

        broken = self._write_events(
            "broken.jsonl",
            [
                encode_event(CustomerCreated(customer=customer_payload(id=8))),
                "{not json",
            ],
        )
        result = self.runner.invoke(args=["customers", "replay", broken])

        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("validation_error", result.output)
        self.assertIn("line 2", result.output)
        self.assertEqual(self.runner.invoke(args=["customers", "show", "7"]).exit_code, 0)

    def test_replay_reports_failing_event(self) -> None:
        path = self._write_events("orphan.jsonl", [encode_event(IdWasChecked(customer_id=404))])

        result = self.runner.invoke(args=["customers", "replay", path])

        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("not_found", result.output)


if __name__ == "__main__":
    unittest.main()
