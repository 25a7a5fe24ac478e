import os
import tempfile
import unittest
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi.testclient import TestClient

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class _Generator:
    def generate(self, job_id: str, user_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"doc": job_id}


class _Sink:
    def notify(self, user_id: str, subject: str, message: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {"id": "n1"}


class TestWebAutomationApi(unittest.TestCase):
    def _with_home(self):
        old_home = os.environ.get("JOBPILOT_HOME")
        td_ctx = tempfile.TemporaryDirectory()
        td = td_ctx.__enter__()
        os.environ["JOBPILOT_HOME"] = td

        def cleanup() -> None:
            td_ctx.__exit__(None, None, None)
            if old_home is None:
                os.environ.pop("JOBPILOT_HOME", None)
            else:
                os.environ["JOBPILOT_HOME"] = old_home

        return td, cleanup

    def _client(self):
        from jobpilot.engine.server import build_engine
        from jobpilot.kernel.clock import FixedClock
        from jobpilot.kernel.settings import CollaboratorConfig, EngineConfig, Settings
        from jobpilot.ports.collaborators import Collaborators
        from jobpilot.ports.web.app import create_app

        engine = build_engine(
            Settings(engine=EngineConfig(), collaborators=CollaboratorConfig()),
            clock=FixedClock(NOW),
            collaborators=Collaborators(resume=_Generator(), cover_letter=_Generator(), notifications=_Sink()),
        )
        return TestClient(create_app(engine)), engine

    def test_health(self) -> None:
        _, cleanup = self._with_home()
        try:
            client, _ = self._client()
            resp = client.get("/api/v1/health")
            self.assertEqual(resp.status_code, 200)
            self.assertTrue(resp.json().get("ok"))
        finally:
            cleanup()

    def test_empty_body_runs_dispatch(self) -> None:
        _, cleanup = self._with_home()
        try:
            client, engine = self._client()
            engine.gateway.upsert_rule("u1", {"id": "r1", "rule_type": "status_update"})
            resp = client.post("/api/v1/automation", json={})
            self.assertEqual(resp.status_code, 200)
            body = resp.json()
            self.assertTrue(body["ok"])
            self.assertEqual(body["result"]["processedRules"], 1)
            self.assertEqual(body["result"]["results"][0], {"ruleId": "r1", "success": True, "result": {"jobsArchived": 0}})
        finally:
            cleanup()

    def test_camel_case_reminder_actions(self) -> None:
        from jobpilot.contracts.v1 import FollowUpReminder, Job

        _, cleanup = self._with_home()
        try:
            client, engine = self._client()
            engine.gateway.upsert_job(Job(id="j1", user_id="u1", job_title="Engineer", company_name="Acme", status="Applied"))
            engine.gateway.insert_reminder(
                FollowUpReminder(
                    id="fr_1",
                    user_id="u1",
                    job_id="j1",
                    reminder_type="application_followup",
                    scheduled_date="2024-06-10T00:00:00Z",
                )
            )

            pending = client.post("/api/v1/automation", json={"action": "get_pending", "userId": "u1"}).json()
            self.assertEqual(pending["result"]["count"], 1)
            self.assertEqual(pending["result"]["reminders"][0]["job"]["company"], "Acme")
            self.assertTrue(pending["result"]["reminders"][0]["overdue"])

            snoozed = client.post(
                "/api/v1/automation",
                json={"action": "snooze", "userId": "u1", "reminderId": "fr_1", "hours": 48},
            )
            self.assertEqual(snoozed.status_code, 200)
            self.assertEqual(snoozed.json()["result"]["snoozedUntil"], "2024-06-17T12:00:00Z")

            missing = client.post("/api/v1/automation", json={"action": "dismiss", "userId": "u1"})
            self.assertEqual(missing.status_code, 400)
            self.assertEqual(missing.json()["error"]["code"], "missing_reminder_id")

            unknown = client.post("/api/v1/automation", json={"action": "explode"})
            self.assertEqual(unknown.status_code, 400)
            self.assertEqual(unknown.json()["error"]["code"], "unknown_op")
        finally:
            cleanup()

    def test_create_app_installs_json_logging(self) -> None:
        import logging

        from jobpilot.util.obslog import JsonLineFormatter

        _, cleanup = self._with_home()
        root = logging.getLogger()
        saved_handlers = list(root.handlers)
        saved_level = root.level
        try:
            for h in saved_handlers:
                root.removeHandler(h)
            self._client()
            self.assertEqual(len(root.handlers), 1)
            self.assertIsInstance(root.handlers[0].formatter, JsonLineFormatter)
        finally:
            for h in list(root.handlers):
                root.removeHandler(h)
            for h in saved_handlers:
                root.addHandler(h)
            root.setLevel(saved_level)
            cleanup()

    def test_request_mapping(self) -> None:
        from jobpilot.ports.web.app import request_from_body

        req = request_from_body({"action": "snooze", "reminderId": "fr_1", "userId": "u1", "hours": 2})
        self.assertEqual(req.op, "snooze")
        self.assertEqual(req.args, {"reminder_id": "fr_1", "user_id": "u1", "hours": 2})
        self.assertEqual(request_from_body(None).op, "dispatch")
        self.assertEqual(request_from_body({"userId": "u1"}).args, {"user_id": "u1"})


if __name__ == "__main__":
    unittest.main()
