import os
import tempfile
import unittest
from pathlib import Path


class TestJsonDataGateway(unittest.TestCase):
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

    def _reminder(self, rid: str, job_id: str = "j1", reminder_type: str = "application_followup"):
        from jobpilot.contracts.v1 import FollowUpReminder

        return FollowUpReminder(
            id=rid,
            user_id="u1",
            job_id=job_id,
            reminder_type=reminder_type,
            scheduled_date="2024-06-01T00:00:00Z",
        )

    def test_live_reminder_is_unique_per_job_and_type(self) -> None:
        from jobpilot.kernel.errors import DuplicateActionError
        from jobpilot.kernel.store import JsonDataGateway

        _, cleanup = self._with_home()
        try:
            gw = JsonDataGateway()
            gw.insert_reminder(self._reminder("fr_1"))
            with self.assertRaises(DuplicateActionError):
                gw.insert_reminder(self._reminder("fr_2"))
            # Another type for the same job is a different reminder.
            gw.insert_reminder(self._reminder("fr_3", reminder_type="interview_followup"))

            gw.update_reminder("u1", "fr_1", {"dismissed_at": "2024-06-02T00:00:00Z"})
            self.assertIsNone(gw.find_live_reminder("u1", "j1", "application_followup"))
            gw.insert_reminder(self._reminder("fr_4"))
            live = gw.find_live_reminder("u1", "j1", "application_followup")
            self.assertIsNotNone(live)
            assert live is not None
            self.assertEqual(live.id, "fr_4")
            self.assertEqual(len(gw.list_reminders("u1")), 3)
        finally:
            cleanup()

    def test_update_reminder_guards(self) -> None:
        from jobpilot.kernel.errors import DataGatewayError, ReminderNotFoundError, ReminderTransitionError
        from jobpilot.kernel.store import JsonDataGateway

        _, cleanup = self._with_home()
        try:
            gw = JsonDataGateway()
            gw.insert_reminder(self._reminder("fr_1"))
            with self.assertRaises(DataGatewayError) as cm:
                gw.update_reminder("u1", "fr_1", {"job_id": "j2"})
            self.assertEqual(cm.exception.code, "invalid_update")
            with self.assertRaises(ReminderNotFoundError):
                gw.update_reminder("u1", "fr_missing", {"dismissed_at": "2024-06-02T00:00:00Z"})
            gw.update_reminder("u1", "fr_1", {"completed_at": "2024-06-02T00:00:00Z"})
            with self.assertRaises(ReminderTransitionError):
                gw.update_reminder("u1", "fr_1", {"snoozed_until": "2024-06-03T00:00:00Z"})
        finally:
            cleanup()

    def test_archive_counts_only_rows_that_change(self) -> None:
        from jobpilot.contracts.v1 import Job
        from jobpilot.kernel.store import JsonDataGateway

        _, cleanup = self._with_home()
        try:
            gw = JsonDataGateway()
            gw.upsert_job(Job(id="j1", user_id="u1", status="Rejected"))
            gw.upsert_job(Job(id="j2", user_id="u1", status="Rejected", is_archived=True))
            self.assertEqual(gw.archive_jobs("u1", ["j1", "j2", "j_missing"], at="2024-06-15T00:00:00Z"), 1)
            self.assertEqual(gw.archive_jobs("u1", ["j1", "j2"], at="2024-06-16T00:00:00Z"), 0)
            self.assertEqual(gw.archive_jobs("u1", [], at="2024-06-16T00:00:00Z"), 0)
            j1 = gw.get_job("u1", "j1")
            assert j1 is not None
            self.assertTrue(j1.is_archived)
            self.assertEqual(j1.updated_at, "2024-06-15T00:00:00Z")
        finally:
            cleanup()

    def test_rules_are_tenant_scoped(self) -> None:
        from jobpilot.kernel.store import JsonDataGateway

        _, cleanup = self._with_home()
        try:
            gw = JsonDataGateway()
            gw.upsert_rule("u1", {"id": "r1", "user_id": "someone_else", "rule_type": "status_update"})
            gw.upsert_rule("u1", {"id": "r2", "rule_type": "status_update", "is_active": "false"})
            gw.upsert_rule("u2", {"id": "r3", "rule_type": "deadline_reminder", "created_at": "2024-01-01T00:00:00Z"})

            self.assertEqual([r["id"] for r in gw.list_rules("u2")], ["r3"])
            active = gw.list_active_rules()
            self.assertEqual(sorted(r["id"] for r in active), ["r1", "r3"])
            r1 = next(r for r in active if r["id"] == "r1")
            self.assertEqual(r1["user_id"], "u1")

            self.assertTrue(gw.mark_rule_executed("u1", "r1", "2024-06-15T00:00:00Z"))
            self.assertFalse(gw.mark_rule_executed("u2", "r1", "2024-06-15T00:00:00Z"))
            row = gw.get_rule("u1", "r1")
            assert row is not None
            self.assertEqual(row["last_executed_at"], "2024-06-15T00:00:00Z")
        finally:
            cleanup()

    def test_rule_runs_newest_first_with_filter(self) -> None:
        from jobpilot.contracts.v1 import RuleRun
        from jobpilot.kernel.store import JsonDataGateway

        _, cleanup = self._with_home()
        try:
            gw = JsonDataGateway()
            gw.append_rule_runs(
                "u1",
                [
                    RuleRun(id="rr_1", rule_id="r1", user_id="u1", outcome="success"),
                    RuleRun(id="rr_2", rule_id="r1", user_id="u1", outcome="error", message="boom"),
                    RuleRun(id="rr_3", rule_id="r1", user_id="u1", outcome="skipped"),
                ],
            )
            self.assertEqual([r.id for r in gw.list_rule_runs("u1")], ["rr_3", "rr_2", "rr_1"])
            self.assertEqual([r.id for r in gw.list_rule_runs("u1", outcome="error")], ["rr_2"])
            self.assertEqual([r.id for r in gw.list_rule_runs("u1", limit=2)], ["rr_3", "rr_2"])
            self.assertEqual(gw.list_rule_runs("u_nobody"), [])
        finally:
            cleanup()

    def test_dirty_rows_and_corrupt_files(self) -> None:
        from jobpilot.kernel.errors import DataGatewayError
        from jobpilot.kernel.store import JsonDataGateway
        from jobpilot.util.fs import atomic_write_json

        td, cleanup = self._with_home()
        try:
            udir = Path(td) / "users" / "u1"
            atomic_write_json(
                udir / "data.json",
                {
                    "rules": {"r1": "not-a-dict"},
                    "jobs": {"j1": {"status": "Applied"}, "j2": {"is_archived": {"bad": 1}}, "j3": 7},
                    "reminders": {"fr_1": {"job_id": "j1"}},
                },
            )
            gw = JsonDataGateway()
            self.assertEqual([j.id for j in gw.list_jobs("u1")], ["j1"])
            self.assertEqual(gw.list_rules("u1"), [])
            self.assertEqual(gw.list_reminders("u1"), [])

            (udir / "data.json").write_text("{broken", encoding="utf-8")
            with self.assertRaises(DataGatewayError):
                gw.list_jobs("u1")
        finally:
            cleanup()

    def test_user_id_validation(self) -> None:
        from jobpilot.kernel.errors import DataGatewayError
        from jobpilot.kernel.store import validate_user_id

        self.assertEqual(validate_user_id(" u1 "), "u1")
        with self.assertRaises(DataGatewayError) as cm:
            validate_user_id("")
        self.assertEqual(cm.exception.code, "missing_user_id")
        for bad in ("../etc", "a/b", ".hidden"):
            with self.assertRaises(DataGatewayError) as cm:
                validate_user_id(bad)
            self.assertEqual(cm.exception.code, "invalid_user_id")


if __name__ == "__main__":
    unittest.main()
