import os
import tempfile
import unittest
from pathlib import Path


class TestSettingsDirtyTolerance(unittest.TestCase):
    def _with_env(self, **env):
        old = {k: os.environ.get(k) for k in env}
        for k, v in env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v

        def cleanup() -> None:
            for k, v in old.items():
                if v is None:
                    os.environ.pop(k, None)
                else:
                    os.environ[k] = v

        return cleanup

    def test_bad_values_fall_back_and_clamp(self) -> None:
        from jobpilot.kernel.settings import EngineConfig, engine_config_from_doc

        cleanup = self._with_env(JOBPILOT_TIMEZONE=None, JOBPILOT_LOG_LEVEL=None)
        try:
            cfg = engine_config_from_doc(
                {
                    "engine": {
                        "rule_workers": "many",
                        "target_workers": -3,
                        "collaborator_timeout_seconds": "soon",
                        "gateway_timeout_seconds": -1,
                        "snooze_hours": 0,
                        "log_level": "debug",
                    }
                }
            )
            defaults = EngineConfig()
            self.assertEqual(cfg.rule_workers, defaults.rule_workers)
            self.assertEqual(cfg.target_workers, 1)
            self.assertEqual(cfg.collaborator_timeout_seconds, defaults.collaborator_timeout_seconds)
            self.assertEqual(cfg.gateway_timeout_seconds, defaults.gateway_timeout_seconds)
            self.assertEqual(cfg.snooze_hours, 1)
            self.assertEqual(cfg.log_level, "DEBUG")

            # A non-mapping section is ignored.
            self.assertEqual(engine_config_from_doc({"engine": ["x"]}), defaults)
        finally:
            cleanup()

    def test_unknown_timezone_becomes_utc(self) -> None:
        from jobpilot.kernel.settings import engine_config_from_doc

        cleanup = self._with_env(JOBPILOT_TIMEZONE=None)
        try:
            with self.assertLogs("jobpilot.kernel.settings", level="WARNING"):
                cfg = engine_config_from_doc({"engine": {"reference_timezone": "Mars/Olympus_Mons"}})
            self.assertEqual(cfg.reference_timezone, "UTC")
            cfg = engine_config_from_doc({"engine": {"reference_timezone": "America/New_York"}})
            self.assertEqual(cfg.reference_timezone, "America/New_York")
        finally:
            cleanup()

    def test_env_overrides_file(self) -> None:
        from jobpilot.kernel.settings import collaborator_config_from_doc, engine_config_from_doc

        cleanup = self._with_env(JOBPILOT_TIMEZONE="Europe/Berlin", JOBPILOT_API_KEY="secret")
        try:
            cfg = engine_config_from_doc({"engine": {"reference_timezone": "America/New_York"}})
            self.assertEqual(cfg.reference_timezone, "Europe/Berlin")
            collab = collaborator_config_from_doc({"collaborators": {"api_key": "file-key", "resume_url": 42}})
            self.assertEqual(collab.api_key, "secret")
            self.assertEqual(collab.resume_url, "42")
        finally:
            cleanup()

    def test_load_settings_tolerates_broken_yaml(self) -> None:
        from jobpilot.kernel.settings import EngineConfig, load_settings

        cleanup = self._with_env(JOBPILOT_TIMEZONE=None, JOBPILOT_LOG_LEVEL=None, JOBPILOT_API_KEY=None)
        try:
            with tempfile.TemporaryDirectory() as td:
                missing = load_settings(Path(td) / "settings.yaml")
                self.assertEqual(missing.engine, EngineConfig())

                broken = Path(td) / "broken.yaml"
                broken.write_text("engine: [unclosed\n", encoding="utf-8")
                with self.assertLogs("jobpilot.kernel.settings", level="WARNING"):
                    settings = load_settings(broken)
                self.assertEqual(settings.engine, EngineConfig())

                good = Path(td) / "good.yaml"
                good.write_text(
                    "engine:\n  rule_workers: 2\n  reference_timezone: Asia/Tokyo\n"
                    "collaborators:\n  notification_url: http://localhost:9/notify\n",
                    encoding="utf-8",
                )
                settings = load_settings(good)
                self.assertEqual(settings.engine.rule_workers, 2)
                self.assertEqual(settings.engine.reference_timezone, "Asia/Tokyo")
                self.assertEqual(settings.collaborators.notification_url, "http://localhost:9/notify")
        finally:
            cleanup()


if __name__ == "__main__":
    unittest.main()
