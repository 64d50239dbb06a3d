"""
Unit tests for core Blocksync components.

Tests configuration management, settings validation, storage operations,
data models, and the command-line helpers.
"""

import os
import shutil
import tempfile
import unittest
from datetime import date, datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

from blocksync.config import API_KEY_ENV_VAR, ConfigManager, Settings, validate_time_log_settings
from blocksync.models import MergeSummary, SyncStatus, TimeBlock, TimeLogMeta
from blocksync.storage import StorageManager


class TestConfigManager(unittest.TestCase):
    """Test configuration management functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "test_config.yaml"

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_config_creation_with_defaults(self):
        """Test config manager falls back to defaults when file missing."""
        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.max_retries, 3)
        self.assertEqual(config.base_delay, 0.4)
        self.assertEqual(config.database_filename, "blocksync.db")
        self.assertEqual(config.time_log_source, "TimeLog")

        settings = config.settings
        self.assertEqual(settings.start_hour, 9)
        self.assertEqual(settings.lunch_start, 12)
        self.assertEqual(settings.lunch_end, 13)
        self.assertEqual(settings.work_days, [0, 1, 2, 3, 4])

    def test_config_loading_from_file(self):
        """Test loading configuration from YAML file."""
        test_config = """
settings:
  startHour: 8
  lunchStart: 11
  timeLogBaseUrl: "https://timelog.example.com"
  timeLogOrgId: "org1"

timelog:
  max_retries: 5
  timeout: 10.0

storage:
  filename: "test.db"
"""
        with open(self.config_path, 'w') as f:
            f.write(test_config)

        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.max_retries, 5)
        self.assertEqual(config.request_timeout, 10.0)
        self.assertEqual(config.base_delay, 0.4)  # default kept for keys not in file
        self.assertEqual(config.database_filename, "test.db")
        self.assertEqual(config.settings.start_hour, 8)
        self.assertEqual(config.settings.lunch_start, 11)
        self.assertEqual(config.settings.lunch_end, 13)
        self.assertEqual(config.settings.time_log_org_id, "org1")

    def test_invalid_yaml_falls_back_to_defaults(self):
        with open(self.config_path, 'w') as f:
            f.write("settings: [unclosed")

        config = ConfigManager(str(self.config_path))
        self.assertEqual(config.max_retries, 3)

    def test_dot_notation_access(self):
        """Test accessing config values with dot notation."""
        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.get("timelog.create_max_retries"), 2)
        self.assertEqual(config.get("settings.startHour"), 9)
        self.assertEqual(config.get("nonexistent.key", "default"), "default")

    def test_config_reload(self):
        """Test configuration reloading."""
        with open(self.config_path, 'w') as f:
            f.write("timelog:\n  max_retries: 1")

        config = ConfigManager(str(self.config_path))
        self.assertEqual(config.max_retries, 1)

        with open(self.config_path, 'w') as f:
            f.write("timelog:\n  max_retries: 4")

        config.reload()
        self.assertEqual(config.max_retries, 4)

    def test_api_key_from_environment(self):
        config = ConfigManager(str(self.config_path))

        with patch.dict(os.environ, {API_KEY_ENV_VAR: "env-secret"}):
            self.assertEqual(config.settings.time_log_api_key, "env-secret")

        with open(self.config_path, 'w') as f:
            f.write("settings:\n  timeLogApiKey: file-secret")
        config.reload()

        with patch.dict(os.environ, {API_KEY_ENV_VAR: "env-secret"}):
            self.assertEqual(config.settings.time_log_api_key, "file-secret")


class TestSettingsValidation(unittest.TestCase):
    """Test validation of the time-log connection settings."""

    def valid_settings(self, **overrides):
        values = {
            "time_log_base_url": "https://timelog.example.com",
            "time_log_org_id": "org1",
            "time_log_api_key": "secret",
            "time_log_user_id": "user-1",
        }
        values.update(overrides)
        return Settings(**values)

    def test_valid_settings(self):
        result = validate_time_log_settings(self.valid_settings())

        self.assertTrue(result.valid)
        self.assertEqual(result.errors, {})

    def test_missing_fields_reported_by_name(self):
        result = validate_time_log_settings(Settings())

        self.assertFalse(result.valid)
        self.assertEqual(
            set(result.errors),
            {"timeLogBaseUrl", "timeLogOrgId", "timeLogUserId", "timeLogApiKey"},
        )

    def test_base_url_must_be_https(self):
        result = validate_time_log_settings(self.valid_settings(time_log_base_url="http://timelog.example.com"))
        self.assertIn("timeLogBaseUrl", result.errors)

    def test_numeric_ranges(self):
        result = validate_time_log_settings(self.valid_settings(
            time_log_lookback_days=0,
            time_log_page_size="lots",
        ))

        self.assertIn("timeLogLookbackDays", result.errors)
        self.assertIn("timeLogPageSize", result.errors)

        result = validate_time_log_settings(self.valid_settings(time_log_page_size=501))
        self.assertIn("timeLogPageSize", result.errors)

    def test_camel_case_keys_accepted(self):
        settings = Settings.model_validate({"startHour": 7, "timeLogLookbackDays": "30", "unknownKey": 1})

        self.assertEqual(settings.start_hour, 7)
        self.assertEqual(settings.lookback_days, 30)


class TestDataModels(unittest.TestCase):
    """Test data model validation and functionality."""

    def test_naive_datetimes_are_utc(self):
        block = TimeBlock(id="b1", start=datetime(2025, 1, 6, 9), end=datetime(2025, 1, 6, 10))

        self.assertEqual(block.start.tzinfo, timezone.utc)
        self.assertEqual(block.duration_minutes, 60)
        self.assertEqual(block.sync_status, SyncStatus.DRAFT)

    def test_block_from_camel_case_storage(self):
        block = TimeBlock.model_validate({
            "id": "timelog-7-1",
            "start": "2025-01-06T13:00:00Z",
            "end": "2025-01-06T14:00:00Z",
            "externalSource": "TimeLog",
            "externalId": "7",
            "syncStatus": "imported",
            "timeLogMeta": {"workDate": "2025-01-06", "segmentIndex": 1, "segmentCount": 2},
            "color": "blue",
        })

        self.assertTrue(block.is_from_source("TimeLog"))
        self.assertFalse(block.is_from_source("Other"))
        self.assertEqual(block.segment_key, "7:1")
        self.assertNotIn("color", block.to_storage())

    def test_unknown_keyword_is_not_stored(self):
        block = TimeBlock(
            id="b1",
            start=datetime(2025, 1, 6, 9, tzinfo=timezone.utc),
            end=datetime(2025, 1, 6, 10, tzinfo=timezone.utc),
            day=7,
        )

        self.assertFalse(hasattr(block, "day"))
        self.assertNotIn("day", block.to_storage())

    def test_segment_index_defaults_to_zero(self):
        block = TimeBlock(
            id="b1",
            start=datetime(2025, 1, 6, 9, tzinfo=timezone.utc),
            end=datetime(2025, 1, 6, 10, tzinfo=timezone.utc),
            external_id="3",
        )
        self.assertEqual(block.segment_key, "3:0")


class TestStorageManager(unittest.TestCase):
    """Test DuckDB-backed persistence."""

    def setUp(self):
        """Set up test database."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "test.db"

    def tearDown(self):
        """Clean up test database."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_database_initialization(self):
        """Test database creation and table initialization."""
        with StorageManager(str(self.db_path)) as storage:
            storage.initialize_database()
            storage.initialize_database()

            self.assertTrue(self.db_path.exists())
            self.assertEqual(storage.read(), {})

    def test_requires_connection(self):
        with self.assertRaises(RuntimeError):
            StorageManager(str(self.db_path)).read()

    def test_read_write(self):
        with StorageManager(str(self.db_path)) as storage:
            storage.initialize_database()
            storage.write({"blocks": [], "preferences": {"theme": "dark"}})
            storage.write({"preferences": {"theme": "light"}})

            self.assertEqual(storage.read(), {"blocks": [], "preferences": {"theme": "light"}})

    def test_blocks_persist_across_connections(self):
        block = TimeBlock(
            id="timelog-7-0",
            start=datetime(2025, 1, 6, 9, tzinfo=timezone.utc),
            end=datetime(2025, 1, 6, 10, tzinfo=timezone.utc),
            external_source="TimeLog",
            external_id="7",
            sync_status=SyncStatus.SYNCED,
            time_log_meta=TimeLogMeta(
                work_date="2025-01-06",
                segment_index=0,
                last_synced_at=datetime(2025, 1, 6, 18, tzinfo=timezone.utc),
            ),
        )
        with StorageManager(str(self.db_path)) as storage:
            storage.initialize_database()
            storage.save_blocks([block])

        with StorageManager(str(self.db_path)) as storage:
            loaded = storage.load_blocks()

        self.assertEqual(loaded, [block])

    def test_settings_saved_without_api_key(self):
        settings = Settings(start_hour=8, time_log_org_id="org1", time_log_api_key="secret")
        with StorageManager(str(self.db_path)) as storage:
            storage.initialize_database()
            self.assertIsNone(storage.load_settings())
            storage.save_settings(settings)

            loaded = storage.load_settings()
            raw = storage.read()["settings"]

        self.assertEqual(loaded.start_hour, 8)
        self.assertEqual(loaded.time_log_org_id, "org1")
        self.assertEqual(loaded.time_log_api_key, "")
        self.assertNotIn("timeLogApiKey", raw)

    def test_sync_runs(self):
        first = datetime(2025, 1, 6, 8, tzinfo=timezone.utc)
        second = datetime(2025, 1, 7, 8, tzinfo=timezone.utc)

        with StorageManager(str(self.db_path)) as storage:
            storage.initialize_database()
            self.assertIsNone(storage.get_last_sync_date())

            run_id = storage.log_sync_run(
                first,
                success=True,
                summary=MergeSummary(downloaded=3, created=2, identical=1),
                execution_time_ms=120,
            )
            storage.log_sync_run(second, success=False, error_message="TimeLog sync failed: HTTP 500")

            runs = storage.get_sync_runs()
            latest = storage.get_sync_runs(limit=1)
            last_sync = storage.get_last_sync_date()

        self.assertIsNotNone(run_id)
        self.assertEqual(len(runs), 2)
        self.assertEqual(len(latest), 1)
        self.assertFalse(latest[0]["success"])
        self.assertEqual(latest[0]["error_message"], "TimeLog sync failed: HTTP 500")
        self.assertEqual(runs[1]["created"], 2)
        self.assertEqual(last_sync, first)


class TestUtilityFunctions(unittest.TestCase):
    """Test command-line helpers."""

    def test_focus_week_spans_monday_to_sunday(self):
        from main import parse_focus_week

        focus = parse_focus_week("2025-01-09")
        self.assertEqual(focus.start, date(2025, 1, 6))
        self.assertEqual(focus.end, date(2025, 1, 12))
        self.assertIsNone(parse_focus_week(None))

    def test_invalid_focus_week(self):
        from main import parse_focus_week

        with self.assertRaises(ValueError):
            parse_focus_week("next week")

    def test_stored_settings_used_when_config_has_no_base_url(self):
        from main import resolve_settings

        temp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, temp_dir, True)
        config = ConfigManager(str(Path(temp_dir) / "missing.yaml"))
        stored = Settings(
            time_log_base_url="https://timelog.example.com",
            time_log_org_id="org1",
            time_log_user_id="user-1",
        )

        with StorageManager(str(Path(temp_dir) / "state.db")) as storage:
            storage.initialize_database()
            self.assertEqual(resolve_settings(config, storage).time_log_base_url, "")

            storage.save_settings(stored)
            with patch.dict(os.environ, {API_KEY_ENV_VAR: "env-secret"}):
                settings = resolve_settings(config, storage)

        self.assertEqual(settings.time_log_base_url, "https://timelog.example.com")
        self.assertEqual(settings.time_log_org_id, "org1")
        self.assertEqual(settings.time_log_api_key, "env-secret")
        self.assertTrue(validate_time_log_settings(settings).valid)

    def test_publish_uses_stored_settings(self):
        import main
        from blocksync.models import FocusRange, MergeReport

        temp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, temp_dir, True)
        config_path = Path(temp_dir) / "config.yaml"
        config_path.write_text(f"storage:\n  filename: '{Path(temp_dir) / 'state.db'}'\n")
        config = ConfigManager(str(config_path))

        with StorageManager(config.database_filename) as storage:
            storage.initialize_database()
            storage.save_settings(Settings(
                time_log_base_url="https://timelog.example.com",
                time_log_org_id="org1",
                time_log_user_id="user-1",
            ))

        report = MergeReport(
            generated_at=datetime(2025, 1, 8, tzinfo=timezone.utc),
            lookback_days=365,
            focus_range=FocusRange(start=date(2025, 1, 6), end=date(2025, 1, 12)),
            unsynced_weekly_blocks=[TimeBlock(
                id="m1",
                start=datetime(2025, 1, 6, 9, tzinfo=timezone.utc),
                end=datetime(2025, 1, 6, 10, tzinfo=timezone.utc),
            )],
        )

        service = MagicMock()
        service.publish.return_value = [{"ok": True}]
        with patch.dict(os.environ, {API_KEY_ENV_VAR: "env-secret"}), \
                patch.object(main, "build_service", return_value=service):
            main.show_suggestions(config, report, publish=True)

        settings, suggestions = service.publish.call_args[0]
        self.assertEqual(settings.time_log_base_url, "https://timelog.example.com")
        self.assertEqual(settings.time_log_api_key, "env-secret")
        self.assertEqual([s.id for s in suggestions], ["2025-01-06:unassigned"])

    def test_argument_parsing(self):
        from main import parse_arguments

        args = parse_arguments(["--sync", "--focus-week", "2025-01-06", "--limit-to-focus"])
        self.assertTrue(args.sync)
        self.assertTrue(args.limit_to_focus)
        self.assertEqual(args.focus_week, "2025-01-06")
        self.assertEqual(args.config, "config.yaml")
        self.assertIsNone(args.export_csv)


if __name__ == '__main__':
    # Run all tests
    unittest.main(verbosity=2)
