"""Unit tests for retention schemas.

Tests settings validation, legacy option loading and result models.
"""

from datetime import datetime

import pytest
from pydantic import ValidationError

from autodelete.models.audit_log import LogAction, LogStatus, RetentionLogEntry
from autodelete.retention.schemas import (
    CategoryRule,
    CategoryRuleMode,
    FileCleanupStats,
    FileDisposition,
    LogEntryOut,
    RecordDisposition,
    RetentionSettings,
)


class TestRetentionSettings:
    """Test RetentionSettings schema validation."""

    def test_default_values(self):
        """Defaults keep everything, so an unconfigured install never deletes."""
        settings = RetentionSettings()

        assert settings.record_disposition == RecordDisposition.KEEP
        assert settings.file_disposition == FileDisposition.KEEP
        assert settings.global_retention_days == 365
        assert settings.category_rules == {}
        assert settings.log_limit == 256
        assert settings.schedule_enabled is False
        assert settings.schedule_hour == 3
        assert settings.is_noop

    def test_log_limit_minimum(self):
        with pytest.raises(ValidationError) as exc:
            RetentionSettings(log_limit=9)

        assert "greater than or equal to 10" in str(exc.value)

    def test_schedule_hour_range(self):
        with pytest.raises(ValidationError):
            RetentionSettings(schedule_hour=24)

    def test_global_days_minimum(self):
        with pytest.raises(ValidationError):
            RetentionSettings(global_retention_days=0)

    def test_is_noop_false_when_any_disposition_acts(self):
        assert not RetentionSettings(file_disposition=FileDisposition.DELETE).is_noop
        assert not RetentionSettings(record_disposition=RecordDisposition.HARD_DELETE).is_noop

    def test_category_rule_keys_coerced_to_int(self):
        settings = RetentionSettings(category_rules={"5": {"mode": "custom", "days": "14"}})

        assert settings.category_rules[5].mode == CategoryRuleMode.CUSTOM
        assert settings.category_rules[5].days == 14


class TestCategoryRule:
    """Test CategoryRule coercion of malformed input."""

    def test_unknown_mode_becomes_global(self):
        assert CategoryRule(mode="forever").mode == CategoryRuleMode.GLOBAL

    def test_invalid_days_become_zero(self):
        assert CategoryRule(mode="custom", days="abc").days == 0
        assert CategoryRule(mode="custom", days=None).days == 0
        assert CategoryRule(mode="custom", days="").days == 0


class TestFromStored:
    """Test loading from stored option documents."""

    def test_legacy_keys(self):
        settings = RetentionSettings.from_stored({
            "sub_handling": "trash",
            "file_handling": "delete",
            "global": "180",
            "forms": {"3": {"mode": "custom", "days": 30}, "4": {"mode": "never"}},
            "log_limit": 100,
            "cron_active": 1,
            "cron_hour": 5,
        })

        assert settings.record_disposition == RecordDisposition.SOFT_DELETE
        assert settings.file_disposition == FileDisposition.DELETE
        assert settings.global_retention_days == 180
        assert settings.category_rules[3].days == 30
        assert settings.category_rules[4].mode == CategoryRuleMode.NEVER
        assert settings.log_limit == 100
        assert settings.schedule_enabled is True
        assert settings.schedule_hour == 5

    def test_legacy_delete_maps_to_hard_delete(self):
        settings = RetentionSettings.from_stored({"sub_handling": "delete"})

        assert settings.record_disposition == RecordDisposition.HARD_DELETE

    def test_out_of_range_values_are_clamped(self):
        settings = RetentionSettings.from_stored({"log_limit": 3, "global": -4, "cron_hour": 40})

        assert settings.log_limit == 10
        assert settings.global_retention_days == 1
        assert settings.schedule_hour == 23

    def test_native_keys(self):
        settings = RetentionSettings.from_stored({
            "record_disposition": "hard_delete",
            "file_disposition": "keep",
            "category_rules": {"2": {"mode": "custom", "days": 0}},
        })

        assert settings.record_disposition == RecordDisposition.HARD_DELETE
        assert settings.category_rules[2].days == 0

    def test_invalid_category_ids_are_dropped(self):
        settings = RetentionSettings.from_stored({"forms": {"0": {"mode": "never"}, "x": {}, "7": "never"}})

        assert settings.category_rules == {}

    def test_empty_document_gives_defaults(self):
        assert RetentionSettings.from_stored(None) == RetentionSettings()


class TestFileCleanupStats:
    """Test FileCleanupStats arithmetic."""

    def test_addition(self):
        total = FileCleanupStats(deleted=2, errors=1) + FileCleanupStats(deleted=1)

        assert total.deleted == 3
        assert total.errors == 1


class TestLogEntryOut:
    """Test the log entry read model."""

    def test_display_message_renders_action_tags(self):
        entry = RetentionLogEntry(
            id=1,
            category_id=1,
            category_label="Contact",
            record_id=9,
            status=LogStatus.SUCCESS,
            message="Record moved to trash. 1 file(s) deleted",
            actions=["TRASH", "FILES"],
        )
        entry.time = datetime(2026, 6, 1)

        out = LogEntryOut.model_validate(entry)

        assert out.actions == [LogAction.TRASH, LogAction.FILES]
        assert out.display_message == "[TRASH] [FILES] Record moved to trash. 1 file(s) deleted"

    def test_display_message_without_actions(self):
        entry = RetentionLogEntry(message="plain", actions=[])

        assert entry.display_message == "plain"
