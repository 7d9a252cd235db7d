"""Unit tests for the retention service entry points."""

import itertools
import json
import os
from datetime import datetime, timezone

import pytest

from autodelete.config import get_settings
from autodelete.models.audit_log import LogStatus, RetentionLogEntry, RunStatus
from autodelete.retention.exceptions import InvalidSearchError, RecordNotFoundError, RetentionError
from autodelete.retention.schemas import (
    CategoryRuleMode,
    FileDisposition,
    RecordDisposition,
    RetentionSettings,
)
from autodelete.retention.service import load_retention_settings


def ticking_timer(step):
    values = itertools.count(0, step)
    return lambda: next(values)


class TestLoadRetentionSettings:
    """Test reading the settings document."""

    def test_native_document(self, tmp_path):
        path = tmp_path / "retention.json"
        path.write_text(json.dumps({
            "record_disposition": "hard_delete",
            "file_disposition": "delete",
            "global_retention_days": 90,
            "log_limit": 50,
        }))

        settings = load_retention_settings(str(path))

        assert settings.record_disposition == RecordDisposition.HARD_DELETE
        assert settings.file_disposition == FileDisposition.DELETE
        assert settings.global_retention_days == 90
        assert settings.log_limit == 50

    def test_legacy_document(self, tmp_path):
        path = tmp_path / "retention.json"
        path.write_text(json.dumps({
            "sub_handling": "trash",
            "file_handling": "delete",
            "global": "30",
            "forms": {"4": {"mode": "never"}},
            "cron_active": 1,
            "cron_hour": "25",
        }))

        settings = load_retention_settings(str(path))

        assert settings.record_disposition == RecordDisposition.SOFT_DELETE
        assert settings.global_retention_days == 30
        assert settings.category_rules[4].mode == CategoryRuleMode.NEVER
        assert settings.schedule_enabled is True
        assert settings.schedule_hour == 23

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_retention_settings(str(tmp_path / "absent.json"))

        assert settings == RetentionSettings()

    def test_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "retention.json"
        path.write_text(json.dumps({"record_disposition": "soft_delete"}))
        monkeypatch.setenv("RETENTION_SETTINGS_FILE", str(path))
        get_settings.cache_clear()

        try:
            settings = load_retention_settings()
        finally:
            get_settings.cache_clear()

        assert settings.record_disposition == RecordDisposition.SOFT_DELETE

    @pytest.mark.parametrize("content", [
        "{not json",
        "[1, 2]",
        json.dumps({"record_disposition": "shred"}),
    ])
    def test_invalid_document_raises(self, tmp_path, content):
        path = tmp_path / "retention.json"
        path.write_text(content)

        with pytest.raises(RetentionError):
            load_retention_settings(str(path))


class TestRuns:
    """Test run entry points and draining."""

    def test_run_manual(self, make_service, fake_store, retention_settings):
        fake_store.add_category(1)
        fake_store.add_record(1, age_days=400)

        result = make_service(retention_settings).run_manual()

        assert result.processed == 1
        assert result.status == RunStatus.SUCCESS

    def test_run_scheduled_respects_disabled_schedule(self, make_service, fake_store, retention_settings):
        fake_store.add_category(1)
        fake_store.add_record(1, age_days=400)

        result = make_service(retention_settings).run_scheduled()

        assert result.status == RunStatus.SKIPPED
        assert result.processed == 0

    def test_drain_until_done(self, make_service, fake_store, retention_settings):
        fake_store.add_category(1)
        for _ in range(120):
            fake_store.add_record(1, age_days=400)
        service = make_service(retention_settings, timer=ticking_timer(11))

        results = service.drain()

        assert [r.processed for r in results] == [100, 20, 0]
        assert results[-1].has_more is False
        assert len({r.run_id for r in results}) == 3

    def test_drain_respects_invocation_cap(self, make_service, fake_store, retention_settings):
        fake_store.add_category(1)
        for _ in range(120):
            fake_store.add_record(1, age_days=400)
        service = make_service(retention_settings, timer=ticking_timer(11))

        results = service.drain(max_invocations=1)

        assert len(results) == 1
        assert results[0].has_more is True

    def test_drain_stops_on_skipped_run(self, make_service):
        results = make_service(RetentionSettings()).drain()

        assert len(results) == 1
        assert results[0].status == RunStatus.SKIPPED

    def test_estimate(self, make_service, fake_store, retention_settings):
        fake_store.add_category(1)
        fake_store.add_record(1, age_days=400)
        fake_store.add_record(1, age_days=5)

        assert make_service(retention_settings).estimate("records").count == 1


class TestRetryDelete:
    """Test forced single-record deletion."""

    def test_deletes_record_and_files(self, make_service, fake_store, make_upload, db_session):
        fake_store.add_category(1, "Contact", file_fields=["upload"])
        path = make_upload("cv.pdf")
        record = fake_store.add_record(1, age_days=1, files={"upload": path})

        result = make_service(RetentionSettings()).retry_delete(record.id)

        assert result.deleted is True
        assert result.files_deleted == 1
        assert result.message == "Record deleted permanently (manual retry). 1 file(s) deleted"
        assert record.id not in fake_store.records
        assert not os.path.exists(path)

        entry = db_session.query(RetentionLogEntry).one()
        assert entry.status == LogStatus.SUCCESS
        assert entry.actions == ["MANUAL", "DELETE", "FILES"]
        assert entry.category_label == "Contact"

    def test_failed_delete_is_logged_as_error(self, make_service, fake_store, db_session):
        fake_store.add_category(1)
        record = fake_store.add_record(1, age_days=400)
        fake_store.fail_hard_delete.add(record.id)

        result = make_service(RetentionSettings()).retry_delete(record.id)

        assert result.deleted is False
        assert result.message == "Permanent deletion failed (manual retry)"
        assert db_session.query(RetentionLogEntry).one().status == LogStatus.ERROR

    def test_unknown_record(self, make_service):
        with pytest.raises(RecordNotFoundError):
            make_service(RetentionSettings()).retry_delete(404)


class TestPersonSearch:
    """Test search and deletion of what it found."""

    def test_search(self, make_service, fake_store):
        fake_store.add_category(1, "Contact")
        record = fake_store.add_record(1, age_days=3, fields={"email": "anna@example.com"})

        page = make_service(RetentionSettings()).search("anna@example")

        assert page.total == 1
        assert page.items[0].record_id == record.id

    def test_search_rejects_short_term(self, make_service):
        with pytest.raises(InvalidSearchError):
            make_service(RetentionSettings()).search("an")

    def test_delete_records_counts(self, make_service, fake_store, make_upload, db_session):
        fake_store.add_category(1, "Contact", file_fields=["upload"])
        path = make_upload("id-card.png")
        deleted = fake_store.add_record(1, age_days=3, files={"upload": path})
        stuck = fake_store.add_record(1, age_days=3)
        fake_store.fail_hard_delete.add(stuck.id)

        result = make_service(RetentionSettings()).delete_records([deleted.id, stuck.id, 999, deleted.id])

        assert result.deleted == 1
        assert result.failed == 1
        assert result.files_deleted == 1
        assert deleted.id not in fake_store.records
        assert not os.path.exists(path)

        entries = {e.record_id: e for e in db_session.query(RetentionLogEntry).all()}
        assert set(entries) == {deleted.id, stuck.id}
        assert entries[deleted.id].actions == ["MANUAL", "DELETE", "FILES"]
        assert entries[deleted.id].message == "Record deleted permanently (person search). 1 file(s) deleted"
        assert entries[stuck.id].status == LogStatus.ERROR
        assert entries[stuck.id].message == "Permanent deletion failed (person search)"

    def test_delete_records_continues_after_exception(self, make_service, fake_store):
        fake_store.add_category(1)
        broken = fake_store.add_record(1, age_days=3)
        fine = fake_store.add_record(1, age_days=3)
        fake_store.raise_on_delete.add(broken.id)

        result = make_service(RetentionSettings()).delete_records([broken.id, fine.id])

        assert result.failed == 1
        assert result.deleted == 1
        assert fine.id not in fake_store.records

    def test_delete_nothing(self, make_service, db_session):
        result = make_service(RetentionSettings()).delete_records([])

        assert (result.deleted, result.failed, result.files_deleted) == (0, 0, 0)
        assert db_session.query(RetentionLogEntry).count() == 0


class TestHistory:
    """Test log and run listings."""

    def test_list_logs_page(self, make_service, fake_store, retention_settings):
        fake_store.add_category(1)
        for _ in range(3):
            fake_store.add_record(1, age_days=400)
        service = make_service(retention_settings)
        service.run_manual()

        page = service.list_logs(page=1, per_page=2, order_by="record_id", order="asc")

        assert page.total == 3
        assert [item.record_id for item in page.items] == [1, 2]
        assert page.items[0].display_message == "[TRASH] Record moved to trash"

    def test_list_runs_and_clear(self, make_service, retention_settings):
        service = make_service(retention_settings)
        service.run_manual()
        service.run_manual()

        runs = service.list_runs()
        assert runs.total == 2
        assert runs.items[0].id > runs.items[1].id
        assert runs.items[0].status == RunStatus.SUCCESS

        service.clear_logs()

        assert service.list_runs().total == 0
        assert service.list_logs().total == 0


class TestSchedule:
    def test_schedule_info(self, make_service, retention_settings):
        settings = retention_settings.model_copy(update={"schedule_enabled": True, "schedule_hour": 3})

        info = make_service(settings).schedule_info()

        assert info.enabled is True
        assert info.hour == 3
        assert info.timezone == "UTC"
        assert info.next_run_at == datetime(2026, 6, 2, 3, 0, tzinfo=timezone.utc)

    def test_disabled_schedule_has_no_next_run(self, make_service, retention_settings):
        assert make_service(retention_settings).next_run_at() is None
