"""Tests for OperationLogService: история пользователя, месячные счётчики, сводка для админки."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from app.models.pdf_operation import PdfOperation
from app.services.history.service import OperationLogService, month_start


def _op(user_id, type_="MERGE", status="COMPLETED", created_at=None):
    return PdfOperation(
        user_id=user_id,
        type=type_,
        status=status,
        file_name="f.pdf",
        created_at=created_at or datetime.now(timezone.utc),
    )


class TestOperationLog:
    def test_append_and_list(self, db_session):
        log = OperationLogService(db_session)
        entry = log.append("u1", "SPLIT", "doc.pdf", 1234)
        assert entry is not None
        items = log.list_for_user("u1")
        assert [i.type for i in items] == ["SPLIT"]
        assert items[0].file_size == 1234

    def test_append_failure_returns_none(self):
        db = MagicMock()
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("down"))
        assert OperationLogService(db).append("u1", "MERGE", "a.pdf", 1) is None
        db.rollback.assert_called_once()

    def test_other_users_entries_are_invisible(self, db_session):
        other = _op("u2")
        db_session.add(other)
        db_session.commit()
        log = OperationLogService(db_session)
        assert log.get_for_user("u1", other.id) is None
        assert log.delete_for_user("u1", other.id) is False

    def test_clear(self, db_session):
        db_session.add_all([_op("u1"), _op("u1"), _op("u2")])
        db_session.commit()
        assert OperationLogService(db_session).clear_for_user("u1") == 2
        assert db_session.query(PdfOperation).count() == 1

    def test_month_counters(self, db_session):
        now = datetime(2025, 3, 15, tzinfo=timezone.utc)
        db_session.add_all([
            _op("u1", created_at=now - timedelta(days=1)),
            _op("u1", status="FAILED", created_at=now - timedelta(days=2)),
            _op("u1", created_at=datetime(2025, 2, 27, tzinfo=timezone.utc)),
        ])
        db_session.commit()
        log = OperationLogService(db_session)
        assert log.count_completed_this_month("u1", now) == 1
        assert log.count_this_month("u1", now) == 2

    def test_status_breakdown(self, db_session):
        db_session.add_all([_op("u1"), _op("u1", "SPLIT"), _op("u2", status="FAILED"), _op("u2", status="COMPLETED")])
        db_session.commit()
        stats = OperationLogService(db_session).status_breakdown()
        assert stats["total"] == 4
        assert stats["failed"] == 1
        assert stats["success_rate"] == 75.0
        assert stats["by_type"] == {"MERGE": 3, "SPLIT": 1}

    def test_paginate_filters_by_type(self, db_session):
        db_session.add_all([_op("u1"), _op("u1", "SPLIT"), _op("u1", "SPLIT")])
        db_session.commit()
        items, total = OperationLogService(db_session).paginate(limit=1, operation_type="SPLIT")
        assert total == 2
        assert len(items) == 1


def test_month_start():
    assert month_start(datetime(2025, 7, 19, 13, 5, tzinfo=timezone.utc)) == datetime(2025, 7, 1, tzinfo=timezone.utc)
