"""Tests for CreditLedger: at-most-once списание на реальном unique-ограничении (SQLite)."""
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from app.models.consumed_payment import ConsumedOneTimePayment
from app.paywall.ledger import CreditLedger
from app.paywall.models import ConsumptionResult


class TestConsumeCredit:
    def test_first_consumption(self, db_session):
        result = CreditLedger(db_session).consume_credit("purchase_abc", "MERGE")
        assert result == ConsumptionResult.CONSUMED
        row = db_session.query(ConsumedOneTimePayment).one()
        assert row.purchase_id == "purchase_abc"
        assert row.operation_type == "MERGE"

    def test_second_consumption_is_already_consumed(self, db_session):
        ledger = CreditLedger(db_session)
        assert ledger.consume_credit("purchase_abc", "MERGE") == ConsumptionResult.CONSUMED
        assert ledger.consume_credit("purchase_abc", "SPLIT") == ConsumptionResult.ALREADY_CONSUMED
        rows = db_session.query(ConsumedOneTimePayment).all()
        assert len(rows) == 1
        assert rows[0].operation_type == "MERGE"

    def test_session_usable_after_duplicate(self, db_session):
        ledger = CreditLedger(db_session)
        ledger.consume_credit("p1", "MERGE")
        ledger.consume_credit("p1", "MERGE")
        assert ledger.consume_credit("p2", "COMPRESS") == ConsumptionResult.CONSUMED
        assert db_session.query(ConsumedOneTimePayment).count() == 2

    def test_missing_purchase_id_fails(self, db_session):
        assert CreditLedger(db_session).consume_credit(None, "MERGE") == ConsumptionResult.FAILED
        assert db_session.query(ConsumedOneTimePayment).count() == 0

    def test_storage_error_is_failed_not_raised(self):
        db = MagicMock()
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))
        result = CreditLedger(db).consume_credit("purchase_x", "SPLIT")
        assert result == ConsumptionResult.FAILED
        db.rollback.assert_called_once()

    def test_is_consumed(self, db_session):
        ledger = CreditLedger(db_session)
        assert ledger.is_consumed("p9") is False
        ledger.consume_credit("p9", "REARRANGE")
        assert ledger.is_consumed("p9") is True
