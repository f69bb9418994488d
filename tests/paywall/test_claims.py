"""Tests for one-time claim extraction and strict verification."""
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import OperationalError
from starlette.requests import Request

from app.models.one_time_purchase import OneTimePurchase
from app.paywall.claims import claim_grants_access, extract_one_time_claim
from app.paywall.ledger import CreditLedger
from app.paywall.models import ConsumptionResult, OneTimeClaim


def _request(headers=None, cookies=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookies:
        raw.append((b"cookie", "; ".join(f"{k}={v}" for k, v in cookies.items()).encode()))
    return Request({"type": "http", "method": "POST", "path": "/", "headers": raw, "query_string": b""})


class TestExtractClaim:
    def test_header_and_purchase_header(self):
        claim = extract_one_time_claim(_request({"X-One-Time-Access": "true", "X-Purchase-Id": "purchase_1"}))
        assert claim.claimed is True
        assert claim.purchase_id == "purchase_1"

    def test_purchase_id_from_cookie(self):
        claim = extract_one_time_claim(
            _request({"X-One-Time-Access": "TRUE"}, cookies={"one-time-purchase-id": "purchase_c"})
        )
        assert claim.claimed is True
        assert claim.purchase_id == "purchase_c"

    def test_header_wins_over_cookie(self):
        claim = extract_one_time_claim(
            _request({"X-One-Time-Access": "true", "X-Purchase-Id": "from_header"},
                     cookies={"one-time-purchase-id": "from_cookie"})
        )
        assert claim.purchase_id == "from_header"

    def test_no_header(self):
        claim = extract_one_time_claim(_request())
        assert claim.claimed is False
        assert claim.purchase_id is None

    def test_non_true_value_is_not_a_claim(self):
        assert extract_one_time_claim(_request({"X-One-Time-Access": "yes"})).claimed is False


class TestClaimGrantsAccess:
    def test_unclaimed(self):
        assert claim_grants_access(OneTimeClaim(), MagicMock()) is False

    def test_claim_without_purchase_id(self):
        assert claim_grants_access(OneTimeClaim(claimed=True), MagicMock()) is False

    @patch("app.paywall.claims.is_strict_claim_verification", return_value=False)
    def test_lenient_mode_trusts_claim(self, _):
        db = MagicMock()
        assert claim_grants_access(OneTimeClaim(claimed=True, purchase_id="anything"), db) is True
        db.query.assert_not_called()

    @patch("app.paywall.claims.is_strict_claim_verification", return_value=True)
    def test_strict_unknown_purchase(self, _, db_session):
        assert claim_grants_access(OneTimeClaim(claimed=True, purchase_id="nope"), db_session) is False

    @patch("app.paywall.claims.is_strict_claim_verification", return_value=True)
    def test_strict_known_unconsumed(self, _, db_session):
        db_session.add(OneTimePurchase(purchase_id="purchase_ok", stripe_session_id="cs_1"))
        db_session.commit()
        assert claim_grants_access(OneTimeClaim(claimed=True, purchase_id="purchase_ok"), db_session) is True

    @patch("app.paywall.claims.is_strict_claim_verification", return_value=True)
    def test_strict_already_consumed(self, _, db_session):
        db_session.add(OneTimePurchase(purchase_id="purchase_used", stripe_session_id="cs_2"))
        db_session.commit()
        CreditLedger(db_session).consume_credit("purchase_used", "MERGE")
        assert claim_grants_access(OneTimeClaim(claimed=True, purchase_id="purchase_used"), db_session) is False

    @patch("app.paywall.claims.is_strict_claim_verification", return_value=True)
    def test_strict_db_error_trusts_claim(self, _):
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("down"))
        assert claim_grants_access(OneTimeClaim(claimed=True, purchase_id="p"), db) is True
        db.rollback.assert_called_once()

    @patch("app.paywall.claims.is_strict_claim_verification", return_value=True)
    def test_strict_db_error_leaves_session_usable(self, _, db_session):
        with patch.object(db_session, "query", side_effect=OperationalError("SELECT", {}, Exception("down"))):
            with patch.object(db_session, "rollback", wraps=db_session.rollback) as rollback:
                assert claim_grants_access(OneTimeClaim(claimed=True, purchase_id="p_retry"), db_session) is True
        rollback.assert_called_once()
        assert CreditLedger(db_session).consume_credit("p_retry", "MERGE") == ConsumptionResult.CONSUMED
