"""HTTP-уровень: TestClient, get_db переопределён на SQLite-сессию."""
import base64
from unittest.mock import patch

import fitz
import pytest
from fastapi.testclient import TestClient

from app.db.session import get_db
from app.main import app
from app.models.consumed_payment import ConsumedOneTimePayment
from app.models.one_time_purchase import OneTimePurchase
from app.models.pdf_operation import PdfOperation
from app.models.user import User
from app.services.auth.session import create_session_token

WATERMARK = "Created with Quikpdf.pro"


def _pdf(pages: int = 2) -> bytes:
    doc = fitz.open()
    for i in range(pages):
        doc.new_page().insert_text((72, 72), f"page {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def _text(data: bytes) -> str:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return "".join(page.get_text() for page in doc)


@pytest.fixture
def client(db_session):
    def override():
        yield db_session

    app.dependency_overrides[get_db] = override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _user(db, email="member@example.com", role="USER", plan="free"):
    u = User(email=email, role=role, subscription_plan=plan, subscription_status="active" if plan != "free" else None)
    db.add(u)
    db.commit()
    return u


def _auth(user):
    return {"Authorization": f"Bearer {create_session_token(user.id, user.email)}"}


def _merge_files():
    return [
        ("file0", ("a.pdf", _pdf(), "application/pdf")),
        ("file1", ("b.pdf", _pdf(), "application/pdf")),
    ]


class TestPdfRoutes:
    def test_anonymous_merge_is_watermarked(self, client):
        resp = client.post("/api/pdf/merge", files=_merge_files())
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert WATERMARK in _text(resp.content)
        assert "x-one-time-credit-consumed" not in resp.headers

    def test_one_time_claim_removes_watermark_and_consumes(self, client, db_session):
        headers = {"X-One-Time-Access": "true", "X-Purchase-Id": "purchase_route"}
        resp = client.post("/api/pdf/merge", files=_merge_files(), headers=headers)
        assert resp.status_code == 200
        assert WATERMARK not in _text(resp.content)
        assert resp.headers["X-One-Time-Credit-Consumed"] == "true"
        assert db_session.query(ConsumedOneTimePayment).count() == 1

    def test_claim_without_purchase_id_is_watermarked(self, client, db_session):
        resp = client.post("/api/pdf/merge", files=_merge_files(), headers={"X-One-Time-Access": "true"})
        assert WATERMARK in _text(resp.content)
        assert db_session.query(ConsumedOneTimePayment).count() == 0

    def test_subscriber_merge_is_clean_and_logged(self, client, db_session):
        user = _user(db_session, plan="yearly")
        resp = client.post("/api/pdf/merge", files=_merge_files(), headers=_auth(user))
        assert WATERMARK not in _text(resp.content)
        assert db_session.query(PdfOperation).filter(PdfOperation.user_id == user.id).count() == 1

    def test_validation_error_body(self, client):
        resp = client.post("/api/pdf/merge", files=[("file0", ("a.pdf", _pdf(), "application/pdf"))])
        assert resp.status_code == 400
        assert resp.json() == {"error": "At least 2 PDF files are required for merge"}

    def test_corrupt_pdf_is_400(self, client):
        resp = client.post("/api/pdf/compress", files=[("file", ("bad.pdf", b"junk", "application/pdf"))])
        assert resp.status_code == 400
        assert "bad.pdf" in resp.json()["error"]

    def test_split_returns_parts(self, client):
        resp = client.post(
            "/api/pdf/split",
            files=[("file", ("doc.pdf", _pdf(4), "application/pdf"))],
            data={"mode": "every", "every": "2"},
        )
        body = resp.json()
        assert body["success"] is True
        assert [f["filename"] for f in body["files"]] == ["doc_part_1.pdf", "doc_part_2.pdf"]
        assert body["message"] == "PDF split into 2 documents"

    def test_compress_unknown_quality_uses_medium(self, client):
        resp = client.post(
            "/api/pdf/compress",
            files=[("file", ("doc.pdf", _pdf(), "application/pdf"))],
            data={"quality": "ultra"},
        )
        assert resp.status_code == 200
        data = base64.b64decode(resp.json()["data"])
        with fitz.open(stream=data, filetype="pdf") as doc:
            assert doc.metadata["producer"] == "Quikpdf.pro - medium compression"

    def test_rearrange_requires_page_order(self, client):
        resp = client.post("/api/pdf/rearrange", files=[("file", ("doc.pdf", _pdf(), "application/pdf"))])
        assert resp.status_code == 400
        assert resp.json() == {"error": "Page order is required"}

    def test_analyze(self, client):
        resp = client.post("/api/pdf/analyze", files=[("file", ("doc.pdf", _pdf(3), "application/pdf"))])
        assert resp.status_code == 200
        assert resp.json()["pageCount"] == 3

    def test_conversion_unavailable_is_503(self, client):
        from app.pdf.errors import ConversionUnavailableError

        with patch("app.api.routes.pdf.conversion.convert", side_effect=ConversionUnavailableError("down")):
            resp = client.post("/api/pdf/pdf-to-word", files=[("file", ("d.pdf", _pdf(), "application/pdf"))])
        assert resp.status_code == 503
        assert resp.json() == {"error": "down"}

    def test_pdf_to_image_validates_dpi(self, client):
        resp = client.post(
            "/api/pdf/pdf-to-image",
            files=[("file", ("d.pdf", _pdf(), "application/pdf"))],
            data={"dpi": "10"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "DPI must be between 72 and 600"}


class TestUserRoutes:
    def test_access_info_guest(self, client):
        assert client.get("/api/user/access-info").json()["accessType"] == "guest"

    def test_access_info_subscriber(self, client, db_session):
        user = _user(db_session, plan="monthly")
        body = client.get("/api/user/access-info", headers=_auth(user)).json()
        assert body["accessType"] == "subscription"
        assert body["hasUnlimitedAccess"] is True
        assert body["plan"] == "monthly"

    def test_history_requires_auth(self, client):
        resp = client.get("/api/user/history")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_history_delete_item(self, client, db_session):
        user = _user(db_session)
        op = PdfOperation(user_id=user.id, type="MERGE", file_name="x.pdf")
        db_session.add(op)
        db_session.commit()
        assert len(client.get("/api/user/history", headers=_auth(user)).json()) == 1
        assert client.delete(f"/api/user/history/{op.id}", headers=_auth(user)).json() == {"success": True}
        assert client.get(f"/api/user/history/{op.id}", headers=_auth(user)).status_code == 404

    def test_usage_for_free_user(self, client, db_session):
        user = _user(db_session)
        body = client.get("/api/billing/usage", headers=_auth(user)).json()
        assert body["currentMonth"] == 0
        assert body["limit"] == 5


class TestStripeRoutes:
    def test_one_time_success_sets_cookie(self, client, db_session):
        purchase = OneTimePurchase(purchase_id="purchase_cookie", stripe_session_id="cs_ok")
        with patch("app.api.routes.stripe_routes.BillingService.complete_one_time_purchase", return_value=purchase):
            resp = client.get("/api/stripe/one-time-success", params={"session_id": "cs_ok", "returnTo": "/tools/split"})
        assert resp.status_code == 200
        assert resp.json()["purchaseId"] == "purchase_cookie"
        assert resp.json()["returnTo"] == "/tools/split"
        assert resp.cookies.get("one-time-purchase-id") == "purchase_cookie"

    def test_webhook_rejects_missing_signature(self, client):
        with patch("app.services.billing.webhook.settings") as s:
            s.stripe_webhook_secret = "whsec_test"
            resp = client.post("/api/stripe/webhook", content=b"{}")
        assert resp.status_code == 400


class TestAdminRoutes:
    def test_non_admin_forbidden(self, client, db_session):
        user = _user(db_session)
        resp = client.get("/admin/stats", headers=_auth(user))
        assert resp.status_code == 403

    def test_stats_and_user_update(self, client, db_session):
        admin = _user(db_session, email="root@example.com", role="ADMIN")
        member = _user(db_session, plan="monthly")
        stats = client.get("/admin/stats", headers=_auth(admin)).json()
        assert stats["users"]["total"] == 2
        assert stats["subscriptions"]["monthly"] == 1

        resp = client.patch(f"/admin/users/{member.id}", json={"subscription_plan": "free"}, headers=_auth(admin))
        assert resp.status_code == 200
        assert resp.json()["subscription_plan"] == "free"
        detail = client.get(f"/admin/users/{member.id}", headers=_auth(admin)).json()
        assert detail["audit"][0]["action"] == "user_updated"
        assert detail["audit"][0]["actor_id"] == admin.id

    def test_analytics_series_length(self, client, db_session):
        admin = _user(db_session, email="root@example.com", role="ADMIN")
        body = client.get("/admin/analytics", params={"days": 7}, headers=_auth(admin)).json()
        assert len(body["operations"]) == 7
        assert body["signups"][-1]["count"] == 1


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
