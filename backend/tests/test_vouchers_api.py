import unittest
from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient

from rental_vouchers.core.database import get_db
from rental_vouchers.core.settings import settings
from rental_vouchers.main import app
from rental_vouchers.models.booking import Booking
from rental_vouchers.models.voucher import DiscountType

from voucher_factories import add_booking, add_usage, add_voucher, make_session_factory


SECRET = "test-secret"


def _token(sub, role="user", email=""):
    claims = {
        "sub": sub,
        "email": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    return jwt.encode(claims, SECRET, algorithm="HS256")


def _auth(sub, role="user"):
    return {"Authorization": f"Bearer {_token(sub, role)}"}


class VouchersApiTestCase(unittest.TestCase):
    def setUp(self):
        self._saved = (settings.jwt_secret, settings.jwt_audience, settings.admin_emails)
        settings.jwt_secret = SECRET
        settings.jwt_audience = None
        settings.admin_emails = set()

        self.SessionLocal = make_session_factory()
        self.db = self.SessionLocal()

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        self.db.close()
        settings.jwt_secret, settings.jwt_audience, settings.admin_emails = self._saved


class TestPublicEndpoints(VouchersApiTestCase):
    def test_health(self):
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"status": "healthy"})

    def test_validate_voucher(self):
        add_voucher(self.db, "SAVE20", DiscountType.PERCENTAGE, 20)
        res = self.client.post("/api/validate-voucher", json={"code": "save20", "booking_amount": 200})
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertTrue(body["valid"])
        self.assertEqual(body["discount_amount"], 40.0)
        self.assertEqual(body["final_amount"], 160.0)

    def test_token_identity_wins_over_body_user_id(self):
        voucher = add_voucher(self.db, "FIRST", DiscountType.FIXED_AMOUNT, 10, max_uses_per_user=1)
        booking = add_booking(self.db, driver_id="driver-1")
        add_usage(self.db, voucher.id, booking.id, user_id="driver-1")
        body = {"code": "FIRST", "booking_amount": 200, "user_id": "driver-1"}

        res = self.client.post("/api/validate-voucher", json=body, headers=_auth("driver-2"))
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.json()["valid"])

        res = self.client.post("/api/validate-voucher", json=body)
        self.assertFalse(res.json()["valid"])
        self.assertEqual(res.json()["message"], "This voucher is limited to one use per user")

    def test_validate_unknown_code_is_not_an_http_error(self):
        res = self.client.post("/api/validate-voucher", json={"code": "NOPE", "booking_amount": 200})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"valid": False, "message": "Invalid voucher code"})

    def test_validate_rejects_bad_amount(self):
        res = self.client.post("/api/validate-voucher", json={"code": "SAVE20", "booking_amount": 0})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["detail"], "Invalid booking amount")

    def test_stackable_limit(self):
        res = self.client.post(
            "/api/validate-stackable-vouchers",
            json={"voucher_codes": ["A1", "B2", "C3"], "booking_amount": 200},
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["message"], "Maximum of 2 vouchers can be stacked per booking")

    def test_best_combination(self):
        add_voucher(self.db, "TEN", DiscountType.FIXED_AMOUNT, 10, is_stackable=True)
        add_voucher(self.db, "FIFTEEN", DiscountType.FIXED_AMOUNT, 15, is_stackable=True)
        res = self.client.post(
            "/api/find-best-voucher-combination",
            json={"available_voucher_codes": ["TEN", "FIFTEEN"], "booking_amount": 200},
        )
        self.assertEqual(res.status_code, 200)
        best = res.json()["best_combination"]
        self.assertEqual(best["codes"], ["TEN", "FIFTEEN"])
        self.assertEqual(best["final_amount"], 175.0)


class TestApplyAndRemoveEndpoints(VouchersApiTestCase):
    def test_requires_a_token(self):
        res = self.client.post("/api/apply-voucher", json={"voucher_code": "TEN", "booking_id": 1})
        self.assertEqual(res.status_code, 401)

    def test_apply_and_remove(self):
        add_voucher(self.db, "TEN", DiscountType.FIXED_AMOUNT, 10)
        booking = add_booking(self.db, driver_id="driver-1", price=100)

        res = self.client.post(
            "/api/apply-voucher",
            json={"voucher_code": "TEN", "booking_id": booking.id},
            headers=_auth("driver-1"),
        )
        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual(res.json()["booking"]["price"], 90.0)

        res = self.client.post(
            "/api/apply-voucher",
            json={"voucher_code": "TEN", "booking_id": booking.id},
            headers=_auth("driver-1"),
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["detail"], "Booking already has a voucher applied")

        res = self.client.delete(f"/api/remove-voucher/{booking.id}", headers=_auth("driver-1"))
        self.assertEqual(res.status_code, 200, res.text)
        self.db.expire_all()
        self.assertEqual(self.db.get(Booking, booking.id).price, 100.0)

    def test_other_users_booking_is_forbidden(self):
        add_voucher(self.db, "TEN", DiscountType.FIXED_AMOUNT, 10)
        booking = add_booking(self.db, driver_id="driver-1")
        res = self.client.post(
            "/api/apply-voucher",
            json={"voucher_code": "TEN", "booking_id": booking.id},
            headers=_auth("driver-2"),
        )
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.json()["detail"], "Unauthorized: You can only apply vouchers to your own bookings")


class TestAdminEndpoints(VouchersApiTestCase):
    PAYLOAD = {
        "code": "spring10",
        "discount_type": "percentage",
        "discount_value": 10,
        "valid_from": "2025-01-01T00:00:00",
        "valid_to": "2099-01-01T00:00:00",
    }

    def test_admin_role_required(self):
        res = self.client.post("/api/admin/vouchers", json=self.PAYLOAD, headers=_auth("driver-1"))
        self.assertEqual(res.status_code, 403)

    def test_create_list_update_delete(self):
        headers = _auth("admin-1", role="admin")
        res = self.client.post("/api/admin/vouchers", json=self.PAYLOAD, headers=headers)
        self.assertEqual(res.status_code, 200, res.text)
        created = res.json()
        self.assertEqual(created["code"], "SPRING10")
        self.assertEqual(created["usage_count"], 0)

        res = self.client.post("/api/admin/vouchers", json=self.PAYLOAD, headers=headers)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["detail"], "Voucher code already exists")

        res = self.client.get("/api/admin/vouchers", params={"keyword": "spring"}, headers=headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["total"], 1)

        updated = dict(self.PAYLOAD, discount_value=15, is_stackable=True)
        res = self.client.put(f"/api/admin/vouchers/{created['id']}", json=updated, headers=headers)
        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual(res.json()["discount_value"], 15.0)
        self.assertTrue(res.json()["is_stackable"])

        res = self.client.get(f"/api/admin/voucher-usage/{created['id']}", headers=headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["statistics"]["total_usages"], 0)

        res = self.client.delete(f"/api/admin/vouchers/{created['id']}", headers=headers)
        self.assertEqual(res.status_code, 200)
        res = self.client.get(f"/api/admin/vouchers/{created['id']}", headers=headers)
        self.assertEqual(res.status_code, 404)

    def test_percentage_over_100_is_rejected(self):
        payload = dict(self.PAYLOAD, discount_value=150)
        res = self.client.post("/api/admin/vouchers", json=payload, headers=_auth("admin-1", role="admin"))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["detail"], "Percentage discount cannot exceed 100%")


if __name__ == "__main__":
    unittest.main()
