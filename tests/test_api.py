"""End-to-end API tests over the in-memory services.

Covers routing, authentication, and the mapping of domain errors to HTTP
status codes and error kinds.
"""

import hashlib
import hmac
from decimal import Decimal
from uuid import uuid4

import orjson
from fastapi.testclient import TestClient

from src.content.models import ContentItem


def lesson_url(enrollment_id, module, lesson, action: str) -> str:
    return (
        f"/v1/enrollments/{enrollment_id}/modules/{module.id}"
        f"/lessons/{lesson.id}/{action}"
    )


class TestAuthentication:
    def test_missing_token(self, client: TestClient) -> None:
        response = client.get("/v1/enrollments/my")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_garbage_token(self, client: TestClient) -> None:
        response = client.get(
            "/v1/enrollments/my", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401


class TestCourseRoutes:
    def test_course_overview(self, client, auth_headers, paid_course, student) -> None:
        response = client.get(f"/v1/courses/{paid_course.id}", headers=auth_headers(student))

        assert response.status_code == 200
        data = response.json()
        assert data["pricing"]["type"] == "paid"
        assert data["total_lessons"] == 4
        assert data["access"] == {
            "has_access": False,
            "reason": None,
            "requires_payment": True,
        }

    def test_unknown_course_maps_to_404(self, client, auth_headers, student) -> None:
        response = client.get(f"/v1/courses/{uuid4()}", headers=auth_headers(student))
        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    def test_gated_lesson_maps_to_403(
        self, client, auth_headers, paid_course, student
    ) -> None:
        module, text = list(paid_course.iter_lessons())[1]
        response = client.get(
            f"/v1/courses/{paid_course.id}/modules/{module.id}/lessons/{text.id}",
            headers=auth_headers(student),
        )
        assert response.status_code == 403
        assert response.json()["kind"] == "forbidden"

    def test_access_check(self, client, auth_headers, free_course, student) -> None:
        response = client.get(
            f"/v1/access/check/{free_course.id}", headers=auth_headers(student)
        )
        assert response.status_code == 200
        assert response.json()["reason"] == "free_course"


class TestEnrollmentRoutes:
    def test_learning_flow(self, client, auth_headers, free_course, student) -> None:
        headers = auth_headers(student)
        (m1, video), (_, text), (m2, audio), (_, quiz) = list(free_course.iter_lessons())

        created = client.post(
            "/v1/enrollments", json={"course_id": str(free_course.id)}, headers=headers
        )
        assert created.status_code == 201
        enrollment_id = created.json()["id"]

        progress = client.put(
            lesson_url(enrollment_id, m1, video, "progress"),
            json={"watch_time": 100, "position": 100},
            headers=headers,
        )
        assert progress.status_code == 200
        assert progress.json()["lesson"]["completed"] is True
        assert progress.json()["enrollment"]["status"] == "in_progress"

        client.post(lesson_url(enrollment_id, m1, text, "complete"), headers=headers)
        client.put(
            lesson_url(enrollment_id, m2, audio, "progress"),
            json={"watch_time": 60},
            headers=headers,
        )
        graded = client.post(
            lesson_url(enrollment_id, m2, quiz, "quiz"),
            json={"answers": [0, 1]},
            headers=headers,
        )
        assert graded.status_code == 200
        body = graded.json()
        assert body["score"] == 100
        assert body["questions"][1]["explanation"] == "Notice and return."
        assert body["enrollment"]["status"] == "completed"
        assert body["enrollment"]["progress"]["percentage"] == 100

        listing = client.get("/v1/enrollments/my?status=completed", headers=headers)
        assert listing.json()["total"] == 1

    def test_duplicate_enrollment_maps_to_409(
        self, client, auth_headers, free_course, student
    ) -> None:
        headers = auth_headers(student)
        payload = {"course_id": str(free_course.id)}
        client.post("/v1/enrollments", json=payload, headers=headers)

        response = client.post("/v1/enrollments", json=payload, headers=headers)

        assert response.status_code == 409
        assert response.json()["kind"] == "conflict"

    def test_negative_watch_time_maps_to_422(
        self, client, auth_headers, free_course, student
    ) -> None:
        headers = auth_headers(student)
        enrollment_id = client.post(
            "/v1/enrollments", json={"course_id": str(free_course.id)}, headers=headers
        ).json()["id"]
        module, video = next(free_course.iter_lessons())

        response = client.put(
            lesson_url(enrollment_id, module, video, "progress"),
            json={"watch_time": -1},
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["kind"] == "validation_error"

    def test_rating(self, client, auth_headers, free_course, student) -> None:
        headers = auth_headers(student)
        enrollment_id = client.post(
            "/v1/enrollments", json={"course_id": str(free_course.id)}, headers=headers
        ).json()["id"]

        response = client.post(
            f"/v1/enrollments/{enrollment_id}/rating",
            json={"rating": 4, "review": "Steady"},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["rating_count"] == 1
        assert response.json()["enrollment"]["rating"]["rating"] == 4


class TestPaymentRoutes:
    def test_checkout_verify_and_enroll(
        self, client, auth_headers, paid_course, student
    ) -> None:
        headers = auth_headers(student)
        order = client.post(
            "/v1/payments/orders/course",
            json={"course_id": str(paid_course.id)},
            headers=headers,
        )
        assert order.status_code == 201
        payment = order.json()["payment"]
        assert "gateway_signature" not in payment

        verified = client.post(
            "/v1/payments/verify",
            json={
                "payment_id": payment["id"],
                "gateway_order_id": order.json()["order_id"],
                "gateway_payment_id": "pay_1",
                "signature": "sig",
            },
            headers=headers,
        )

        assert verified.status_code == 200
        assert verified.json()["payment"]["status"] == "completed"
        assert verified.json()["application"]["outcome"] == "enrollment_created"
        access = client.get(f"/v1/access/check/{paid_course.id}", headers=headers)
        assert access.json()["has_access"] is True

    def test_rejected_signature_maps_to_402(
        self, client, auth_headers, paid_course, student, gateway
    ) -> None:
        headers = auth_headers(student)
        order = client.post(
            "/v1/payments/orders/course",
            json={"course_id": str(paid_course.id)},
            headers=headers,
        ).json()
        gateway.signature_valid = False

        response = client.post(
            "/v1/payments/verify",
            json={
                "payment_id": order["payment"]["id"],
                "gateway_order_id": order["order_id"],
                "gateway_payment_id": "pay_1",
                "signature": "forged",
            },
            headers=headers,
        )

        assert response.status_code == 402
        assert response.json()["kind"] == "external_verification_failed"

    def test_webhook_needs_no_user(self, client, auth_headers, paid_course, student) -> None:
        order = client.post(
            "/v1/payments/orders/course",
            json={"course_id": str(paid_course.id)},
            headers=auth_headers(student),
        ).json()
        body = orjson.dumps(
            {
                "event": "payment.captured",
                "payload": {
                    "payment": {
                        "entity": {"id": "pay_9", "order_id": order["order_id"]}
                    }
                },
            }
        )

        response = client.post(
            "/v1/payments/webhook",
            content=body,
            headers={
                "X-Razorpay-Signature": hmac.new(
                    b"whsec_test", body, hashlib.sha256
                ).hexdigest(),
                "Content-Type": "application/json",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "outcome": "enrollment_created"}

    def test_refund_requires_admin(
        self, client, auth_headers, paid_course, student, admin
    ) -> None:
        order = client.post(
            "/v1/payments/orders/course",
            json={"course_id": str(paid_course.id)},
            headers=auth_headers(student),
        ).json()
        url = f"/v1/admin/payments/{order['payment']['id']}/refund"

        as_student = client.post(url, json={}, headers=auth_headers(student))
        as_admin = client.post(url, json={}, headers=auth_headers(admin))

        assert as_student.status_code == 403
        # Pending payments cannot be refunded
        assert as_admin.status_code == 422

    def test_checkout_key_is_public(self, client) -> None:
        response = client.get("/v1/payments/key")

        assert response.status_code == 200
        assert response.json() == {"key_id": "rzp_test_key"}

    def test_content_order(
        self, client, auth_headers, content_repo, student
    ) -> None:
        item = ContentItem(
            id=uuid4(), title="Body scan", is_premium=True, price=Decimal("199.00")
        )
        content_repo.items[item.id] = item

        created = client.post(
            "/v1/payments/orders/content",
            json={"content_id": str(item.id)},
            headers=auth_headers(student),
        )
        missing = client.post(
            "/v1/payments/orders/content",
            json={"content_id": str(uuid4())},
            headers=auth_headers(student),
        )

        assert created.status_code == 201
        assert created.json()["payment"]["payment_type"] == "content"
        assert missing.status_code == 404

    def test_admin_overview(
        self, client, auth_headers, paid_course, student, admin
    ) -> None:
        client.post(
            "/v1/payments/orders/course",
            json={"course_id": str(paid_course.id)},
            headers=auth_headers(student),
        )

        as_student = client.get("/v1/admin/payments", headers=auth_headers(student))
        as_admin = client.get(
            "/v1/admin/payments",
            params={"status": "pending", "limit": 10},
            headers=auth_headers(admin),
        )

        assert as_student.status_code == 403
        assert as_admin.status_code == 200
        data = as_admin.json()
        assert data["total"] == 1
        assert data["pages"] == 1
        assert data["statistics"][0]["status"] == "pending"
        assert data["statistics"][0]["count"] == 1
