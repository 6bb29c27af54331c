"""API tests: routing, authorization and error rendering over the HTTP surface."""

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from registrar.core.db import get_db
from registrar.core.security import create_access_token
from registrar.main import app

pytestmark = pytest.mark.integration

SCHOOL_YEAR = "2024-2025"
SEMESTER = "1st"


def auth(user_id: uuid.UUID, *roles: str) -> dict:
    token = create_access_token(str(user_id), roles=list(roles))
    return {"Authorization": f"Bearer {token}"}


def payload(student, courses, payment_plan="FULL") -> dict:
    return {
        "student_id": str(student.id),
        "school_year": SCHOOL_YEAR,
        "semester": SEMESTER,
        "payment_plan": payment_plan,
        "subjects": [
            {"subject_id": str(subject.id), "offering_id": str(offering.id)}
            for subject, offering in courses
        ],
    }


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def student(catalog, user_id):
    return catalog.student(user_id=user_id)


@pytest.fixture
def courses(catalog):
    return catalog.load(5)


@pytest.fixture
def admin():
    return auth(uuid.uuid4(), "ADMIN")


@pytest.fixture
def accountant():
    return auth(uuid.uuid4(), "ACCOUNTANT")


class TestAuthentication:
    """Bearer token handling."""

    def test_missing_token_is_rejected(self, client):
        response = client.get("/api/enrollments/my")

        assert response.status_code in (401, 403)

    def test_invalid_token_is_401(self, client):
        response = client.get("/api/enrollments/my", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_non_uuid_subject_is_401(self, client):
        response = client.get("/api/enrollments/my", headers=auth("registrar-bot"))

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid user ID format"


class TestEnrollmentEndpoints:
    """Enrollment creation, approval and access control."""

    def test_student_creates_own_pending_enrollment(self, client, student, courses, user_id, seats):
        response = client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id, "STUDENT"))

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["total_units"] == 15
        assert len(body["subjects"]) == 5
        assert seats(courses[0][1].id) == 1

    def test_student_cannot_enroll_someone_else(self, client, catalog, courses, user_id):
        other = catalog.student()

        response = client.post("/api/enrollments/", json=payload(other, courses), headers=auth(user_id, "STUDENT"))

        assert response.status_code == 403

    def test_duplicate_subject_in_request_is_422(self, client, student, courses, user_id):
        data = payload(student, courses)
        data["subjects"].append(data["subjects"][0])

        response = client.post("/api/enrollments/", json=data, headers=auth(user_id))

        assert response.status_code == 422

    def test_malformed_school_year_is_422(self, client, student, courses, user_id):
        data = payload(student, courses)
        data["school_year"] = "2024-2026"

        response = client.post("/api/enrollments/", json=data, headers=auth(user_id))

        assert response.status_code == 422

    def test_schedule_conflict_renders_error_body(self, client, catalog, student, user_id, seats):
        courses = catalog.load(4)
        clash = catalog.course(code="CLASH101", slots=[("Monday", "07:00", "08:00")])

        response = client.post(
            "/api/enrollments/", json=payload(student, courses + [clash]), headers=auth(user_id)
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "SCHEDULE_CONFLICT"
        assert "CLASH101" in body["detail"]
        assert set(body) == {"detail", "code", "context"}
        assert all(seats(offering.id) == 0 for _, offering in courses + [clash])

    def test_unit_load_violation_is_422(self, client, catalog, student, user_id):
        response = client.post("/api/enrollments/", json=payload(student, catalog.load(2)), headers=auth(user_id))

        assert response.status_code == 422
        assert response.json()["code"] == "UNIT_LOAD_INVALID"

    def test_admin_enrollment_is_approved_and_billed(self, client, student, courses, admin, user_id):
        response = client.post("/api/enrollments/", json=payload(student, courses), headers=admin)
        assert response.status_code == 201
        enrollment = response.json()
        assert enrollment["status"] == "APPROVED"
        assert enrollment["enrollment_type"] == "ADMIN"

        invoice = client.get(f"/api/tuitions/enrollment/{enrollment['id']}", headers=auth(user_id))

        assert invoice.status_code == 200
        assert Decimal(invoice.json()["net_amount"]) == Decimal("11875")
        assert invoice.json()["discount_reason"] == "Full Payment Discount"

    def test_approval_flow_and_registration_card(self, client, student, courses, admin, user_id):
        created = client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id)).json()

        assert client.post(f"/api/enrollments/{created['id']}/approve", headers=auth(user_id)).status_code == 403

        approved = client.post(f"/api/enrollments/{created['id']}/approve", headers=admin)
        assert approved.status_code == 200
        assert approved.json()["status"] == "APPROVED"

        card = client.get(f"/api/enrollments/{created['id']}/registration-card", headers=auth(user_id))
        assert card.status_code == 200
        body = card.json()
        assert body["total_units"] == 15
        assert body["student"]["student_number"] == student.student_number
        assert body["academic_period"] == {"school_year": SCHOOL_YEAR, "semester": SEMESTER}
        assert all(len(subject["schedule"]) == 1 for subject in body["subjects"])

    def test_reject_releases_seats(self, client, student, courses, admin, user_id, seats):
        created = client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id)).json()

        response = client.post(
            f"/api/enrollments/{created['id']}/reject", json={"reason": "Incomplete documents"}, headers=admin
        )

        assert response.status_code == 200
        assert response.json()["status"] == "REJECTED"
        assert response.json()["remarks"] == "Incomplete documents"
        assert all(seats(offering.id) == 0 for _, offering in courses)

    def test_approving_rejected_enrollment_is_409(self, client, student, courses, admin, user_id):
        created = client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id)).json()
        client.post(f"/api/enrollments/{created['id']}/reject", json={}, headers=admin)

        response = client.post(f"/api/enrollments/{created['id']}/approve", headers=admin)

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_STATE_TRANSITION"

    def test_student_drops_subject(self, client, student, courses, user_id, seats):
        created = client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id)).json()
        subject, offering = courses[0]

        response = client.post(
            f"/api/enrollments/{created['id']}/drop", json={"subject_id": str(subject.id)}, headers=auth(user_id)
        )

        assert response.status_code == 200
        assert response.json()["total_units"] == 12
        assert seats(offering.id) == 0

    def test_second_enrollment_in_term_is_409(self, client, student, courses, user_id):
        client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id))

        response = client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id))

        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_ENROLLMENT"

    def test_my_enrollments(self, client, student, courses, user_id):
        client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id))

        response = client.get("/api/enrollments/my", headers=auth(user_id))

        assert response.status_code == 200
        assert [e["student_id"] for e in response.json()] == [str(student.id)]

    def test_my_enrollments_without_student_record_is_404(self, client):
        response = client.get("/api/enrollments/my", headers=auth(uuid.uuid4()))

        assert response.status_code == 404

    def test_listing_requires_admin(self, client, student, courses, admin, user_id):
        client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id))

        assert client.get("/api/enrollments/", headers=auth(user_id)).status_code == 403

        response = client.get("/api/enrollments/", params={"status": "pending", "limit": 1}, headers=admin)
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["has_next"] is False

    def test_admin_deletes_enrollment(self, client, student, courses, admin, user_id, seats):
        created = client.post("/api/enrollments/", json=payload(student, courses), headers=auth(user_id)).json()

        response = client.delete(f"/api/enrollments/{created['id']}", headers=admin)

        assert response.status_code == 204
        assert client.get(f"/api/enrollments/{created['id']}", headers=admin).status_code == 404
        assert seats(courses[0][1].id) == 0


class TestTuitionEndpoints:
    """Invoice access and payments."""

    @pytest.fixture
    def invoice(self, client, student, courses, admin):
        enrollment = client.post("/api/enrollments/", json=payload(student, courses), headers=admin).json()
        return client.get(f"/api/tuitions/enrollment/{enrollment['id']}", headers=admin).json()

    def test_accountant_records_payment(self, client, invoice, accountant):
        response = client.post(
            f"/api/tuitions/{invoice['id']}/payments",
            json={"amount": "1000", "method": "CASH", "reference": "OR-0001"},
            headers=accountant,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "PARTIAL"
        assert Decimal(body["balance"]) == Decimal("10875")
        assert len(body["payments"]) == 1

    def test_student_cannot_record_payment(self, client, invoice, user_id):
        response = client.post(f"/api/tuitions/{invoice['id']}/payments", json={"amount": "10"}, headers=auth(user_id))

        assert response.status_code == 403

    def test_overpayment_is_400(self, client, invoice, accountant):
        response = client.post(f"/api/tuitions/{invoice['id']}/payments", json={"amount": "20000"}, headers=accountant)

        assert response.status_code == 400
        assert response.json()["code"] == "EXCEEDS_BALANCE"

    def test_zero_payment_is_422(self, client, invoice, accountant):
        response = client.post(f"/api/tuitions/{invoice['id']}/payments", json={"amount": "0"}, headers=accountant)

        assert response.status_code == 422

    def test_student_sees_only_own_invoices(self, client, invoice, user_id, catalog):
        assert client.get(f"/api/tuitions/{invoice['id']}", headers=auth(user_id)).status_code == 200

        stranger = uuid.uuid4()
        catalog.student(user_id=stranger)
        assert client.get(f"/api/tuitions/{invoice['id']}", headers=auth(stranger)).status_code == 403

    def test_admin_adjusts_discount(self, client, invoice, admin):
        response = client.put(
            f"/api/tuitions/{invoice['id']}", json={"discount": "2500", "discount_reason": "Scholarship"}, headers=admin
        )

        assert response.status_code == 200
        assert Decimal(response.json()["net_amount"]) == Decimal("10000")

    def test_accountant_lists_invoices(self, client, invoice, accountant):
        response = client.get("/api/tuitions/", params={"school_year": SCHOOL_YEAR}, headers=accountant)

        assert response.status_code == 200
        assert [i["id"] for i in response.json()["invoices"]] == [invoice["id"]]

    def test_unknown_invoice_is_404(self, client, admin):
        response = client.get(f"/api/tuitions/{uuid.uuid4()}", headers=admin)

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"


class TestHealth:

    def test_health_reports_database(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"]["status"] == "healthy"
