from datetime import datetime, timedelta, timezone

from conftest import make_request, user_headers
from promo_engine.models.promotion_code import PromotionCode


def generate(client, admin_headers, **overrides):
    response = client.post("/admin/promotion-codes", json=make_request(**overrides), headers=admin_headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_generate_codes(client, admin_headers):
    """Test generating a batch of codes"""
    data = generate(client, admin_headers, count=3)
    assert len(data["codes"]) == 3
    assert len(data["code_ids"]) == 3
    assert all(len(code) == 8 for code in data["codes"])


def test_generate_requires_admin_role(client):
    response = client.post("/admin/promotion-codes", json=make_request(), headers=user_headers("u1"))
    assert response.status_code == 403
    assert response.json()["error"]["detail"] == "Admin role required"

    response = client.post("/admin/promotion-codes", json=make_request())
    assert response.status_code == 401


def test_admin_role_is_normalized(client):
    headers = {"X-User-Id": "admin-1", "X-User-Role": "  Admin "}
    response = client.post("/admin/promotion-codes", json=make_request(), headers=headers)
    assert response.status_code == 201


def test_generate_count_bounds(client, admin_headers):
    for count in (0, 101):
        response = client.post("/admin/promotion-codes", json=make_request(count=count), headers=admin_headers)
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["status_code"] == 422
        assert any("count" in item["loc"] for item in error["detail"])


def test_generate_rejects_bad_requests(client, admin_headers):
    now = datetime.now(timezone.utc)
    bad_requests = [
        make_request(max_uses=0),
        make_request(max_uses_per_user=0),
        make_request(description="   "),
        make_request(benefit={"plan_id": "voca_unlimited", "is_permanent": False}),
        make_request(benefit={"type": "discount", "plan_id": "voca_unlimited", "is_permanent": True}),
        make_request(event_period={"start_date": now.isoformat(), "end_date": (now - timedelta(days=1)).isoformat()}),
    ]
    for body in bad_requests:
        response = client.post("/admin/promotion-codes", json=body, headers=admin_headers)
        assert response.status_code == 422, body


def test_list_and_get_codes(client, admin_headers):
    created = generate(client, admin_headers, count=2, max_uses=-1)

    response = client.get("/admin/promotion-codes", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert {c["code"] for c in data} == set(created["codes"])
    first = data[0]
    assert first["status"] == "active"
    assert first["effective_status"] == "active"
    assert first["current_uses"] == 0
    assert first["max_uses"] == -1
    assert first["benefit"]["plan_id"] == "voca_unlimited"
    assert first["created_by"] == "admin-1"
    assert "integrity_tag" not in first

    code = created["codes"][0]
    response = client.get(f"/admin/promotion-codes/{code.lower()}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["code"] == code

    response = client.get("/admin/promotion-codes/ZZZZZZZZ", headers=admin_headers)
    assert response.status_code == 404


def test_list_filters_on_effective_status(client, admin_headers):
    now = datetime.now(timezone.utc)
    live = generate(client, admin_headers)["codes"][0]
    expired = generate(client, admin_headers, event_period={
        "start_date": (now - timedelta(days=5)).isoformat(),
        "end_date": (now - timedelta(days=1)).isoformat(),
    })["codes"][0]
    retired = generate(client, admin_headers)["codes"][0]
    client.post(f"/admin/promotion-codes/{retired}/deactivate", headers=admin_headers)

    def listed(status):
        response = client.get("/admin/promotion-codes", params={"status": status}, headers=admin_headers)
        assert response.status_code == 200
        return [c["code"] for c in response.json()]

    assert listed("active") == [live]
    assert listed("expired") == [expired]
    assert listed("inactive") == [retired]


def test_deactivate_code(client, admin_headers):
    code = generate(client, admin_headers)["codes"][0]

    response = client.post(f"/admin/promotion-codes/{code}/deactivate", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "inactive"
    assert response.json()["effective_status"] == "inactive"

    # idempotent
    response = client.post(f"/admin/promotion-codes/{code}/deactivate", headers=admin_headers)
    assert response.status_code == 200

    response = client.post("/promotion-codes/validate", json={"code": code}, headers=user_headers("u1"))
    assert response.json()["error_code"] == "CODE_NOT_FOUND"

    response = client.post("/admin/promotion-codes/ZZZZZZZZ/deactivate", headers=admin_headers)
    assert response.status_code == 404


def test_validate_code(client, admin_headers):
    code = generate(client, admin_headers)["codes"][0]
    response = client.post("/promotion-codes/validate", json={"code": f" {code.lower()} "}, headers=user_headers("u1"))
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["promotion_code"]["code"] == code
    assert data["error_code"] is None


def test_validate_invalid_format(client):
    response = client.post("/promotion-codes/validate", json={"code": "ABC"}, headers=user_headers("u1"))
    assert response.status_code == 200
    assert response.json() == {
        "valid": False,
        "error_code": "INVALID_FORMAT",
        "message": "Invalid code format",
        "promotion_code": None,
    }


def test_overlong_code_is_invalid_format(client):
    code = "A" * 65
    response = client.post("/promotion-codes/validate", json={"code": code}, headers=user_headers("u1"))
    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["error_code"] == "INVALID_FORMAT"

    response = client.post("/promotion-codes/redeem", json={"code": code * 10}, headers=user_headers("u1"))
    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["error_code"] == "INVALID_FORMAT"


def test_malformed_body_uses_error_envelope(client):
    response = client.post("/promotion-codes/validate", json={}, headers=user_headers("u1"))
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["status_code"] == 422
    assert error["detail"][0]["loc"] == ["body", "code"]


def test_validate_requires_user(client):
    response = client.post("/promotion-codes/validate", json={"code": "ABCD2345"})
    assert response.status_code == 401


def test_forged_code_looks_like_unknown_code(client, admin_headers):
    from conftest import TestingSessionLocal

    code = generate(client, admin_headers)["codes"][0]
    session = TestingSessionLocal()
    try:
        promo = session.query(PromotionCode).filter_by(code=code).one()
        promo.integrity_tag = "0" * 64
        session.commit()
    finally:
        session.close()

    forged = client.post("/promotion-codes/redeem", json={"code": code}, headers=user_headers("u1")).json()
    unknown = client.post("/promotion-codes/redeem", json={"code": "ZZZZ2345"}, headers=user_headers("u2")).json()
    assert forged == unknown
    assert forged["error_code"] == "CODE_NOT_FOUND"


def test_validation_rate_limited_after_five_attempts(client):
    for _ in range(5):
        response = client.post("/promotion-codes/validate", json={"code": "ZZZZ2345"}, headers=user_headers("u1"))
        assert response.json()["error_code"] == "CODE_NOT_FOUND"

    response = client.post("/promotion-codes/validate", json={"code": "ZZZZ2345"}, headers=user_headers("u1"))
    assert response.json()["error_code"] == "RATE_LIMIT_EXCEEDED"

    # other users are unaffected
    response = client.post("/promotion-codes/validate", json={"code": "ZZZZ2345"}, headers=user_headers("u2"))
    assert response.json()["error_code"] == "CODE_NOT_FOUND"


def test_redeem_and_subscription_view(client, admin_headers):
    code = generate(client, admin_headers)["codes"][0]

    response = client.get("/users/me/subscription", headers=user_headers("u1"))
    assert response.status_code == 200
    assert response.json()["plan_id"] == "free"
    assert response.json()["redeemed_codes"] == []

    response = client.post("/promotion-codes/redeem", json={"code": code}, headers=user_headers("u1"))
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["benefit"] == {
        "type": "subscription_upgrade",
        "plan_id": "voca_unlimited",
        "is_permanent": False,
        "duration_days": 30,
    }
    assert data["expires_at"] is not None

    response = client.get("/users/me/subscription", headers=user_headers("u1"))
    sub = response.json()
    assert sub["plan_id"] == "voca_unlimited"
    assert sub["activated_by"] == "promotion"
    assert sub["promotion_code"] == code
    assert [r["code"] for r in sub["redeemed_codes"]] == [code]
    assert sub["redeemed_codes"][0]["benefit_received"] == "voca_unlimited subscription for 30 days"


def test_redeem_scenario_with_shared_and_per_user_caps(client, admin_headers):
    codes = generate(client, admin_headers, count=3, max_uses=2, max_uses_per_user=1)["codes"]
    code = codes[0]

    def redeem(user_id):
        return client.post("/promotion-codes/redeem", json={"code": code}, headers=user_headers(user_id)).json()

    def current_uses():
        response = client.get(f"/admin/promotion-codes/{code}", headers=admin_headers)
        return response.json()["current_uses"]

    assert redeem("user-a")["success"] is True
    assert current_uses() == 1

    again = redeem("user-a")
    assert again["success"] is False
    assert again["error_code"] == "ALREADY_REDEEMED"

    assert redeem("user-b")["success"] is True
    assert current_uses() == 2

    late = redeem("user-c")
    assert late["success"] is False
    assert late["error_code"] == "USAGE_LIMIT_REACHED"
    assert current_uses() == 2

    # the other codes in the batch are untouched
    for other in codes[1:]:
        response = client.get(f"/admin/promotion-codes/{other}", headers=admin_headers)
        assert response.json()["current_uses"] == 0


def test_default_test_database_lives_in_temp_dir():
    import os
    import tempfile

    from conftest import DEFAULT_TEST_DATABASE_URL

    path = DEFAULT_TEST_DATABASE_URL[len("sqlite:///"):]
    assert os.path.dirname(os.path.dirname(path)) == os.path.abspath(tempfile.gettempdir())
