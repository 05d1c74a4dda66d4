"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Integration tests for the public rewards endpoints, the identity chain
and the user/tenant routers using the FastAPI TestClient.

These tests verify:
- Request validation surfaces as 400 with a readable message
- Auth guards on admin endpoints (401 without a token, 403 without the role)
- Response shapes of the rewards, users and tenants routers
- Auth0 redirect URLs
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest
from conftest import auth_header, make_tenant, make_token, make_user

from t4g.api.deps import get_config
from t4g.api.main import app
from t4g.config import Auth0Tenant, T4GConfig
from t4g.database.models import TenantRole, UserRole


@pytest.fixture
def user_1(db_engine):
    return make_user(db_engine, "user_1")


@pytest.fixture
def admin_token(db_engine):
    make_user(db_engine, "user_admin", role=UserRole.ADMIN)
    return make_token("auth0|user_admin")


@pytest.fixture
def user_token(db_engine, user_1):
    return make_token("auth0|user_1")


@pytest.fixture
def tenant_token(db_engine):
    make_tenant(db_engine, "tenant_1")
    return make_token("auth0|tenant_1", type="tenant")


def _log(client, user_id: str, kind: str = "SCAN", n: int = 1):
    for _ in range(n):
        resp = client.post("/rewards/actions", json={"userId": user_id, "type": kind})
        assert resp.status_code == 201


# ===========================================================================
# Health endpoints
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_rewards_health_has_timestamp(self, client):
        body = client.get("/rewards/health").json()
        assert body["status"] == "healthy"
        assert "timestamp" in body


# ===========================================================================
# Actions
# ===========================================================================
class TestLogAction:
    def test_logs_action_and_awards_coin(self, client, user_1):
        resp = client.post(
            "/rewards/actions",
            json={"userId": "user_1", "type": "SCAN", "metadata": {"qr": "abc"}},
        )
        assert resp.status_code == 201
        assert resp.json() == {
            "success": True,
            "message": "Action SCAN logged successfully",
            "coinsAwarded": 1,
        }

    @pytest.mark.parametrize("user_id", ["", "   ", None, 42])
    def test_invalid_user_id_is_400(self, client, user_id):
        resp = client.post("/rewards/actions", json={"userId": user_id, "type": "SCAN"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Valid userId is required"

    def test_invalid_type_is_400(self, client, user_1):
        resp = client.post("/rewards/actions", json={"userId": "user_1", "type": "JUMP"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid action type"

    def test_unknown_user_is_404(self, client):
        resp = client.post("/rewards/actions", json={"userId": "ghost", "type": "SCAN"})
        assert resp.status_code == 404

    def test_summary_reflects_actions(self, client, user_1):
        _log(client, "user_1", "SCAN", 2)
        _log(client, "user_1", "GAME")
        body = client.get("/rewards/users/user_1/summary").json()
        assert body["totalCoins"] == 3
        assert body["totalScore"] == 3
        assert body["position"] == 1
        assert len(body["recentActions"]) == 3

    def test_eligibility_and_score(self, client, user_1):
        _log(client, "user_1", "SHARE")
        eligibility = client.get("/rewards/users/user_1/eligibility").json()
        assert eligibility["giftEligible"] is False
        assert eligibility["weeklyProgress"]["shares"] == 1
        assert client.get("/rewards/users/user_1/score").json() == {
            "totalScore": 1, "position": 1,
        }

    def test_eligible_lists(self, client, user_1):
        _log(client, "user_1", "SCAN", 3)
        _log(client, "user_1", "SHARE")
        _log(client, "user_1", "GAME", 3)
        assert client.get("/rewards/eligibility/challenges").json() == {
            "eligibleUsers": ["user_1"], "count": 1,
        }
        assert client.get("/rewards/eligibility/gifts").json() == {
            "eligibleUsers": [], "count": 0,
        }


# ===========================================================================
# Leaderboard
# ===========================================================================
class TestLeaderboard:
    def test_page_and_stats(self, client, db_engine):
        make_user(db_engine, "user_a")
        make_user(db_engine, "user_b")
        _log(client, "user_a")
        _log(client, "user_b", n=2)

        page = client.get("/rewards/leaderboard", params={"limit": 10}).json()
        assert [(e["userId"], e["position"]) for e in page] == [("user_b", 1), ("user_a", 2)]
        assert client.get("/rewards/leaderboard/stats").json() == {
            "totalUsers": 2, "averageScore": 1.5, "topScore": 2,
        }

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"offset": -1}])
    def test_out_of_range_paging_is_400(self, client, params):
        assert client.get("/rewards/leaderboard", params=params).status_code == 400

    def test_non_numeric_limit_is_400(self, client):
        resp = client.get("/rewards/leaderboard", params={"limit": "ten"})
        assert resp.status_code == 400
        assert resp.json()["detail"].startswith("query.limit")

    def test_context_range_is_bounded(self, client, user_1):
        url = "/rewards/leaderboard/users/user_1/context"
        assert client.get(url, params={"range": 21}).status_code == 400
        assert client.get(url, params={"range": 0}).status_code == 400
        assert client.get(url, params={"range": 20}).status_code == 200

    def test_top_by_action(self, client, user_1):
        _log(client, "user_1", "GAME", 2)
        body = client.get("/rewards/leaderboard/actions/GAME").json()
        assert body == [
            {"rank": 1, "userId": "user_1", "name": "User 1", "actionType": "GAME", "count": 2},
        ]

    def test_top_by_action_rejects_bad_type_and_limit(self, client):
        assert client.get("/rewards/leaderboard/actions/JUMP").status_code == 400
        resp = client.get("/rewards/leaderboard/actions/SCAN", params={"limit": 51})
        assert resp.status_code == 400


# ===========================================================================
# Auth guards — admin endpoints reject unauthenticated / unprivileged callers
# ===========================================================================
class TestAdminAuthGuards:
    ADMIN_POST_ENDPOINTS = [
        "/rewards/admin/reset/weekly",
        "/rewards/admin/reset/monthly",
        "/rewards/admin/reset/leaderboard",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_rejects_no_auth(self, client, endpoint):
        assert client.post(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_rejects_invalid_token(self, client, endpoint):
        resp = client.post(endpoint, headers=auth_header("garbage"))
        assert resp.status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_rejects_plain_user(self, client, user_token, endpoint):
        resp = client.post(endpoint, headers=auth_header(user_token))
        assert resp.status_code == 403

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_rejects_tenant_manager(self, client, tenant_token, endpoint):
        resp = client.post(endpoint, headers=auth_header(tenant_token))
        assert resp.status_code == 403

    def test_admin_resets_leaderboard(self, client, admin_token, user_1):
        _log(client, "user_1", n=2)
        resp = client.post("/rewards/admin/reset/leaderboard", headers=auth_header(admin_token))
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert client.get("/rewards/leaderboard").json() == []

    def test_admin_weekly_reset_then_audit(self, client, admin_token, user_1):
        _log(client, "user_1")
        resp = client.post("/rewards/admin/reset/weekly", headers=auth_header(admin_token))
        assert resp.status_code == 200
        audit = client.get("/rewards/admin/audit", headers=auth_header(admin_token)).json()
        assert audit[0]["actionType"] == "RESET_WEEKLY"
        assert audit[0]["actorId"] == "user_admin"

    def test_tenant_admin_may_reset(self, client, db_engine):
        make_tenant(db_engine, "tenant_admin", role=TenantRole.TENANT_ADMIN)
        token = make_token("auth0|tenant_admin", type="tenant")
        resp = client.post("/rewards/admin/reset/monthly", headers=auth_header(token))
        assert resp.status_code == 200


# ===========================================================================
# Auth0 redirects and /auth/me
# ===========================================================================
class TestAuth:
    @pytest.fixture
    def configured(self, client):
        app.dependency_overrides[get_config] = lambda: T4GConfig(
            auth0_user=Auth0Tenant(
                domain="t4g.eu.auth0.com",
                client_id="abc123",
                callback_url="http://localhost:3000/api/auth/callback/user",
                frontend_url="https://t4g.fun",
            )
        )
        return client

    def test_login_redirects_to_authorize(self, configured):
        resp = configured.get(
            "/auth/user/login", params={"returnTo": "/profile"}, follow_redirects=False
        )
        assert resp.status_code == 307
        url = urlparse(resp.headers["location"])
        assert url.netloc == "t4g.eu.auth0.com"
        assert url.path == "/authorize"
        query = parse_qs(url.query)
        assert query["client_id"] == ["abc123"]
        assert query["scope"] == ["openid profile email"]
        assert query["state"] == ["/profile"]

    def test_logout_returns_to_frontend(self, configured):
        resp = configured.get("/auth/user/logout", follow_redirects=False)
        url = urlparse(resp.headers["location"])
        assert url.path == "/v2/logout"
        assert parse_qs(url.query)["returnTo"] == ["https://t4g.fun"]

    def test_unconfigured_side_is_500(self, configured):
        assert configured.get("/auth/tenant/login", follow_redirects=False).status_code == 500

    def test_unknown_side_is_404(self, configured):
        assert configured.get("/auth/robot/login", follow_redirects=False).status_code == 404

    def test_me_returns_identity(self, client):
        token = make_token("auth0|xyz", type="tenant", name="Org Admin")
        resp = client.get("/auth/me", headers=auth_header(token))
        assert resp.status_code == 200
        assert resp.json() == {
            "id": "auth0|xyz",
            "email": "auth0|xyz@example.com",
            "name": "Org Admin",
            "type": "tenant",
        }

    def test_me_rejects_no_auth(self, client):
        assert client.get("/auth/me").status_code == 401


# ===========================================================================
# Users
# ===========================================================================
class TestUsers:
    def test_register_then_profile(self, client):
        token = make_token("auth0|new", name="New Person")
        resp = client.post("/users/register", json={}, headers=auth_header(token))
        assert resp.status_code == 201
        body = resp.json()
        assert body["auth0Id"] == "auth0|new"
        assert body["name"] == "New Person"
        assert body["lastLoginAt"] is not None

        again = client.post("/users/register", json={}, headers=auth_header(token))
        assert again.status_code == 409

        profile = client.get("/users/profile", headers=auth_header(token)).json()
        assert profile["id"] == body["id"]

    def test_profile_requires_registration(self, client):
        resp = client.get("/users/profile", headers=auth_header(make_token("auth0|nobody")))
        assert resp.status_code == 404

    def test_tenant_token_cannot_register_as_user(self, client):
        token = make_token("auth0|org", type="tenant")
        assert client.post("/users/register", json={}, headers=auth_header(token)).status_code == 403

    def test_update_profile_merges_preferences(self, client, user_token):
        resp = client.put(
            "/users/profile",
            json={"name": "Renamed", "preferences": {"theme": "dark"}},
            headers=auth_header(user_token),
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Renamed"
        assert resp.json()["preferences"]["theme"] == "dark"

    def test_other_profiles_need_manage_users(self, client, db_engine, user_token):
        make_user(db_engine, "user_2")
        assert client.get("/users/user_2", headers=auth_header(user_token)).status_code == 403
        assert client.get("/users/user_1", headers=auth_header(user_token)).status_code == 200

    def test_admin_lists_and_deactivates(self, client, admin_token, user_token):
        headers = auth_header(admin_token)
        assert {u["id"] for u in client.get("/users", headers=headers).json()} == {
            "user_1", "user_admin",
        }
        resp = client.post("/users/user_1/deactivate", headers=headers)
        assert resp.json()["isActive"] is False
        # the deactivated account can no longer act
        assert client.get("/users/profile", headers=auth_header(user_token)).status_code == 403

    def test_plain_user_cannot_list(self, client, user_token):
        assert client.get("/users", headers=auth_header(user_token)).status_code == 403


# ===========================================================================
# Tenants
# ===========================================================================
class TestTenants:
    CHALLENGE = {
        "title": "Scan week",
        "type": "weekly",
        "difficulty": "easy",
        "points": 10,
        "startDate": "2026-10-18T00:00:00Z",
        "endDate": "2026-10-25T00:00:00Z",
    }

    def test_register_tenant(self, client):
        token = make_token("auth0|org_staff", type="tenant")
        resp = client.post(
            "/tenants/register",
            json={"organizationId": "org_7", "organizationName": "Org Seven"},
            headers=auth_header(token),
        )
        assert resp.status_code == 201
        assert resp.json()["role"] == "tenant_user"
        assert resp.json()["organizationId"] == "org_7"

    def test_user_token_is_refused(self, client, user_token):
        assert client.get("/tenants/gifts", headers=auth_header(user_token)).status_code == 403

    def test_gift_crud(self, client, tenant_token):
        headers = auth_header(tenant_token)
        created = client.post(
            "/tenants/gifts", json={"name": "Coffee", "category": "food", "value": 5},
            headers=headers,
        )
        assert created.status_code == 201
        gift_id = created.json()["id"]

        updated = client.put(f"/tenants/gifts/{gift_id}", json={"value": 8}, headers=headers)
        assert updated.json()["value"] == 8

        deleted = client.delete(f"/tenants/gifts/{gift_id}", headers=headers)
        assert deleted.json() == {"message": "Gift deleted successfully"}
        assert client.get("/tenants/gifts", headers=headers).json() == []

    def test_missing_gift_field_is_400(self, client, tenant_token):
        resp = client.post(
            "/tenants/gifts", json={"name": "Coffee"}, headers=auth_header(tenant_token)
        )
        assert resp.status_code == 400

    def test_challenge_dates_are_validated(self, client, tenant_token):
        body = {**self.CHALLENGE, "endDate": "2026-10-01T00:00:00Z"}
        resp = client.post("/tenants/challenges", json=body, headers=auth_header(tenant_token))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "endDate must be after startDate"

    def test_completion_updates_score(self, client, tenant_token, user_1):
        headers = auth_header(tenant_token)
        challenge_id = client.post(
            "/tenants/challenges", json=self.CHALLENGE, headers=headers
        ).json()["id"]
        _log(client, "user_1")

        resp = client.post(
            f"/tenants/challenges/{challenge_id}/completions",
            json={"userId": "user_1"},
            headers=headers,
        )
        assert resp.status_code == 201
        assert resp.json()["totalScore"] == 11

        again = client.post(
            f"/tenants/challenges/{challenge_id}/completions",
            json={"userId": "user_1"},
            headers=headers,
        )
        assert again.status_code == 409
        completions = client.get(
            f"/tenants/challenges/{challenge_id}/completions", headers=headers
        ).json()
        assert [c["userId"] for c in completions] == ["user_1"]

    def test_deleting_completed_challenge_rescores(self, client, tenant_token, user_1):
        headers = auth_header(tenant_token)
        challenge_id = client.post(
            "/tenants/challenges", json=self.CHALLENGE, headers=headers
        ).json()["id"]
        _log(client, "user_1")
        client.post(
            f"/tenants/challenges/{challenge_id}/completions",
            json={"userId": "user_1"},
            headers=headers,
        )

        resp = client.delete(f"/tenants/challenges/{challenge_id}", headers=headers)
        assert resp.json() == {"message": "Challenge deleted successfully"}
        assert client.get("/rewards/users/user_1/score").json() == {
            "totalScore": 1, "position": 1,
        }

    def test_dashboard(self, client, tenant_token):
        headers = auth_header(tenant_token)
        client.post("/tenants/gifts", json={"name": "Tea", "category": "food"}, headers=headers)
        body = client.get("/tenants/dashboard/analytics", headers=headers).json()
        assert body["stats"]["totalGifts"] == 1
        assert body["organizationId"] == "org_1"
