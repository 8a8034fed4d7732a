"""
Tests: HTTP layer — bearer-token principal, status codes, error payloads.

Requests go through the Flask test client; rows are created directly via
the ORM and committed first so the request session sees them.
"""

import jwt
from flask import Blueprint, Flask

from portal.middleware.rate_limiter import init_rate_limits
from portal.models import db as _db
from portal.models.application import Application
from portal.models.registry import Company


def _create(client, headers, company, facility, activity_type="FRA", title="Boiler upgrade"):
    return client.post(
        "/api/v1/applications",
        json={
            "company_id": company.id,
            "facility_id": facility.id,
            "activity_type": activity_type,
            "title": title,
        },
        headers=headers,
    )


# ── Authentication ───────────────────────────────────────────────────────────


def test_health_is_public(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"


def test_missing_token_is_401(client, company, facility):
    res = _create(client, {}, company, facility)
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"


def test_invalid_token_is_401(client, company, facility):
    res = _create(client, {"Authorization": "Bearer not-a-jwt"}, company, facility)
    assert res.status_code == 401


def test_token_signed_with_wrong_secret_is_401(client, company, facility):
    token = jwt.encode({"sub": "x", "type": "access", "role": "system_admin"}, "wrong", algorithm="HS256")
    res = _create(client, {"Authorization": f"Bearer {token}"}, company, facility)
    assert res.status_code == 401


# ── Applications ─────────────────────────────────────────────────────────────


def test_create_application_returns_allocated_id(client, auth_headers, editor, company, facility):
    res = _create(client, auth_headers(editor), company, facility)

    assert res.status_code == 201
    body = res.get_json()
    assert body["application_id"] == "ACME-001-101"
    assert body["created_by"] == editor.id


def test_viewer_create_is_403(client, auth_headers, viewer, company, facility):
    res = _create(client, auth_headers(viewer), company, facility)

    assert res.status_code == 403
    body = res.get_json()
    assert body["code"] == "ERR_FORBIDDEN"
    assert body["details"]["action"] == "record.create"


def test_create_validation_error_is_422(client, auth_headers, editor, company, facility):
    res = _create(client, auth_headers(editor), company, facility, activity_type="XYZ")
    assert res.status_code == 422
    assert "activity_type" in res.get_json()["details"]


def test_create_missing_field_is_422(client, auth_headers, editor):
    res = client.post("/api/v1/applications", json={"title": "x"}, headers=auth_headers(editor))
    assert res.status_code == 422
    assert res.get_json()["details"] == {"company_id": "missing"}


def test_next_id_preview(client, auth_headers, editor, company, facility):
    res = client.get(
        f"/api/v1/applications/next-id?company_id={company.id}&facility_id={facility.id}&activity_type=EAA",
        headers=auth_headers(editor),
    )
    assert res.status_code == 200
    assert res.get_json() == {"application_id": "ACME-001-201"}


def test_status_endpoint(client, auth_headers, editor, company, facility):
    app_id = _create(client, auth_headers(editor), company, facility).get_json()["id"]

    res = client.get(f"/api/v1/applications/{app_id}/status", headers=auth_headers(editor))

    assert res.status_code == 200
    assert res.get_json()["detailed_status"] == "Draft"


def test_status_unknown_application_is_404(client, auth_headers, editor):
    res = client.get("/api/v1/applications/999/status", headers=auth_headers(editor))
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_submission_flow_updates_detailed_status(client, auth_headers, admin, editor, company, facility):
    headers = auth_headers(editor)
    app_id = _create(client, headers, company, facility).get_json()["id"]

    res = client.post(f"/api/v1/applications/{app_id}/submissions", json={"data": {"kwh": 10}}, headers=headers)
    assert res.status_code == 201
    sub_id = res.get_json()["id"]

    res = client.post(f"/api/v1/applications/{app_id}/submissions/{sub_id}/submit", headers=headers)
    assert res.status_code == 200

    res = client.post(
        f"/api/v1/applications/{app_id}/submissions/{sub_id}/review",
        json={"outcome": "approve"},
        headers=headers,
    )
    assert res.status_code == 403

    res = client.post(
        f"/api/v1/applications/{app_id}/submissions/{sub_id}/review",
        json={"outcome": "approve"},
        headers=auth_headers(admin),
    )
    assert res.status_code == 200

    res = client.get(f"/api/v1/applications/{app_id}/status", headers=headers)
    assert res.get_json()["detailed_status"] == "Approved: FRA"


def test_company_listing(client, auth_headers, editor, company, facility):
    headers = auth_headers(editor)
    _create(client, headers, company, facility)
    _create(client, headers, company, facility, "SEM")

    res = client.get(f"/api/v1/companies/{company.id}/applications", headers=headers)

    assert res.status_code == 200
    body = res.get_json()
    assert body["total"] == 2
    assert [i["application_id"] for i in body["items"]] == ["ACME-001-101", "ACME-001-301"]


# ── Registry ─────────────────────────────────────────────────────────────────


def test_register_company_and_facility(client, auth_headers, admin):
    res = client.post("/api/v1/companies", json={"name": "Acme Energy Services"}, headers=auth_headers(admin))
    assert res.status_code == 201
    company = res.get_json()
    assert company["short_name"] == "ACENSE"

    res = client.post(
        f"/api/v1/companies/{company['id']}/facilities", json={"name": "North"}, headers=auth_headers(admin),
    )
    assert res.status_code == 201
    assert res.get_json()["code"] == "001"


def test_facility_listing_hides_archived(client, auth_headers, editor, company, make_facility):
    make_facility(company, name="North")
    south = make_facility(company, name="South")
    south.mark_archived()
    _db.session.commit()

    url = f"/api/v1/companies/{company.id}/facilities"
    res = client.get(url, headers=auth_headers(editor))
    assert res.status_code == 200
    assert [f["name"] for f in res.get_json()["items"]] == ["North"]

    res = client.get(f"{url}?include_archived=true", headers=auth_headers(editor))
    assert res.get_json()["total"] == 2


# ── Admin archive ────────────────────────────────────────────────────────────


def test_archive_endpoints_are_platform_admin_only(client, auth_headers, editor, company):
    res = client.post(
        "/api/v1/admin/archive/company",
        json={"ids": [company.id], "reason": "dup"},
        headers=auth_headers(editor),
    )
    assert res.status_code == 403
    assert client.get("/api/v1/admin/archive/stats").status_code == 401


def test_archive_restore_and_delete_over_http(client, auth_headers, admin, editor, company, facility):
    headers = auth_headers(admin)
    _create(client, auth_headers(editor), company, facility)

    res = client.post(
        "/api/v1/admin/archive/company",
        json={"ids": [company.id], "reason": "Merged into parent", "include_related": True},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.get_json()["archived_count"] == 3

    res = client.get("/api/v1/admin/archive/stats", headers=headers)
    assert res.get_json() == {"companies": 1, "facilities": 1, "applications": 1, "ghost_identifiers": 1}

    res = client.post("/api/v1/admin/archive/company/delete", json={"ids": [company.id]}, headers=headers)
    assert res.status_code == 409
    body = res.get_json()
    assert body["code"] == "ERR_CONSTRAINT_BLOCKED"
    assert {o["entity_type"] for o in body["details"]["offenders"]} == {"facility", "application"}

    res = client.post(
        "/api/v1/admin/archive/company/delete",
        json={"ids": [company.id], "include_related": True},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.get_json()["deleted_count"] == 3

    _db.session.expire_all()
    assert Company.query.count() == 0
    assert Application.query.count() == 0

    res = client.get("/api/v1/admin/ghost-ids", headers=headers)
    assert [i["application_id"] for i in res.get_json()["items"]] == ["ACME-001-101"]


def test_archive_empty_reason_is_422(client, auth_headers, admin, company):
    res = client.post(
        "/api/v1/admin/archive/company",
        json={"ids": [company.id], "reason": ""},
        headers=auth_headers(admin),
    )
    assert res.status_code == 422


def test_archive_ids_must_be_list(client, auth_headers, admin):
    res = client.post(
        "/api/v1/admin/archive/company", json={"ids": 5, "reason": "x"}, headers=auth_headers(admin),
    )
    assert res.status_code == 422


def test_restore_not_archived_is_404(client, auth_headers, admin, company):
    res = client.post(
        "/api/v1/admin/archive/company/restore", json={"ids": [company.id]}, headers=auth_headers(admin),
    )
    assert res.status_code == 404


def test_constraint_issues_endpoint(client, auth_headers, admin, editor, company, facility):
    _create(client, auth_headers(editor), company, facility)
    client.post(
        "/api/v1/admin/archive/facility",
        json={"ids": [facility.id], "reason": "closed"},
        headers=auth_headers(admin),
    )

    res = client.get("/api/v1/admin/archive/constraint-issues", headers=auth_headers(admin))

    assert res.status_code == 200
    items = res.get_json()["items"]
    assert len(items) == 1
    assert items[0]["references_type"] == "facility"


def test_clear_ghost_ids(client, auth_headers, admin, editor, company, facility):
    app_id = _create(client, auth_headers(editor), company, facility).get_json()["id"]
    client.post(
        "/api/v1/admin/archive/application",
        json={"ids": [app_id], "reason": "withdrawn"},
        headers=auth_headers(admin),
    )

    res = client.delete("/api/v1/admin/ghost-ids/ACME-001-101", headers=auth_headers(admin))
    assert res.get_json() == {"requested": 1, "cleared": 1}

    res = client.post(
        "/api/v1/admin/ghost-ids/clear",
        json={"application_ids": ["ACME-001-101"]},
        headers=auth_headers(admin),
    )
    assert res.get_json() == {"requested": 1, "cleared": 0}


# ── Team ─────────────────────────────────────────────────────────────────────


def test_invite_member_over_http(client, auth_headers, manager, company):
    url = f"/api/v1/team/{company.id}/members"
    res = client.post(url, json={"email": "new@example.com", "permission_level": "editor"}, headers=auth_headers(manager))
    assert res.status_code == 201
    assert res.get_json()["permission_level"] == "editor"

    res = client.post(url, json={"email": "new@example.com"}, headers=auth_headers(manager))
    assert res.status_code == 409


def test_change_permission_over_http(client, auth_headers, manager, company, make_user):
    make_user("member-1", company, "viewer")

    res = client.put(
        "/api/v1/team/members/member-1/permission",
        json={"permission_level": "editor"},
        headers=auth_headers(manager),
    )
    assert res.status_code == 200
    assert res.get_json()["permission_level"] == "editor"

    res = client.put(
        "/api/v1/team/members/manager-1/permission",
        json={"permission_level": "owner"},
        headers=auth_headers(manager),
    )
    assert res.status_code == 403


def test_unknown_route_is_json_404(client):
    res = client.get("/api/v1/nope")
    assert res.status_code == 404
    assert res.get_json()["error"] == "Not found"


# ── Rate limits ──────────────────────────────────────────────────────────────


class _RecordingLimiter:
    def __init__(self):
        self.applied = []

    def limit(self, value):
        def apply(bp):
            self.applied.append((bp.name, value))
            return bp

        return apply


def _limit_target_app(testing=False):
    target = Flask("limits")
    target.config["TESTING"] = testing
    for name in ("applications", "registry", "team", "archive"):
        target.register_blueprint(Blueprint(name, __name__))
    return target


def test_rate_limits_cover_api_blueprints_only():
    limiter = _RecordingLimiter()
    init_rate_limits(_limit_target_app(), limiter)

    assert sorted(limiter.applied) == [
        ("applications", "60/minute"),
        ("archive", "30/minute"),
        ("registry", "60/minute"),
        ("team", "60/minute"),
    ]


def test_rate_limits_skipped_under_testing():
    limiter = _RecordingLimiter()
    init_rate_limits(_limit_target_app(testing=True), limiter)
    assert limiter.applied == []
