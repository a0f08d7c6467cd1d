from datetime import datetime, timedelta

from sqlalchemy import select

from shop_assistant.models.membership import MembershipPackage, PluginVersion
from tests.conftest import PASSWORD, admin_headers, user_headers

PACKAGE_PAYLOAD = {
    "packageName": "Pro",
    "packageType": "pro",
    "originalPrice": "199.00",
    "durationMonths": 12,
    "maxBindMall": 10,
}


def _plugin_payload(version: str, **overrides) -> dict:
    payload = {
        "version": version,
        "releaseDate": datetime.now().replace(microsecond=0).isoformat(),
        "downloadUrl": f"https://downloads.example.com/plugin-{version}.zip",
        "changelog": "Bug fixes",
    }
    payload.update(overrides)
    return payload


def test_admin_login_sets_cookie(client, db_session, super_admin):
    res = client.post("/api/admin/login", json={"username": "root", "password": PASSWORD})

    assert res.status_code == 200, res.text
    assert res.json()["data"]["admin"]["role"] == "super_admin"
    assert "admin_token=" in res.headers["set-cookie"]

    profile = client.get("/api/admin/profile")
    assert profile.status_code == 200
    assert profile.json()["data"]["lastLoginIp"] == "testclient"


def test_admin_login_with_wrong_password(client, super_admin):
    res = client.post("/api/admin/login", json={"username": "root", "password": "nope12345"})

    assert res.status_code == 401


def test_admin_logout(client, super_admin):
    client.post("/api/admin/login", json={"username": "root", "password": PASSWORD})

    client.post("/api/admin/logout")

    assert client.get("/api/admin/profile").status_code == 401


def test_user_token_is_not_an_admin_token(client, owner):
    res = client.get("/api/admin/profile", headers=user_headers(owner))

    assert res.status_code == 401


def test_dashboard_stats(client, regular_admin, owner, sub_account, stranger):
    res = client.get("/api/admin/dashboard/stats", headers=admin_headers(regular_admin))

    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["totalUsers"] == 2
    assert data["activeUsers"] == 2
    assert data["totalSubAccounts"] == 1
    assert data["totalMallBindings"] == 3
    assert data["activeUserPackages"] == 2
    assert data["latestPluginVersion"] is None


def test_dashboard_activities(client, regular_admin, owner_headers):
    client.post("/api/invitations", headers=owner_headers)

    data = client.get("/api/admin/dashboard/activities", headers=admin_headers(regular_admin)).json()["data"]

    assert [log["operationType"] for log in data] == ["invitation_link_generate"]


def test_package_writes_need_super_admin(client, regular_admin):
    res = client.post("/api/admin/packages", json=PACKAGE_PAYLOAD, headers=admin_headers(regular_admin))

    assert res.status_code == 403


def test_package_lifecycle(client, db_session, super_admin):
    headers = admin_headers(super_admin)

    created = client.post("/api/admin/packages", json=PACKAGE_PAYLOAD, headers=headers)
    assert created.status_code == 201, created.text
    package_id = created.json()["data"]["id"]

    updated = client.put(
        f"/api/admin/packages/{package_id}",
        json={"maxBindMall": 20, "packageDesc": None},
        headers=headers,
    )
    assert updated.json()["data"]["maxBindMall"] == 20

    listed = client.get("/api/admin/packages", params={"isActive": True}, headers=headers).json()["data"]
    assert [package["packageName"] for package in listed] == ["Pro"]

    deleted = client.delete(f"/api/admin/packages/{package_id}", headers=headers)
    assert deleted.status_code == 200
    db_session.expire_all()
    assert db_session.get(MembershipPackage, package_id) is None


def test_package_discount_window_is_validated(client, super_admin, basic_package):
    headers = admin_headers(super_admin)
    start = datetime(2026, 11, 1)

    invalid_create = client.post(
        "/api/admin/packages",
        json={
            **PACKAGE_PAYLOAD,
            "discountStartTime": start.isoformat(),
            "discountEndTime": (start - timedelta(days=1)).isoformat(),
        },
        headers=headers,
    )
    assert invalid_create.status_code == 422

    client.put(
        f"/api/admin/packages/{basic_package.id}",
        json={"discountStartTime": start.isoformat()},
        headers=headers,
    )
    invalid_update = client.put(
        f"/api/admin/packages/{basic_package.id}",
        json={"discountEndTime": (start - timedelta(days=1)).isoformat()},
        headers=headers,
    )
    assert invalid_update.status_code == 400


def test_package_in_use_cannot_be_deleted(client, super_admin, owner, basic_package):
    res = client.delete(f"/api/admin/packages/{basic_package.id}", headers=admin_headers(super_admin))

    assert res.status_code == 400


def test_unknown_package(client, super_admin):
    res = client.put("/api/admin/packages/999", json={"maxBindMall": 1}, headers=admin_headers(super_admin))

    assert res.status_code == 404


def test_publishing_latest_plugin_demotes_previous(client, db_session, regular_admin):
    headers = admin_headers(regular_admin)

    first = client.post("/api/admin/plugins", json=_plugin_payload("1.0.0"), headers=headers)
    second = client.post("/api/admin/plugins", json=_plugin_payload("1.1.0"), headers=headers)

    assert first.status_code == 201, first.text
    assert second.status_code == 201, second.text
    db_session.expire_all()
    latest = db_session.scalars(select(PluginVersion.version).where(PluginVersion.is_latest.is_(True))).all()
    assert latest == ["1.1.0"]

    stats = client.get("/api/admin/dashboard/stats", headers=headers).json()["data"]
    assert stats["latestPluginVersion"] == "1.1.0"


def test_duplicate_plugin_version(client, regular_admin):
    headers = admin_headers(regular_admin)
    client.post("/api/admin/plugins", json=_plugin_payload("1.0.0"), headers=headers)

    res = client.post("/api/admin/plugins", json=_plugin_payload("1.0.0"), headers=headers)

    assert res.status_code == 400


def test_plugin_version_must_be_numeric(client, regular_admin):
    res = client.post("/api/admin/plugins", json=_plugin_payload("v1-beta"), headers=admin_headers(regular_admin))

    assert res.status_code == 422


def test_update_and_delete_plugin(client, db_session, regular_admin):
    headers = admin_headers(regular_admin)
    old_id = client.post("/api/admin/plugins", json=_plugin_payload("1.0.0"), headers=headers).json()["data"]["id"]
    client.post("/api/admin/plugins", json=_plugin_payload("1.1.0"), headers=headers)

    promoted = client.put(
        f"/api/admin/plugins/{old_id}",
        json={"isLatest": True, "status": "deprecated"},
        headers=headers,
    )
    assert promoted.status_code == 200, promoted.text
    assert promoted.json()["data"]["status"] == "deprecated"

    page = client.get("/api/admin/plugins", headers=headers).json()["data"]
    latest = {item["version"]: item["isLatest"] for item in page["data"]}
    assert latest == {"1.0.0": True, "1.1.0": False}

    assert client.delete(f"/api/admin/plugins/{old_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/admin/plugins/{old_id}", headers=headers).status_code == 404
