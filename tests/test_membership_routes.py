from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from shop_assistant.api.routes.membership import compare_versions
from shop_assistant.models.account import UserOperationLog
from shop_assistant.models.membership import (
    Invitation,
    InvitationReward,
    PluginStatus,
    PluginVersion,
    RewardStatus,
    UserPackage,
)
from tests.conftest import create_package, create_user, user_headers


def _publish(db, version: str, is_latest: bool = False, status: PluginStatus = PluginStatus.ACTIVE, days_ago: int = 0):
    plugin = PluginVersion(
        version=version,
        release_date=datetime.now() - timedelta(days=days_ago),
        download_url=f"https://downloads.example.com/plugin-{version}.zip",
        file_name=f"plugin-{version}.zip",
        changelog=f"Release {version}",
        is_latest=is_latest,
        status=status,
    )
    db.add(plugin)
    db.commit()
    return plugin


@pytest.mark.parametrize(
    ("left", "right", "expected"),
    [
        ("1.10.0", "1.9.9", 1),
        ("1.0", "1.0.0", 0),
        ("1.0.1", "1.0.2", -1),
        ("2", "1.99.99", 1),
        ("1.²", "1.0", 0),
    ],
)
def test_compare_versions(left, right, expected):
    assert compare_versions(left, right) == expected


def test_public_packages_only_lists_active(client, db_session, basic_package):
    create_package(db_session, package_type="legacy", is_active=False)

    res = client.get("/api/packages")

    assert res.status_code == 200
    assert [package["packageType"] for package in res.json()["data"]] == ["basic"]


def test_user_packages(client, owner_headers):
    data = client.get("/api/user-packages", headers=owner_headers).json()["data"]

    assert len(data) == 1
    assert data[0]["isActive"] is True
    assert data[0]["package"]["maxBindMall"] == 3


def test_sub_account_sees_parent_packages(client, sub_headers):
    data = client.get("/api/user-packages", headers=sub_headers).json()["data"]

    assert len(data) == 1


def test_invitation_link(client, owner, owner_headers):
    res = client.post("/api/invitations", headers=owner_headers)

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["inviteCode"] == owner.invite_code
    assert data["invitationLink"].endswith(f"/login?invitation_code={owner.invite_code}")


def test_invitations_sent_and_received(client, db_session, owner, owner_headers):
    invitee = create_user(db_session, "invitee")
    db_session.add(Invitation(inviter_id=owner.id, invitee_id=invitee.id))
    db_session.commit()

    sent = client.get("/api/invitations", headers=owner_headers).json()["data"]
    assert sent["total"] == 1
    assert sent["data"][0]["invitee"]["username"] == "invitee"

    received = client.get("/api/invitations", params={"type": "received"}, headers=user_headers(invitee)).json()
    assert received["data"]["data"][0]["inviter"]["username"] == "owner"


def test_operation_logs_are_owner_only(client, owner_headers, sub_headers):
    client.post("/api/invitations", headers=owner_headers)

    logs = client.get("/api/operation-logs", headers=owner_headers).json()["data"]
    assert logs["total"] == 1
    assert logs["data"][0]["operationType"] == "invitation_link_generate"

    assert client.get("/api/operation-logs", headers=sub_headers).status_code == 403


def test_plugin_update_check(client, db_session):
    _publish(db_session, "1.1.0", days_ago=10)
    _publish(db_session, "1.2.0", is_latest=True)

    newer = client.get("/api/plugin-versions", params={"action": "check", "currentVersion": "1.1.5"}).json()["data"]
    assert newer["hasUpdate"] is True
    assert newer["latestVersion"]["version"] == "1.2.0"

    same = client.get("/api/plugin-versions", params={"action": "check", "currentVersion": "1.2"}).json()["data"]
    assert same["hasUpdate"] is False


def test_plugin_update_check_without_release(client, db_session):
    _publish(db_session, "1.0.0", is_latest=True, status=PluginStatus.DEPRECATED)

    res = client.get("/api/plugin-versions", params={"action": "check", "currentVersion": "0.9"})

    assert res.status_code == 404


def test_plugin_version_list(client, db_session):
    _publish(db_session, "1.0.0", days_ago=20)
    _publish(db_session, "1.1.0", days_ago=10, status=PluginStatus.DEPRECATED)
    _publish(db_session, "1.2.0", is_latest=True)

    everything = client.get("/api/plugin-versions").json()["data"]
    assert [item["version"] for item in everything["data"]] == ["1.2.0", "1.1.0", "1.0.0"]

    active = client.get("/api/plugin-versions", params={"status": "active"}).json()["data"]
    assert active["total"] == 2


def _reward(db, inviter, invitee, mall_id: int, status: RewardStatus = RewardStatus.PENDING) -> InvitationReward:
    reward = InvitationReward(
        inviter_id=inviter.id,
        invitee_id=invitee.id,
        mall_id=mall_id,
        mall_name=f"Mall {mall_id}",
        reward_value=Decimal("1"),
        status=status,
        granted_at=datetime.now() if status == RewardStatus.GRANTED else None,
    )
    db.add(reward)
    db.commit()
    return reward


def test_order_package(client, db_session, owner, owner_headers):
    pro = create_package(db_session, package_type="pro", max_bind_mall=10, duration_months=12)

    res = client.post("/api/user-packages", json={"packageId": pro.id}, headers=owner_headers)

    assert res.status_code == 201, res.text
    data = res.json()["data"]
    assert data["packageId"] == pro.id
    assert data["expireTime"].endswith("23:59:59")
    assert data["package"]["packageName"] == "Pro plan"

    logged = db_session.scalars(
        select(UserOperationLog.operation_type).where(UserOperationLog.user_id == owner.id)
    ).all()
    assert logged == ["package_purchase"]

    quota = client.get("/api/malls/quota", headers=owner_headers).json()["data"]
    assert quota["packageQuota"] == 10


def test_order_package_rejections(client, db_session, owner_headers, sub_headers, basic_package):
    retired = create_package(db_session, package_type="legacy", is_active=False)

    inactive = client.post("/api/user-packages", json={"packageId": retired.id}, headers=owner_headers)
    assert inactive.status_code == 400
    assert inactive.json()["message"] == "Package is no longer offered"

    assert client.post("/api/user-packages", json={"packageId": 999}, headers=owner_headers).status_code == 404
    assert client.post("/api/user-packages", json={"packageId": basic_package.id}, headers=sub_headers).status_code == 403
    assert db_session.scalar(select(UserPackage).where(UserPackage.package_id == retired.id)) is None


@pytest.mark.parametrize("path", ["/api/invitations/info", "/api/invitations/user-info"])
def test_invitation_info(client, db_session, owner, owner_headers, path):
    first = create_user(db_session, "friend1")
    second = create_user(db_session, "friend2")
    db_session.add_all(
        [
            Invitation(inviter_id=owner.id, invitee_id=first.id),
            Invitation(inviter_id=owner.id, invitee_id=second.id),
        ]
    )
    db_session.commit()
    _reward(db_session, owner, first, 5001, status=RewardStatus.GRANTED)
    _reward(db_session, owner, second, 5002)

    res = client.get(path, headers=owner_headers)

    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["inviteCode"] == owner.invite_code
    assert data["totalInvitees"] == 2
    assert data["rewardMallCount"] == 1


def test_invitation_rewards_list(client, db_session, owner, owner_headers, sub_headers):
    invitee = create_user(db_session, "friend")
    _reward(db_session, owner, invitee, 5001, status=RewardStatus.GRANTED)
    _reward(db_session, owner, invitee, 5002)

    data = client.get("/api/invitation-rewards", headers=owner_headers).json()["data"]
    assert data["total"] == 2
    assert data["stats"] == {"total": 2, "granted": 1, "pending": 1, "rewardMallCount": 1}
    assert {item["invitee"]["username"] for item in data["data"]} == {"friend"}

    pending = client.get("/api/invitation-rewards", params={"status": "pending"}, headers=owner_headers).json()["data"]
    assert [item["mallId"] for item in pending["data"]] == [5002]

    assert client.get("/api/invitation-rewards", headers=sub_headers).status_code == 403


def test_claim_invitation_reward(client, db_session, owner, owner_headers, stranger):
    invitee = create_user(db_session, "friend")
    reward = _reward(db_session, owner, invitee, 5001)
    foreign = _reward(db_session, stranger, invitee, 5002)

    claimed = client.post("/api/invitation-rewards", json={"rewardId": reward.id}, headers=owner_headers)

    assert claimed.status_code == 200, claimed.text
    assert claimed.json()["data"]["status"] == "granted"
    assert claimed.json()["data"]["grantedAt"] is not None
    quota = client.get("/api/malls/quota", headers=owner_headers).json()["data"]
    assert quota["rewardQuota"] == 1

    again = client.post("/api/invitation-rewards", json={"rewardId": reward.id}, headers=owner_headers)
    assert again.status_code == 404

    other = client.post("/api/invitation-rewards", json={"rewardId": foreign.id}, headers=owner_headers)
    assert other.status_code == 404
    db_session.expire_all()
    assert db_session.get(InvitationReward, foreign.id).status == RewardStatus.PENDING
