import pytest
from fastapi import HTTPException
from sqlalchemy import select

from shop_assistant.models.assistant import MallState
from shop_assistant.services.mall_scope import (
    MALL_ACCESS_DENIED,
    NO_MALLS_BOUND,
    Account,
    MallScope,
    build_mall_filters,
    build_mall_scope,
    normalize_mall_id,
    resolve_allowed_mall_ids,
    validate_mall_access,
)
from tests.conftest import create_user


def _main_account(user) -> Account:
    return Account(id=user.id, username=user.username, account_type="user", owner_user_id=user.id)


def _sub_account(sub_account) -> Account:
    return Account(
        id=sub_account.id,
        username=sub_account.username,
        account_type="sub_account",
        owner_user_id=sub_account.parent_user_id,
        responsible_malls=tuple(sub_account.responsible_malls),
    )


def test_normalize_mall_id():
    assert normalize_mall_id(1001) == "1001"
    assert normalize_mall_id("  1001 ") == "1001"
    assert normalize_mall_id("   ") is None
    assert normalize_mall_id(None) is None


def test_main_account_sees_all_bindings_in_bind_order(db_session, owner):
    assert resolve_allowed_mall_ids(db_session, _main_account(owner)) == ["1001", "1002"]


def test_sub_account_sees_intersection_with_parent_bindings(db_session, sub_account):
    assert resolve_allowed_mall_ids(db_session, _sub_account(sub_account)) == ["1002"]


def test_scope_without_bindings_is_refused(db_session):
    lonely = create_user(db_session, "lonely")

    with pytest.raises(HTTPException) as exc_info:
        build_mall_scope(db_session, _main_account(lonely))

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == NO_MALLS_BOUND


def test_scope_default_mall_is_first_binding(db_session, owner):
    scope = build_mall_scope(db_session, _main_account(owner))

    assert scope.default_mall_id == "1001"
    assert scope.allows(1002)
    assert not scope.allows("2001")


def test_filters_restrict_rows_to_allowed_malls(db_session, owner):
    for mall_id in ("1001", "1002", "2001"):
        db_session.add(MallState(mall_id=mall_id, mall_name=f"Mall {mall_id}"))
    db_session.commit()
    scope = MallScope(allowed_mall_ids=("1001", "1002"))

    conditions, signature = build_mall_filters(scope, MallState.mall_id, MallState.mall_name)
    rows = db_session.scalars(select(MallState.mall_id).where(*conditions)).all()

    assert sorted(rows) == ["1001", "1002"]
    assert signature == {"allowed": ["1001", "1002"]}


def test_filter_for_foreign_mall_matches_nothing(db_session, owner):
    db_session.add(MallState(mall_id="2001", mall_name="Mall 2001"))
    db_session.commit()
    scope = MallScope(allowed_mall_ids=("1001",))

    conditions, signature = build_mall_filters(scope, MallState.mall_id, MallState.mall_name, "2001")

    assert db_session.scalars(select(MallState).where(*conditions)).all() == []
    assert signature["mall_id"] is None


def test_filter_by_name_is_a_substring_match(db_session, owner):
    db_session.add_all([MallState(mall_id="1001", mall_name="Sunny Shop"), MallState(mall_id="1002", mall_name="Rain")])
    db_session.commit()
    scope = MallScope(allowed_mall_ids=("1001", "1002"))

    conditions, signature = build_mall_filters(
        scope, MallState.mall_id, MallState.mall_name, requested_mall_name=" Sunny "
    )

    assert db_session.scalars(select(MallState.mall_id).where(*conditions)).all() == ["1001"]
    assert signature["mall_name"] == "Sunny"


def test_validate_access_accepts_bound_mall(db_session, owner):
    scope = build_mall_scope(db_session, _main_account(owner))

    validate_mall_access(db_session, scope, "1001")
    validate_mall_access(db_session, scope, mall_name="Mall 1002")


@pytest.mark.parametrize("mall_id", ["2001", "10x1"])
def test_validate_access_refuses_foreign_or_malformed_mall(db_session, owner, stranger, mall_id):
    scope = build_mall_scope(db_session, _main_account(owner))

    with pytest.raises(HTTPException) as exc_info:
        validate_mall_access(db_session, scope, mall_id)

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == MALL_ACCESS_DENIED


def test_validate_access_for_sub_account_outside_responsibility(db_session, sub_account):
    scope = build_mall_scope(db_session, _sub_account(sub_account))

    with pytest.raises(HTTPException):
        validate_mall_access(db_session, scope, "1001")
    validate_mall_access(db_session, scope, "1002")


def test_plugin_scope_only_allows_its_own_mall(db_session):
    scope = MallScope(allowed_mall_ids=("3001",), is_plugin_mode=True)

    validate_mall_access(db_session, scope, "3001")
    with pytest.raises(HTTPException):
        validate_mall_access(db_session, scope, "3002")
