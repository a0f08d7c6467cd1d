from dataclasses import replace
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from shop_assistant.api import deps
from shop_assistant.models.assistant import CostSettlement, PendingSettlementDetail, PromotionSalesDetail
from shop_assistant.services.plugin_auth import PluginAuthError
from tests.conftest import create_user, user_headers

YESTERDAY = date.today() - timedelta(days=1)


def _save_arrival(client, headers, mall_id="1001", sku_id="S1", volume=2, amount="30", accounting_day=YESTERDAY):
    return client.post(
        "/api/assistant/arrival-data/save",
        json={
            "data": [
                {
                    "mallId": mall_id,
                    "mallName": f"Mall {mall_id}",
                    "regionCode": "US",
                    "regionName": "United States",
                    "skuId": sku_id,
                    "skuCode": f"CODE-{sku_id}",
                    "goodsName": "Ceramic mug",
                    "salesVolume": volume,
                    "incomeAmount": amount,
                    "accountingTime": f"{accounting_day.isoformat()}T10:00:00",
                }
            ]
        },
        headers=headers,
    )


def _save_pending(client, headers, mall_id="1001", items=None, region_code="US"):
    if items is None:
        items = [
            {
                "mallId": mall_id,
                "mallName": f"Mall {mall_id}",
                "skuId": "S1",
                "goodsName": "Ceramic mug",
                "salesVolume": 4,
                "salesAmount": "100",
                "currency": "USD",
            }
        ]
    return client.post(
        "/api/assistant/pending-settlement/save",
        json={"mallId": mall_id, "regionCode": region_code, "data": items},
        headers=headers,
    )


def _save_sales(client, headers, sku_id="S9", mall_id="1001"):
    return client.post(
        "/api/assistant/sales-details/save",
        json={
            "mallId": mall_id,
            "data": [
                {
                    "mallId": mall_id,
                    "mallName": f"Mall {mall_id}",
                    "skuId": sku_id,
                    "declaredPrice": "10",
                    "todaySalesVolume": 5,
                    "todayPromotionSalesVolume": 2,
                    "todayPromotionSalesAmount": "16",
                }
            ],
        },
        headers=headers,
    )


def _set_cost(client, headers, sku_id, cost_price, product_name="Mug"):
    return client.post(
        "/api/assistant/cost-settlement/update_cost_price",
        json={"skuId": sku_id, "costPrice": cost_price, "productName": product_name},
        headers=headers,
    )


# ---------------------------------------------------------------------------
# Scope resolution
# ---------------------------------------------------------------------------


def test_permission_lists_owner_malls(client, owner_headers):
    res = client.get("/api/assistant/mall_state/permission", headers=owner_headers)

    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["allowedMallIds"] == ["1001", "1002"]
    assert data["isPluginMode"] is False
    assert data["accountType"] == "user"


def test_permission_for_sub_account_is_narrowed(client, sub_headers):
    res = client.get("/api/assistant/mall_state/permission", headers=sub_headers)

    assert res.json()["data"]["allowedMallIds"] == ["1002"]


def test_account_without_malls_is_refused(client, db_session):
    lonely = create_user(db_session, "lonely")

    res = client.get("/api/assistant/mall_state/permission", headers=user_headers(lonely))

    assert res.status_code == 403
    assert res.json()["message"] == "No malls are bound to this account"


def test_anonymous_request_is_refused(client, db_session):
    res = client.get("/api/assistant/cost-settlement/query")

    assert res.status_code == 401


def test_plugin_mode_scopes_to_requested_mall(client, db_session, monkeypatch):
    monkeypatch.setattr(deps, "verify_storefront_cookies", lambda cookies: None)

    res = client.get(
        "/api/assistant/mall_state/permission",
        params={"end": "plugin", "temuCookies": "session=abc", "mall_id": "3001"},
    )

    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["allowedMallIds"] == ["3001"]
    assert data["isPluginMode"] is True
    assert data["accountId"] is None


def test_plugin_mode_rejected_by_storefront(client, db_session, monkeypatch):
    def reject(cookies):
        raise PluginAuthError("Storefront authentication failed: 401")

    monkeypatch.setattr(deps, "verify_storefront_cookies", reject)

    res = client.get(
        "/api/assistant/mall_state/permission",
        params={"end": "plugin", "temuCookies": "session=abc", "mall_id": "3001"},
    )

    assert res.status_code == 403
    assert res.json()["message"] == "Storefront authentication failed: 401"


def test_plugin_mode_can_be_switched_off(client, db_session, monkeypatch):
    calls = []
    monkeypatch.setattr(deps, "settings", replace(deps.settings, plugin_mode_enabled=False))
    monkeypatch.setattr(deps, "verify_storefront_cookies", calls.append)

    res = client.get(
        "/api/assistant/mall_state/permission",
        params={"end": "plugin", "temuCookies": "session=abc", "mall_id": "3001"},
    )

    assert res.status_code == 403
    assert res.json()["message"] == "Plugin access is disabled"
    assert calls == []


# ---------------------------------------------------------------------------
# Mall state
# ---------------------------------------------------------------------------


def test_mall_state_save_and_query(client, owner_headers):
    res = client.post(
        "/api/assistant/mall_state/save",
        json={"mallId": 1001, "mallName": "Mall 1001", "stateType": "collect", "state": "done"},
        headers=owner_headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["data"]["lastCollectTime"]

    again = client.post(
        "/api/assistant/mall_state/save",
        json={"mallId": "1001", "mallName": "Mall 1001", "state": "running"},
        headers=owner_headers,
    )
    assert again.status_code == 200

    page = client.get("/api/assistant/mall_state/query", headers=owner_headers).json()["data"]
    assert page["total"] == 1
    assert page["data"][0]["state"] == "running"


def test_mall_state_save_for_foreign_mall_is_forbidden(client, owner_headers, stranger):
    res = client.post(
        "/api/assistant/mall_state/save",
        json={"mallId": "2001", "mallName": "Mall 2001"},
        headers=owner_headers,
    )

    assert res.status_code == 403


def test_query_for_foreign_mall_returns_nothing(client, owner_headers, stranger):
    stranger_headers = user_headers(stranger)
    client.post(
        "/api/assistant/mall_state/save",
        json={"mallId": "2001", "mallName": "Mall 2001"},
        headers=stranger_headers,
    )

    res = client.get("/api/assistant/mall_state/query", params={"mallId": "2001"}, headers=owner_headers)

    assert res.status_code == 200
    assert res.json()["data"]["total"] == 0


# ---------------------------------------------------------------------------
# Arrival data
# ---------------------------------------------------------------------------


def test_arrival_save_and_query(client, owner_headers):
    res = _save_arrival(client, owner_headers)
    assert res.status_code == 200, res.text
    assert res.json()["data"] == 1

    page = client.get(
        "/api/assistant/arrival-data/query",
        params={"mall_id": "1001", "accounting_time_start": YESTERDAY.isoformat()},
        headers=owner_headers,
    ).json()["data"]

    assert page["total"] == 1
    row = page["data"][0]
    assert row["salesAmount"] == 30.0
    assert row["d30ArrivalAveragePrice"] == 15.0
    assert row["costPrice"] is None


def test_arrival_query_filters_by_sku_list(client, owner_headers):
    _save_arrival(client, owner_headers, sku_id="S1")
    _save_arrival(client, owner_headers, sku_id="S2")
    _save_arrival(client, owner_headers, sku_id="S3")

    page = client.get(
        "/api/assistant/arrival-data/query",
        params={"sku_id": "S1, S3"},
        headers=owner_headers,
    ).json()["data"]

    assert sorted(row["skuId"] for row in page["data"]) == ["S1", "S3"]


def test_arrival_save_for_foreign_mall_is_forbidden(client, owner_headers, stranger):
    res = _save_arrival(client, owner_headers, mall_id="2001")

    assert res.status_code == 403


def test_arrival_update_range_when_current(client, owner_headers):
    _save_arrival(client, owner_headers)

    res = client.post("/api/assistant/arrival-data/isUpdated", json={"mallId": "1001"}, headers=owner_headers)

    assert res.json()["data"] == []


def test_arrival_update_range_without_data_covers_window(client, owner_headers):
    res = client.post("/api/assistant/arrival-data/isUpdated", json={"mallId": "1002"}, headers=owner_headers)

    begin, end = res.json()["data"]
    assert end == YESTERDAY.isoformat()
    assert begin == (YESTERDAY - timedelta(days=29)).isoformat()


def test_arrival_update_range_resumes_after_latest_day(client, owner_headers):
    _save_arrival(client, owner_headers, accounting_day=date.today() - timedelta(days=4))

    res = client.post("/api/assistant/arrival-data/isUpdated", json={"mallId": "1001"}, headers=owner_headers)

    assert res.json()["data"] == [(date.today() - timedelta(days=3)).isoformat(), YESTERDAY.isoformat()]


# ---------------------------------------------------------------------------
# Pending settlement
# ---------------------------------------------------------------------------


def test_pending_save_replaces_region_rows(client, db_session, owner_headers):
    assert _save_pending(client, owner_headers).status_code == 200
    res = _save_pending(client, owner_headers)

    assert res.json()["data"] == 1
    rows = db_session.scalars(select(PendingSettlementDetail)).all()
    assert len(rows) == 1
    assert rows[0].region_code == "US"


def test_pending_save_rejects_rows_from_other_mall(client, owner_headers):
    items = [{"mallId": "1002", "mallName": "Mall 1002", "skuId": "S1", "salesVolume": 1, "salesAmount": "5"}]

    res = _save_pending(client, owner_headers, items=items)

    assert res.status_code == 400


def test_pending_query_adds_average_price(client, owner_headers):
    _save_pending(client, owner_headers)

    page = client.get(
        "/api/assistant/pending-settlement/query",
        params={"mallId": "1001", "skuId": "S1"},
        headers=owner_headers,
    ).json()["data"]

    assert page["data"][0]["pendingAveragePrice"] == 25.0


def test_pending_freshness(client, owner_headers):
    url = "/api/assistant/pending-settlement/isUpdated"
    assert client.get(url, headers=owner_headers).json()["data"] is False

    _save_pending(client, owner_headers)

    assert client.get(url, params={"mallId": "1001"}, headers=owner_headers).json()["data"] is True
    assert client.get(url, params={"mallId": "1001", "regionCode": "EU"}, headers=owner_headers).json()["data"] is False


def test_pending_freshness_for_foreign_mall_is_forbidden(client, owner_headers, stranger):
    res = client.get("/api/assistant/pending-settlement/isUpdated", params={"mallId": "2001"}, headers=owner_headers)

    assert res.status_code == 403


# ---------------------------------------------------------------------------
# Cost settlement
# ---------------------------------------------------------------------------


def test_pending_sync_aggregates_in_cny(client, owner_headers):
    _save_pending(client, owner_headers)

    res = client.post(
        "/api/assistant/cost-settlement/update_pending",
        json={"mallId": "1001", "skuId": "S1"},
        headers=owner_headers,
    )
    assert res.json()["data"] == {"updated": 0, "created": 1, "skipped": 0}

    row = client.get(
        "/api/assistant/cost-settlement/query", params={"skuId": "S1"}, headers=owner_headers
    ).json()["data"]["data"][0]
    assert row["pendingSalesVolume"] == 4
    assert row["pendingSalesAmount"] == 710.0
    assert row["pendingAveragePrice"] == 177.5
    assert row["pendingGrossProfit"] is None


def test_pending_sync_without_rows_is_a_no_op(client, owner_headers):
    res = client.post(
        "/api/assistant/cost-settlement/update_pending",
        json={"mallId": "1001", "skuId": "missing"},
        headers=owner_headers,
    )

    assert res.json()["data"] == {"updated": 0, "created": 0, "skipped": 0}


def test_cost_price_update_recomputes_profit(client, owner_headers):
    _save_pending(client, owner_headers)
    client.post(
        "/api/assistant/cost-settlement/update_pending",
        json={"mallId": "1001", "skuId": "S1"},
        headers=owner_headers,
    )

    res = _set_cost(client, owner_headers, "S1", "100")

    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["productName"] == "Mug"
    assert data["costPrice"] == 100.0
    # (177.5 - 100 - 0.1) - 177.5 * 0.025 - 100.1 * 0.01 = 71.9615 per unit
    assert data["pendingGrossProfit"] == 287.85
    assert data["pendingProfitRate"] == pytest.approx(0.719625, abs=1e-4)


def test_cost_price_update_for_unknown_sku(client, owner_headers):
    res = _set_cost(client, owner_headers, "ghost", "10")

    assert res.status_code == 404


def test_cost_price_update_rejects_non_positive_price(client, owner_headers):
    res = _set_cost(client, owner_headers, "S1", "0")

    assert res.status_code == 422


def test_arrival_sync_groups_by_sku(client, owner_headers):
    _save_arrival(client, owner_headers, sku_id="S1", volume=2, amount="30")
    _save_arrival(client, owner_headers, sku_id="S1", volume=1, amount="15", accounting_day=YESTERDAY - timedelta(days=2))
    _save_arrival(client, owner_headers, sku_id="S2", volume=1, amount="9")
    _save_arrival(client, owner_headers, sku_id="S3", volume=1, amount="9", accounting_day=date.today())

    res = client.post("/api/assistant/cost-settlement/update_arrival", headers=owner_headers)

    assert res.json()["data"] == {"updated": 0, "created": 2, "skipped": 0}
    rows = {
        row["skuId"]: row
        for row in client.get("/api/assistant/cost-settlement/query", headers=owner_headers).json()["data"]["data"]
    }
    assert set(rows) == {"S1", "S2"}
    assert rows["S1"]["d30ArrivalSalesVolume"] == 3
    assert rows["S1"]["d30ArrivalSalesAmount"] == 45.0
    assert rows["S1"]["d30ArrivalAveragePrice"] == 15.0


def test_arrival_sync_skips_sku_sold_from_two_malls(client, owner_headers):
    _save_arrival(client, owner_headers, mall_id="1001", sku_id="S1", volume=2, amount="30")
    _save_arrival(client, owner_headers, mall_id="1002", sku_id="S1", volume=5, amount="50")
    _save_arrival(client, owner_headers, mall_id="1002", sku_id="S2", volume=1, amount="9")

    res = client.post("/api/assistant/cost-settlement/update_arrival", headers=owner_headers)

    assert res.json()["data"] == {"updated": 0, "created": 1, "skipped": 1}
    rows = client.get("/api/assistant/cost-settlement/query", headers=owner_headers).json()["data"]["data"]
    assert [row["skuId"] for row in rows] == ["S2"]


def test_arrival_sync_keeps_existing_row_on_its_mall(client, owner_headers):
    _save_pending(client, owner_headers, mall_id="1001")
    client.post(
        "/api/assistant/cost-settlement/update_pending",
        json={"mallId": "1001", "skuId": "S1"},
        headers=owner_headers,
    )
    _save_arrival(client, owner_headers, mall_id="1001", sku_id="S1", volume=2, amount="30")
    _save_arrival(client, owner_headers, mall_id="1002", sku_id="S1", volume=5, amount="50")

    res = client.post("/api/assistant/cost-settlement/update_arrival", headers=owner_headers)

    assert res.json()["data"] == {"updated": 1, "created": 0, "skipped": 0}
    row = client.get(
        "/api/assistant/cost-settlement/query", params={"skuId": "S1"}, headers=owner_headers
    ).json()["data"]["data"][0]
    assert row["mallId"] == "1001"
    assert row["d30ArrivalSalesVolume"] == 2
    assert row["d30ArrivalSalesAmount"] == 30.0


def test_arrival_sync_leaves_other_tenants_sku_alone(client, db_session, owner_headers, stranger):
    stranger_headers = user_headers(stranger)
    _save_sales(client, owner_headers, sku_id="X")
    _save_arrival(client, stranger_headers, mall_id="2001", sku_id="X", volume=3, amount="27")
    _save_arrival(client, stranger_headers, mall_id="2001", sku_id="Y", volume=1, amount="9")

    res = client.post("/api/assistant/cost-settlement/update_arrival", headers=stranger_headers)

    assert res.status_code == 200, res.text
    assert res.json()["data"] == {"updated": 0, "created": 1, "skipped": 1}
    owned = dict(db_session.execute(select(CostSettlement.sku_id, CostSettlement.mall_id)).all())
    assert owned == {"X": "1001", "Y": "2001"}


def test_pending_sync_refuses_other_tenants_sku(client, owner_headers, stranger):
    stranger_headers = user_headers(stranger)
    _save_sales(client, owner_headers, sku_id="S1")
    _save_pending(client, stranger_headers, mall_id="2001")

    res = client.post(
        "/api/assistant/cost-settlement/update_pending",
        json={"mallId": "2001", "skuId": "S1"},
        headers=stranger_headers,
    )

    assert res.status_code == 409


def test_mall_settlement_summary(client, owner_headers):
    _save_arrival(client, owner_headers, sku_id="S1", volume=2, amount="30")
    _save_pending(client, owner_headers)
    client.post(
        "/api/assistant/cost-settlement/update_pending",
        json={"mallId": "1001", "skuId": "S1"},
        headers=owner_headers,
    )
    client.post("/api/assistant/cost-settlement/update_arrival", headers=owner_headers)
    _set_cost(client, owner_headers, "S1", "100")

    res = client.get("/api/assistant/cost-settlement/query_mall", params={"mallId": "1001"}, headers=owner_headers)

    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["pendingSalesVolume"] == 4
    assert data["pendingCostPrice"] == 400.0
    assert data["d30ArrivalSalesVolume"] == 2
    assert data["d30ArrivalGrossProfit"] == -170.0
    assert data["d30ArrivalGrossLossProfit"] == -170.0
    assert data["d30ArrivalProfitRate"] == "-85.00%"


def test_mall_settlement_summary_without_mall_id(client, owner_headers):
    res = client.get("/api/assistant/cost-settlement/query_mall", headers=owner_headers)

    assert res.status_code == 200
    assert res.json()["data"] is None


def test_cost_query_filters_by_cost_status(client, owner_headers):
    _save_sales(client, owner_headers, sku_id="S8")
    _save_sales(client, owner_headers, sku_id="S9")
    _set_cost(client, owner_headers, "S9", "8")

    def skus(cost_status):
        page = client.get(
            "/api/assistant/cost-settlement/query",
            params={"costStatus": cost_status},
            headers=owner_headers,
        ).json()["data"]
        return [row["skuId"] for row in page["data"]]

    assert skus("completed") == ["S9"]
    assert skus("incomplete") == ["S8"]


def test_cost_query_cache_is_invalidated_by_writes(client, owner_headers):
    _save_sales(client, owner_headers, sku_id="S9")
    url = "/api/assistant/cost-settlement/query"
    before = client.get(url, headers=owner_headers).json()["data"]["data"][0]
    assert before["costPrice"] is None

    _set_cost(client, owner_headers, "S9", "8")

    after = client.get(url, headers=owner_headers).json()["data"]["data"][0]
    assert after["costPrice"] == 8.0


def test_sub_account_cannot_touch_other_malls_cost(client, owner_headers, sub_headers):
    _save_sales(client, owner_headers, sku_id="S9")

    res = _set_cost(client, sub_headers, "S9", "8")

    assert res.status_code == 404


# ---------------------------------------------------------------------------
# Promotion sales
# ---------------------------------------------------------------------------


def test_sales_save_creates_placeholder_cost_row(client, db_session, owner_headers):
    res = _save_sales(client, owner_headers)

    assert res.status_code == 200, res.text
    cost_row = db_session.scalar(select(CostSettlement).where(CostSettlement.sku_id == "S9"))
    assert cost_row is not None
    assert cost_row.cost_price is None

    sales_row = db_session.scalar(select(PromotionSalesDetail).where(PromotionSalesDetail.sku_id == "S9"))
    assert float(sales_row.today_sales_amount) == 46.0
    assert float(sales_row.today_average_price) == 9.2
    assert sales_row.today_gross_profit is None


def test_sales_save_uses_cost_price_once_known(client, owner_headers):
    _save_sales(client, owner_headers)
    _set_cost(client, owner_headers, "S9", "8")
    _save_sales(client, owner_headers)

    page = client.get("/api/assistant/sales-details/query", params={"skuId": "S9"}, headers=owner_headers).json()
    row = page["data"]["data"][0]
    assert row["productName"] == "Mug"
    assert row["todayGrossProfit"] == 6.0
    assert row["todayProfitRate"] == 0.15

    summary = client.get(
        "/api/assistant/sales-details/query_mall", params={"mall_id": "1001"}, headers=owner_headers
    ).json()["data"]
    assert summary["mallTodaySalesVolume"] == 5
    assert summary["mallTodayPromotionSalesVolume"] == 2
    assert summary["mallTodayGrossProfit"] == 6.0
    assert summary["mallTodayProfitRate"] == "15.00%"


def test_sales_save_drops_rows_from_previous_days(client, db_session, owner_headers):
    db_session.add(
        PromotionSalesDetail(
            mall_id="1001",
            mall_name="Mall 1001",
            sku_id="OLD",
            updated_time=datetime.now() - timedelta(days=2),
        )
    )
    db_session.commit()

    _save_sales(client, owner_headers)

    db_session.expire_all()
    skus = db_session.scalars(select(PromotionSalesDetail.sku_id)).all()
    assert skus == ["S9"]


def test_sales_summary_requires_mall_id(client, owner_headers):
    res = client.get("/api/assistant/sales-details/query_mall", headers=owner_headers)

    assert res.status_code == 400


def test_sales_save_refuses_sku_of_another_tenant(client, db_session, owner_headers, stranger):
    stranger_headers = user_headers(stranger)
    assert _save_sales(client, stranger_headers, sku_id="SHARED", mall_id="2001").status_code == 200

    res = _save_sales(client, owner_headers, sku_id="SHARED")

    assert res.status_code == 409
    assert "SHARED" in res.json()["message"]
    db_session.expire_all()
    sales_row = db_session.scalar(select(PromotionSalesDetail).where(PromotionSalesDetail.sku_id == "SHARED"))
    assert (sales_row.mall_id, sales_row.mall_name) == ("2001", "Mall 2001")
    page = client.get("/api/assistant/sales-details/query", headers=stranger_headers).json()["data"]
    assert page["total"] == 1


def test_sales_save_moves_sku_between_own_malls(client, db_session, owner_headers):
    _save_sales(client, owner_headers, sku_id="S9", mall_id="1001")

    res = _save_sales(client, owner_headers, sku_id="S9", mall_id="1002")

    assert res.status_code == 200, res.text
    db_session.expire_all()
    rows = db_session.scalars(select(PromotionSalesDetail.mall_id)).all()
    assert rows == ["1002"]
