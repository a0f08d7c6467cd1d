import pytest

from shop_assistant.core import cache as cache_module
from shop_assistant.core.cache import CACHE_PREFIX, TTLCache, make_query_cache_key


@pytest.fixture
def clock(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(cache_module.time, "monotonic", lambda: now[0])
    return now


def test_entries_expire_after_ttl(clock):
    cache = TTLCache(default_ttl=10)
    cache.set("a", 1)
    cache.set("b", 2, ttl=60)

    clock[0] += 11

    assert cache.get("a") is None
    assert cache.get("b") == 2


def test_missing_key_returns_none(clock):
    assert TTLCache().get("nope") is None


def test_delete_reports_whether_key_existed(clock):
    cache = TTLCache()
    cache.set("a", 1)

    assert cache.delete("a") is True
    assert cache.delete("a") is False


def test_invalidate_by_glob_pattern(clock):
    cache = TTLCache()
    cache.set("api_cache:optimized_query:cost_settlement:1", 1)
    cache.set("api_cache:optimized_query:cost_settlement:2", 2)
    cache.set("api_cache:optimized_query:mall_state:1", 3)

    removed = cache.invalidate("api_cache:optimized_query:cost_settlement:*")

    assert removed == 2
    assert len(cache) == 1
    assert cache.get("api_cache:optimized_query:mall_state:1") == 3


def test_invalidate_without_pattern_clears_everything(clock):
    cache = TTLCache()
    cache.set("a", 1)
    cache.set("b", 2)

    assert cache.invalidate() == 2
    assert len(cache) == 0


def test_purge_expired_only_drops_stale_entries(clock):
    cache = TTLCache(default_ttl=5)
    cache.set("short", 1)
    cache.set("long", 2, ttl=50)

    clock[0] += 6

    assert cache.purge_expired() == 1
    assert len(cache) == 1


def test_query_cache_key_ignores_param_order():
    first = make_query_cache_key("optimized_query:mall_state", {"a": 1, "b": [1, 2]})
    second = make_query_cache_key("optimized_query:mall_state", {"b": [1, 2], "a": 1})
    other = make_query_cache_key("optimized_query:mall_state", {"a": 2, "b": [1, 2]})

    assert first == second
    assert first != other
    assert first.startswith(f"{CACHE_PREFIX}optimized_query:mall_state:")
