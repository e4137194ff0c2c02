# =============================================
# File: tests/test_cache.py
# Purpose: Result cache key scheme, TTLs, expiry/LRU of the in-process backend, failure tolerance
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from app.utils import rcache


def test_key_scheme_per_strategy():
    assert rcache.make_key("t", "trending", 8, user_id="u1") == rcache.make_key("t", "trending", 8, user_id="u2")
    assert rcache.make_key("t", "frequently_bought_together", 8, "u1", "p1") == rcache.make_key(
        "t", "frequently_bought_together", 8, "u2", "p1"
    )
    assert rcache.make_key("t", "frequently_bought_together", 8, "u1", "p1") != rcache.make_key(
        "t", "frequently_bought_together", 8, "u1", "p2"
    )
    assert rcache.make_key("t", "collaborative", 8, "u1") != rcache.make_key("t", "collaborative", 8, "u2")
    assert rcache.make_key("t", "collaborative", 8, "u1") != rcache.make_key("t", "content_based", 8, "u1")
    assert rcache.make_key("t1", "trending", 8) != rcache.make_key("t2", "trending", 8)


def test_key_includes_excluded_context_product():
    assert rcache.make_key("t", "trending", 8, "u1") != rcache.make_key("t", "trending", 8, "u1", "p1")
    assert rcache.make_key("t", "trending", 8, "u1", "p1") != rcache.make_key("t", "trending", 8, "u1", "p2")
    assert rcache.make_key("t", "trending", 8, "u1", "p1") == rcache.make_key("t", "trending", 8, "u2", "p1")
    assert rcache.make_key("t", "collaborative", 8, "u1") != rcache.make_key("t", "collaborative", 8, "u1", "p1")


def test_ttls():
    assert rcache.ttl_for("trending") == 15 * 60
    assert rcache.ttl_for("frequently_bought_together") == 30 * 60
    assert rcache.ttl_for("collaborative") == 5 * 60
    assert rcache.ttl_for("content_based") == 5 * 60


def test_memory_backend_expiry(monkeypatch):
    clock = {"t": 1000.0}
    monkeypatch.setattr(rcache, "_now", lambda: clock["t"])
    b = rcache.MemoryBackend()
    b.set_with_ttl("k", b"v", 60)
    assert b.get("k") == b"v"
    clock["t"] += 61
    assert b.get("k") is None


def test_memory_backend_lru_bound():
    b = rcache.MemoryBackend(max_entries=2)
    b.set_with_ttl("a", b"1", 60)
    b.set_with_ttl("b", b"2", 60)
    b.get("a")  # touch
    b.set_with_ttl("c", b"3", 60)
    assert b.get("b") is None
    assert b.get("a") == b"1" and b.get("c") == b"3"


def test_result_cache_roundtrip_and_disabled():
    cache = rcache.ResultCache(rcache.MemoryBackend())
    cache.set("k", {"items": [1, 2]}, 60)
    assert cache.get("k") == {"items": [1, 2]}

    off = rcache.ResultCache(None)
    off.set("k", {"items": [1]}, 60)
    assert off.get("k") is None
    assert off.enabled is False


def test_corrupt_payload_is_a_miss():
    backend = rcache.MemoryBackend()
    backend.set_with_ttl("k", b"{not json", 60)
    assert rcache.ResultCache(backend).get("k") is None


def test_cache_enabled_flag(monkeypatch):
    monkeypatch.setenv("CACHE_ENABLED", "0")
    assert rcache.get_cache().enabled is False
    monkeypatch.setenv("CACHE_ENABLED", "1")
    assert rcache.get_cache().enabled is True
