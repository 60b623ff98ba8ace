"""Tests for the per-user response cache."""

from tourdesk.calendar.cache import ResponseCache, cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    def test_params_order_independent(self):
        assert cache_key(7, "bookings", {"to": "b", "from": "a"}) == cache_key(7, "bookings", {"from": "a", "to": "b"})

    def test_no_params(self):
        assert cache_key(7, "calendar-events") == "7:calendar-events:"


class TestResponseCache:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = ResponseCache(ttl=60, clock=self.clock)

    def test_hit_and_miss(self):
        self.cache.set("7:bookings:", [1, 2])
        assert self.cache.get("7:bookings:") == [1, 2]
        assert self.cache.get("7:calendar-events:") is None

    def test_expiry(self):
        self.cache.set("7:bookings:", [1])
        self.clock.now += 61
        assert self.cache.get("7:bookings:") is None
        assert len(self.cache) == 0

    def test_values_are_copied(self):
        payload = {"bookings": [1]}
        self.cache.set("k", payload)
        payload["bookings"].append(2)
        self.cache.get("k")["bookings"].append(3)
        assert self.cache.get("k") == {"bookings": [1]}

    def test_invalidate_user_leaves_other_users(self):
        self.cache.set(cache_key(1, "bookings"), "a")
        self.cache.set(cache_key(11, "bookings"), "b")
        assert self.cache.invalidate_user(1) == 1
        assert self.cache.get(cache_key(11, "bookings")) == "b"

    def test_invalidate_selected_endpoints(self):
        self.cache.set(cache_key(1, "bookings"), "a")
        self.cache.set(cache_key(1, "calendar-events", {"from": "x"}), "b")
        self.cache.set(cache_key(1, "other"), "c")
        assert self.cache.invalidate_user(1, ["bookings", "calendar-events"]) == 2
        assert len(self.cache) == 1

    def test_clear(self):
        self.cache.set("k", 1)
        self.cache.clear()
        assert len(self.cache) == 0
