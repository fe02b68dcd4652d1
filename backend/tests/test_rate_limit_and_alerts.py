import logging

from app.utils.alerting import FailureAlertTracker
from app.utils.rate_limit import SlidingWindowRateLimiter, sender_key


def test_rate_limiter_prunes_stale_buckets_on_interval(monkeypatch):
    # Force prune on every call for deterministic behavior.
    rl = SlidingWindowRateLimiter(max_buckets=10_000, prune_interval_seconds=1)

    t = {"now": 1000.0}

    def fake_monotonic():
        return t["now"]

    monkeypatch.setattr("app.utils.rate_limit.time.monotonic", fake_monotonic)

    for i in range(200):
        ok, _ = rl.allow(f"whatsapp:sender:{i}", limit=1, window_seconds=60)
        assert ok is True

    # Advance beyond window + prune interval and hit a new key to trigger prune.
    t["now"] = 1000.0 + 120.0
    ok, _ = rl.allow("whatsapp:sender:new", limit=1, window_seconds=60)
    assert ok is True

    ok, _ = rl.allow("whatsapp:sender:0", limit=1, window_seconds=60)
    assert ok is True


def test_rate_limiter_blocks_within_window(monkeypatch):
    rl = SlidingWindowRateLimiter()
    monkeypatch.setattr("app.utils.rate_limit.time.monotonic", lambda: 50.0)

    assert rl.allow("k", limit=2, window_seconds=60)[0] is True
    assert rl.allow("k", limit=2, window_seconds=60)[0] is True
    allowed, in_window = rl.allow("k", limit=2, window_seconds=60)
    assert allowed is False
    assert in_window == 2


def test_alert_logged_at_threshold(caplog):
    tracker = FailureAlertTracker(window_seconds=3600, thresholds={"MEDIA_FETCH_FAILED": 3})

    with caplog.at_level(logging.WARNING, logger="app.utils.alerting"):
        counts = [tracker.record("MEDIA_FETCH_FAILED", {"media_id": "m"}) for _ in range(3)]

    assert counts == [1, 2, 3]
    assert sum("ALERT failure=MEDIA_FETCH_FAILED" in r.getMessage() for r in caplog.records) == 1
    assert tracker.count("MEDIA_FETCH_FAILED") == 3


def test_untracked_action_is_ignored():
    tracker = FailureAlertTracker(window_seconds=60, thresholds={})
    assert tracker.record("SOMETHING_ELSE") == 0
    assert tracker.count("SOMETHING_ELSE") == 0


def test_allow_sender_uses_per_sender_buckets(monkeypatch):
    rl = SlidingWindowRateLimiter()
    monkeypatch.setattr("app.utils.rate_limit.time.monotonic", lambda: 10.0)

    assert rl.allow_sender("5511999990001", 1) is True
    assert rl.allow_sender("5511999990001", 1) is False
    assert rl.allow_sender("5511999990002", 1) is True
    assert sender_key("5511999990001") == "whatsapp:sender:5511999990001"
