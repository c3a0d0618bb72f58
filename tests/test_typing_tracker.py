from chanrelay.typing_tracker import TypingTracker


def test_set_refresh_and_clear() -> None:
    t = TypingTracker()
    t.set("Ann", "#111111", 1_000)
    t.set("Ann", "#111111", 2_000)
    assert t.snapshot() == {"Ann": {"timestamp": 2_000, "colorTag": "#111111"}}

    assert t.clear("Ann") is True
    assert t.clear("Ann") is False
    assert t.snapshot() == {}


def test_prune_removes_only_stale_entries() -> None:
    t = TypingTracker()
    t.set("Ann", "#1", 0)
    t.set("Bob", "#2", 4_000)

    removed = t.prune(now_ms=6_000, stale_after_s=5.0)

    assert removed == ["Ann"]
    assert "Bob" in t
    assert len(t) == 1


def test_prune_keeps_entries_exactly_at_window() -> None:
    t = TypingTracker()
    t.set("Ann", "#1", 1_000)
    assert t.prune(now_ms=6_000, stale_after_s=5.0) == []
