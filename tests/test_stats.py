from chanrelay.stats import StatsManager


def test_snapshot_combines_counters_and_registry(registry) -> None:
    stats = StatsManager(registry)
    registry.join("c1", "Ann", "general", [])
    stats.inc("joins")
    stats.inc("bytes_out", 120)

    snap = stats.snapshot()
    assert snap["counters"]["joins"] == 1
    assert snap["counters"]["bytes_out"] == 120
    assert snap["channels_total"] == 1
    assert snap["sessions_total"] == 1


def test_format_stats_lists_busiest_channels(registry) -> None:
    stats = StatsManager(registry)
    stats.set_start_time()
    registry.join("c1", "Ann", "general", [])
    registry.join("c2", "Bob", "general", [])
    registry.join("c3", "Cid", "random", [])

    text = stats.format_stats()
    assert "channels=2 sessions=3" in text
    assert "top_channels=general:2, random:1" in text
