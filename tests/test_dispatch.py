from chanrelay.dispatch import Delivery, Dispatcher, queue_multicast, queue_unicast


def test_unicast() -> None:
    out = []
    queue_unicast(out, "c1", "error", {"message": "nope"})
    assert out == [Delivery("c1", "error", {"message": "nope"})]


def test_multicast_inclusive_and_exclusive() -> None:
    out = []
    assert queue_multicast(out, ["c1", "c2", "c3"], "evt", {}) == 3
    assert queue_multicast(out, ["c1", "c2", "c3"], "evt2", {}, exclude="c2") == 2
    assert [(d.connection_id, d.event) for d in out] == [
        ("c1", "evt"),
        ("c2", "evt"),
        ("c3", "evt"),
        ("c1", "evt2"),
        ("c3", "evt2"),
    ]


def test_multicast_never_duplicates_a_recipient() -> None:
    out = []
    queue_multicast(out, ["c1", "c1", "c2"], "evt", {})
    assert [d.connection_id for d in out] == ["c1", "c2"]


def test_deliver_continues_after_failed_send(recorder) -> None:
    def flaky(connection_id, event, payload):
        if connection_id == "bad":
            raise OSError("link down")
        recorder(connection_id, event, payload)

    seen = []
    d = Dispatcher(flaky, on_sent=seen.append)
    out = [Delivery("bad", "e", {}), Delivery("good", "e", {})]

    assert d.deliver(out) == 1
    assert [x.connection_id for x in recorder.sent] == ["good"]
    assert [x.connection_id for x in seen] == ["good"]
