import pytest

from chanrelay.constants import (
    EV_CHANNEL_INFO,
    EV_ERROR,
    EV_GET_USERS,
    EV_JOIN,
    EV_LEAVE,
    EV_LEFT_CHANNEL,
    EV_NEW_MESSAGE,
    EV_SEND_MESSAGE,
    EV_TYPING,
    EV_USER_LEFT,
    EV_USER_TYPING,
    EV_USERS_LIST,
    K_V,
)
from chanrelay.emotes import StaticEmoteCatalog
from chanrelay.envelope import make_envelope, pack
from chanrelay.ratelimit import RateLimiter
from chanrelay.router import EventRouter


@pytest.fixture
def router(registry, dispatcher) -> EventRouter:
    return EventRouter(
        registry,
        dispatcher,
        catalog=StaticEmoteCatalog(["kappa"]),
        limiter=RateLimiter(1000),
    )


def _send(router, conn, event, body=None) -> None:
    router.on_packet(conn, pack(make_envelope(event, body=body)))


def test_join_and_message_over_the_wire(router, recorder) -> None:
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    _send(router, "c2", EV_JOIN, {"displayName": "Bob", "channelName": "general"})
    recorder.clear()

    _send(router, "c1", EV_SEND_MESSAGE, {"body": "hello"})

    assert len(recorder.to("c1", EV_NEW_MESSAGE)) == 1
    assert len(recorder.to("c2", EV_NEW_MESSAGE)) == 1
    assert recorder.to("c1", EV_NEW_MESSAGE) == recorder.to("c2", EV_NEW_MESSAGE)
    assert router.stats.counters()["messages"] == 1


def test_validation_error_goes_only_to_offender(router, recorder) -> None:
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    recorder.clear()

    _send(router, "c2", EV_JOIN, {"displayName": "x", "channelName": "general"})

    assert [d.connection_id for d in recorder.sent] == ["c2"]
    err = recorder.to("c2", EV_ERROR)[0]
    assert err["code"] == "TooShort"
    assert "message" in err


def test_name_taken_reported(router, recorder, registry) -> None:
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    recorder.clear()

    _send(router, "c2", EV_JOIN, {"displayName": "ANN", "channelName": "General"})

    assert recorder.events_for("c1") == []
    assert recorder.to("c2", EV_ERROR)[0]["code"] == "NameTaken"
    assert registry.session_for("c2") is None


def test_message_before_join(router, recorder) -> None:
    _send(router, "c1", EV_SEND_MESSAGE, {"body": "hello"})
    assert recorder.to("c1", EV_ERROR)[0]["code"] == "NotInChannel"


def test_typing_before_join_is_ignored(router, recorder) -> None:
    _send(router, "c1", EV_TYPING, {"isTyping": True})
    assert recorder.sent == []


def test_typing_snapshot_over_the_wire(router, recorder) -> None:
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    _send(router, "c2", EV_JOIN, {"displayName": "Bob", "channelName": "general"})
    recorder.clear()

    _send(router, "c1", EV_TYPING, {"isTyping": True})

    for conn in ("c1", "c2"):
        (snap,) = recorder.to(conn, EV_USER_TYPING)
        assert set(snap["typingUsers"]) == {"Ann"}


def test_typing_flag_must_be_a_real_boolean(router, recorder, registry) -> None:
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    _send(router, "c1", EV_TYPING, {"isTyping": True})
    assert set(registry.typing_in("general")) == {"Ann"}

    _send(router, "c1", EV_TYPING, {"isTyping": "false"})
    assert registry.typing_in("general") == {}

    _send(router, "c1", EV_TYPING, {"isTyping": 1})
    assert registry.typing_in("general") == {}


def test_too_many_emotes_rejected(router, recorder, registry) -> None:
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    recorder.clear()

    _send(router, "c1", EV_SEND_MESSAGE, {"body": " ".join([":kappa:"] * 11)})
    assert recorder.to("c1", EV_ERROR)[0]["code"] == "TooManyTokens"

    # Tokens outside the catalog do not count.
    recorder.clear()
    _send(router, "c1", EV_SEND_MESSAGE, {"body": " ".join([":other:"] * 11)})
    assert len(recorder.to("c1", EV_NEW_MESSAGE)) == 1
    assert len(registry.history_of("general")) == 1


def test_get_users(router, recorder) -> None:
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    recorder.clear()

    _send(router, "c1", EV_GET_USERS)

    (users,) = recorder.to("c1", EV_USERS_LIST)
    assert [m["displayName"] for m in users["members"]] == ["Ann"]


def test_explicit_leave(router, recorder, registry) -> None:
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    _send(router, "c2", EV_JOIN, {"displayName": "Bob", "channelName": "general"})
    recorder.clear()

    _send(router, "c1", EV_LEAVE)

    assert recorder.to("c1", EV_LEFT_CHANNEL) == [{"channelName": "general"}]
    assert recorder.to("c2", EV_USER_LEFT)[0]["count"] == 1
    assert registry.session_for("c1") is None

    recorder.clear()
    _send(router, "c1", EV_LEAVE)
    assert recorder.to("c1", EV_ERROR)[0]["code"] == "NotInChannel"


def test_disconnect_leaves_channel(router, recorder, registry) -> None:
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    _send(router, "c2", EV_JOIN, {"displayName": "Bob", "channelName": "general"})
    recorder.clear()

    router.on_disconnect("c1")

    assert recorder.events_for("c1") == []
    assert recorder.events_for("c2") == [EV_USER_LEFT, EV_USER_TYPING, EV_CHANNEL_INFO]
    assert registry.session_for("c1") is None


def test_disconnect_without_session_is_quiet(router, recorder) -> None:
    router.on_disconnect("c1")
    assert recorder.sent == []


def test_bad_packet(router, recorder) -> None:
    router.on_packet("c1", b"\xff\x00 not cbor")
    assert recorder.to("c1", EV_ERROR)[0]["code"] == "BadMessage"

    recorder.clear()
    env = make_envelope(EV_JOIN, body={"displayName": "Ann", "channelName": "x"})
    env[K_V] = 99
    router.on_packet("c1", pack(env))
    assert recorder.to("c1", EV_ERROR)[0]["code"] == "BadMessage"
    assert router.stats.counters()["pkts_bad"] == 2


def test_unknown_event(router, recorder) -> None:
    _send(router, "c1", "dance")
    assert recorder.to("c1", EV_ERROR)[0]["code"] == "UnknownEvent"


def test_rate_limited(registry, dispatcher, recorder) -> None:
    router = EventRouter(registry, dispatcher, limiter=RateLimiter(2, clock=lambda: 0.0))
    _send(router, "c1", EV_JOIN, {"displayName": "Ann", "channelName": "general"})
    _send(router, "c1", EV_GET_USERS)
    recorder.clear()

    _send(router, "c1", EV_GET_USERS)

    assert recorder.to("c1", EV_ERROR)[0]["code"] == "RateLimited"
    assert recorder.to("c1", EV_USERS_LIST) == []
    assert router.stats.counters()["rate_limited"] == 1
