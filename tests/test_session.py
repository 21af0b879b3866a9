import pytest

from linechat.errors import InvalidHandshake, NameInUse, TransportFailure
from linechat.session import ChatSession


def test_join_notifies_everyone_but_the_newcomer(server, join) -> None:
    bo = join("Bo")
    ann = join("Ann")

    assert bo.channel.sent == ["[CHAT]: Ann has joined the chat."]
    assert ann.channel.sent == []
    assert server.session_manager.names() == ["Bo", "Ann"]


def test_handshake_trims_the_name(server, make_channel) -> None:
    session = server.open_session(make_channel(["  Ann  "]))
    assert session.name == "Ann"
    assert "Ann" in server.session_manager


@pytest.mark.parametrize("line", ["", "   ", "two words", "x" * 33])
def test_handshake_rejects_unusable_names(server, make_channel, line) -> None:
    with pytest.raises(InvalidHandshake):
        server.open_session(make_channel([line]))
    assert len(server.session_manager) == 0


def test_handshake_rejects_closed_stream(server, make_channel) -> None:
    channel = make_channel()
    channel.end()
    with pytest.raises(InvalidHandshake):
        server.open_session(channel)


def test_handshake_read_failure_is_invalid_handshake(server, make_channel) -> None:
    channel = make_channel([TransportFailure("reset by peer")])
    with pytest.raises(InvalidHandshake):
        server.open_session(channel)


def test_duplicate_name_is_rejected(server, join, make_channel) -> None:
    original = join("Ann")

    with pytest.raises(NameInUse):
        server.open_session(make_channel(["Ann"]))

    assert server.session_manager.get("Ann") is original


def test_duplicate_name_handshake_tells_the_client(server, join, make_channel) -> None:
    join("Ann")
    channel = make_channel(["Ann"])

    assert server.handshake(channel) is None

    assert channel.sent == ["Name 'Ann' is already in use."]
    assert channel.closed


def test_teardown_is_idempotent(server, join) -> None:
    ann = join("Ann")
    bo = join("Bo")

    ann.teardown()
    ann.teardown()

    assert bo.channel.sent.count("[CHAT]: Ann has left the chat.") == 1
    assert "Ann" not in server.session_manager
    assert ann.channel.closed
    assert server.stats_manager.get("parts") == 1


def test_unregister_only_removes_the_same_session(server, join, make_channel) -> None:
    ann = join("Ann")
    impostor = ChatSession(server, make_channel(), "Ann")

    assert server.session_manager.unregister(impostor) is False
    assert server.session_manager.get("Ann") is ann


def test_read_loop_routes_lines_then_tears_down_on_quit(server, join, make_channel) -> None:
    bo = join("Bo")
    ann = server.open_session(make_channel(["Ann", "hello", "\\q", "never read"]))

    ann.run()

    assert bo.channel.sent == [
        "[CHAT]: Ann has joined the chat.",
        "Ann: hello",
        "[CHAT]: Ann has left the chat.",
    ]
    assert ann.channel.sent == ["Me: hello"]
    assert "Ann" not in server.session_manager
    assert ann.channel.closed


def test_read_failure_tears_down_only_that_session(server, join, make_channel) -> None:
    bo = join("Bo")
    ann = server.open_session(make_channel(["Ann", TransportFailure("connection reset")]))

    ann.run()

    assert server.session_manager.names() == ["Bo"]
    assert bo.channel.sent[-1] == "[CHAT]: Ann has left the chat."
    assert not bo.channel.closed


def test_write_failure_tears_down_the_failing_session(server, join) -> None:
    ann = join("Ann")
    bo = join("Bo")
    bo.channel.fail_writes = True
    ann.channel.sent.clear()

    server.router.route_line(ann, "anyone there?")

    assert "Bo" not in server.session_manager
    assert ann.channel.sent == ["Me: anyone there?", "[CHAT]: Bo has left the chat."]


def test_deliver_to_closed_channel_is_skipped(server, join) -> None:
    ann = join("Ann")
    ann.channel.close()
    assert ann.deliver("late message") is False
    assert ann.channel.sent == []


def test_handshake_read_is_bounded_then_unbounded(server, make_channel) -> None:
    channel = make_channel(["Ann"])
    server.open_session(channel)
    assert channel.read_timeouts == [server.config.handshake_timeout_s, None]
