import pytest

from core.registry import ConnectionState, SessionRegistry, StreamSession, can_transition


@pytest.mark.parametrize("raw, state", [
    ("new", ConnectionState.NEGOTIATING),
    ("connecting", ConnectionState.NEGOTIATING),
    ("connected", ConnectionState.CONNECTED),
    ("disconnected", ConnectionState.DISCONNECTED),
    ("closed", ConnectionState.CLOSED),
    ("failed", ConnectionState.FAILED),
])
def test_from_transport(raw, state):
    assert ConnectionState.from_transport(raw) is state


def test_from_transport_rejects_unknown():
    with pytest.raises(ValueError):
        ConnectionState.from_transport("exploded")


def test_terminal_states_have_no_exits():
    for dst in ConnectionState:
        assert not can_transition(ConnectionState.CLOSED, dst)
        assert not can_transition(ConnectionState.FAILED, dst)
    assert can_transition(ConnectionState.DISCONNECTED, ConnectionState.CONNECTED)


def test_session_transitions():
    s = StreamSession("t1", "p1")
    assert s.state is ConnectionState.NEGOTIATING
    assert not s.transition(ConnectionState.DISCONNECTED)
    assert s.transition(ConnectionState.CONNECTED)
    assert not s.transition(ConnectionState.CONNECTED)
    assert s.transition(ConnectionState.CLOSED)
    assert not s.transition(ConnectionState.CONNECTED)
    assert s.state is ConnectionState.CLOSED


def test_session_flags_and_info():
    s = StreamSession("t1", "p1")
    assert s.last_processed_at is None and not s.has_seen_face
    s.last_processed_at = 1234
    s.has_seen_face = 1
    info = s.info()
    assert info.track_id == "t1" and info.peer_id == "p1"
    assert info.state == "negotiating"
    assert info.last_processed_at == 1234.0 and info.has_seen_face is True


def test_registry_register_get_remove():
    reg = SessionRegistry()
    s = reg.register("t1", "p1")
    assert reg.get("t1") is s
    assert "t1" in reg and len(reg) == 1

    replaced = reg.register("t1", "p2")
    assert reg.get("t1") is replaced and len(reg) == 1

    assert reg.remove("t1") is True
    assert reg.remove("t1") is False
    assert reg.get("t1") is None and reg.sessions() == []


def test_remove_ignores_stale_session():
    reg = SessionRegistry()
    old = reg.register("cam", "p1")
    new = reg.register("cam", "p2")

    assert reg.remove("cam", old) is False
    assert reg.get("cam") is new
    assert reg.remove("cam", new) is True
    assert "cam" not in reg
