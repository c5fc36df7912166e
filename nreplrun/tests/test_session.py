import dataclasses

import pytest

from nreplrun.errors import ConnectError, ProtocolError
from nreplrun.session import Session, clone_session, open_session
from nreplrun.transport import NReplTransport, TransportConfig


def test_clone_reads_new_session_field(fake_server) -> None:
    server = fake_server()
    with NReplTransport(TransportConfig(port=server.port)) as transport:
        session = clone_session(transport)
    assert session.id == "sess-1"
    assert server.requests[0]["op"] == "clone"
    assert server.requests[0]["id"]


def test_clone_falls_back_to_session_field(fake_server) -> None:
    server = fake_server(lambda request: [{"session": "sess-fallback"}, {"status": ["done"]}])
    with NReplTransport(TransportConfig(port=server.port)) as transport:
        session = clone_session(transport)
    assert session.id == "sess-fallback"


def test_clone_without_session_token_is_protocol_error(fake_server) -> None:
    server = fake_server(lambda request: [{"status": ["done"]}])
    with NReplTransport(TransportConfig(port=server.port)) as transport:
        with pytest.raises(ProtocolError) as info:
            clone_session(transport)
    assert len(info.value.frames) == 1


def test_session_id_is_immutable() -> None:
    session = Session(id="sess-1", transport=NReplTransport())
    with pytest.raises(dataclasses.FrozenInstanceError):
        session.id = "other"  # type: ignore[misc]


def test_open_session_reuses_session_for_every_eval(fake_server) -> None:
    server = fake_server()
    with open_session(TransportConfig(port=server.port)) as session:
        session.eval("(+ 1 1)", ns="user")
        session.eval(":ok", ns="cljs.user")
        transport = session.transport
    assert transport.state == "disconnected"
    evals = [r for r in server.requests if r["op"] == "eval"]
    assert [r["session"] for r in evals] == ["sess-1", "sess-1"]
    assert len({r["id"] for r in server.requests}) == len(server.requests)


def test_open_session_closes_connection_on_error(fake_server) -> None:
    server = fake_server()
    captured = {}
    with pytest.raises(RuntimeError):
        with open_session(TransportConfig(port=server.port)) as session:
            captured["transport"] = session.transport
            raise RuntimeError("boom")
    assert captured["transport"].state == "disconnected"


def test_open_session_propagates_connect_error() -> None:
    with pytest.raises(ConnectError):
        with open_session(TransportConfig(port=1, connect_timeout=0.2)):
            pass
