"""Session handshake built on top of the nREPL transport."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

from .errors import ProtocolError
from .transport import Frame, NReplTransport, OutputHandler, TransportConfig

LOGGER = logging.getLogger("nreplrun.session")

_SESSION_FIELDS = ("new-session", "session")


@dataclass(frozen=True)
class Session:
    """A cloned server session bound to one transport."""

    id: str
    transport: NReplTransport

    def eval(self, code: str, ns: Optional[str] = None, timeout: Optional[float] = None) -> List[Frame]:
        return self.transport.call(self.id, "eval", code=code, target=ns, timeout=timeout)

    def drain(self, quiet: float, limit: float) -> List[Frame]:
        return self.transport.drain(quiet, limit)

    def set_output_handler(self, handler: Optional[OutputHandler]) -> None:
        self.transport.set_output_handler(handler)


@dataclass
class OutputCapture:
    """Accumulates ``out``/``err`` text seen on a session."""

    out: List[str] = field(default_factory=list)
    err: List[str] = field(default_factory=list)

    def add_frames(self, frames: Sequence[Frame]) -> None:
        for frame in frames:
            self.add_frame(frame)

    def add_frame(self, frame: Frame) -> None:
        if frame.get("out"):
            self.out.append(frame["out"])
        if frame.get("err"):
            self.err.append(frame["err"])

    @property
    def out_text(self) -> str:
        return "".join(self.out)

    @property
    def err_text(self) -> str:
        return "".join(self.err)

    def flush(self) -> Tuple[str, str]:
        """Return the captured ``(out, err)`` text and start over."""
        out, err = self.out_text, self.err_text
        self.out.clear()
        self.err.clear()
        return out, err


def _session_token(frames: List[Frame]) -> Optional[str]:
    for frame in reversed(frames):
        for name in _SESSION_FIELDS:
            token = frame.get(name)
            if token:
                return str(token)
    return None


def clone_session(transport: NReplTransport, timeout: Optional[float] = None) -> Session:
    """Clone a fresh server session and return it."""
    frames = transport.call(
        None,
        "clone",
        timeout=timeout if timeout is not None else transport.config.clone_timeout,
    )
    token = _session_token(frames)
    if not token:
        raise ProtocolError("clone response missing session id", frames=frames)
    LOGGER.debug("cloned session %s (%d frames)", token, len(frames))
    return Session(id=token, transport=transport)


@contextlib.contextmanager
def open_session(config: Optional[TransportConfig] = None) -> Iterator[Session]:
    """Connect, clone a session and close the connection on every exit path."""
    transport = NReplTransport(config or TransportConfig())
    try:
        transport.connect()
        yield clone_session(transport)
    finally:
        transport.close()
