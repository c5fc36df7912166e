"""
Transport layer for nreplrun.

Responsibilities:
    * Own one bencode-over-TCP connection to an nREPL server.
    * Write requests with fresh message ids and collect the response frames
      belonging to each id until the server reports ``done``.
    * Hand unsolicited frames (output printed by the remote outside of any
      pending call) to an output handler so nothing is lost between calls.

The transport is single-threaded: a call reads the socket itself, with an
explicit deadline, instead of relying on a background reader.
"""

from __future__ import annotations

import itertools
import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from . import bencode
from .errors import CallTimeoutError, ConnectError, ProtocolError

LOGGER = logging.getLogger("nreplrun.transport")

Frame = Dict[str, Any]
OutputHandler = Callable[[Frame], None]

_FAILURE_STATUSES = ("eval-error", "error", "unknown-op", "namespace-not-found", "unknown-session")


@dataclass
class TransportConfig:
    host: str = "127.0.0.1"
    port: int = 7888
    connect_timeout: float = 2.0
    call_timeout: float = 10.0
    clone_timeout: float = 10.0
    legacy_done: bool = False
    recv_size: int = 4096


#
# Frame helpers
#
def frame_status(frame: Frame) -> Set[str]:
    status = frame.get("status")
    if isinstance(status, str):
        return {status}
    if isinstance(status, list):
        return {str(token) for token in status}
    return set()


def statuses(frames: Iterable[Frame]) -> List[str]:
    seen: List[str] = []
    for frame in frames:
        for token in sorted(frame_status(frame)):
            if token not in seen:
                seen.append(token)
    return seen


def last_value(frames: Iterable[Frame]) -> Optional[str]:
    """Return the last non-null ``value`` in arrival order."""
    value = None
    for frame in frames:
        if frame.get("value") is not None:
            value = frame["value"]
    return value


def joined_out(frames: Iterable[Frame]) -> str:
    return "".join(frame["out"] for frame in frames if frame.get("out"))


def joined_err(frames: Iterable[Frame]) -> str:
    return "".join(frame["err"] for frame in frames if frame.get("err"))


def remote_failure(frames: Iterable[Frame]) -> Optional[str]:
    """Describe an explicit failure signalled by the remote, if any."""
    for frame in frames:
        status = frame_status(frame)
        for token in _FAILURE_STATUSES:
            if token in status:
                detail = frame.get("ex") or frame.get("root-ex") or ""
                return f"{token} {detail}".strip()
        if frame.get("ex"):
            return f"exception {frame['ex']}"
    return None


@dataclass
class NReplTransport:
    """Synchronous nREPL transport (bencode-over-TCP)."""

    config: TransportConfig = field(default_factory=TransportConfig)

    _sock: Optional[socket.socket] = field(init=False, default=None)
    _decoder: bencode.Decoder = field(init=False, default_factory=bencode.Decoder)
    _ids: Any = field(init=False, default_factory=lambda: itertools.count(1))
    _id_prefix: str = field(init=False, default_factory=lambda: uuid.uuid4().hex[:8])
    _output_handler: Optional[OutputHandler] = field(init=False, default=None)

    #
    # Connection lifecycle helpers
    #
    @property
    def state(self) -> str:
        return "connected" if self._sock else "disconnected"

    def set_output_handler(self, handler: Optional[OutputHandler]) -> None:
        self._output_handler = handler

    def connect(self) -> "NReplTransport":
        """Open the TCP connection to the server."""
        if self._sock:
            return self
        address = (self.config.host, self.config.port)
        try:
            sock = socket.create_connection(address, timeout=self.config.connect_timeout)
        except OSError as exc:
            raise ConnectError(f"connect to {address[0]}:{address[1]} failed: {exc}") from exc
        LOGGER.debug("connected to %s:%s", *address)
        self.attach(sock)
        return self

    open = connect

    def attach(self, sock: socket.socket) -> None:
        """Adopt an already connected socket."""
        self._sock = sock
        self._decoder = bencode.Decoder()

    def close(self) -> None:
        sock = self._sock
        self._sock = None
        if sock:
            try:
                sock.close()
            except OSError:
                LOGGER.debug("socket close failed", exc_info=True)

    def __enter__(self) -> "NReplTransport":
        return self.connect()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _next_id(self) -> str:
        return f"{self._id_prefix}-{next(self._ids)}"

    #
    # Wire helpers
    #
    def send(self, message: Dict[str, Any]) -> None:
        sock = self._require_socket()
        data = bencode.encode(message)
        try:
            sock.sendall(data)
        except OSError as exc:
            self.close()
            raise ProtocolError(f"send failed: {exc}") from exc

    def read_frame(self, deadline: float) -> Optional[Frame]:
        """Return the next decoded frame, or ``None`` once ``deadline`` passes."""
        sock = self._require_socket()
        while True:
            try:
                message = self._decoder.next_message()
            except ValueError as exc:
                raise ProtocolError(f"malformed frame: {exc}") from exc
            if message is not None:
                frame = bencode.decode_text(message)
                if not isinstance(frame, dict):
                    raise ProtocolError(f"frame is not a dictionary: {frame!r}")
                return frame
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            sock.settimeout(remaining)
            try:
                chunk = sock.recv(self.config.recv_size)
            except socket.timeout:
                return None
            except OSError as exc:
                self.close()
                raise ProtocolError(f"connection lost: {exc}") from exc
            if not chunk:
                self.close()
                raise ProtocolError("connection closed by server")
            self._decoder.feed(chunk)

    #
    # Calls
    #
    def call(
        self,
        session: Optional[str],
        op: str,
        code: Optional[str] = None,
        target: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[Frame]:
        """Send one request and collect its frames until ``done``."""
        request_id = self._next_id()
        message: Dict[str, Any] = {"op": op, "id": request_id}
        if session:
            message["session"] = session
        if code is not None:
            message["code"] = code
        if target:
            message["ns"] = target
        LOGGER.debug("-> %s %s (ns=%s)", op, request_id, target)
        self.send(message)
        return self._collect(request_id, timeout if timeout is not None else self.config.call_timeout)

    def _collect(self, request_id: str, timeout: float) -> List[Frame]:
        deadline = time.monotonic() + timeout
        frames: List[Frame] = []
        while True:
            try:
                frame = self.read_frame(deadline)
            except ProtocolError as exc:
                raise ProtocolError(
                    str(exc), frames=frames, out=joined_out(frames), err=joined_err(frames)
                ) from exc
            if frame is None:
                raise CallTimeoutError(
                    f"timed out after {timeout:.1f}s waiting for {request_id}",
                    frames=frames,
                    out=joined_out(frames),
                    err=joined_err(frames),
                )
            if not self._belongs_to(frame, request_id):
                self._dispatch_output(frame)
                continue
            frames.append(frame)
            if "done" in frame_status(frame):
                LOGGER.debug("<- %s done (%d frames)", request_id, len(frames))
                return frames

    def drain(self, quiet: float, limit: float) -> List[Frame]:
        """Read unsolicited frames until ``quiet`` seconds pass without one.

        A dropped or garbled connection ends the drain; frames read so far
        are returned.
        """
        hard_deadline = time.monotonic() + limit
        frames: List[Frame] = []
        while True:
            now = time.monotonic()
            if now >= hard_deadline or not self._sock:
                return frames
            try:
                frame = self.read_frame(min(now + quiet, hard_deadline))
            except ProtocolError as exc:
                LOGGER.warning("drain stopped after %d frames: %s", len(frames), exc)
                return frames
            if frame is None:
                return frames
            frames.append(frame)
            self._dispatch_output(frame)

    #
    # Internal helpers
    #
    def _require_socket(self) -> socket.socket:
        if not self._sock:
            raise ProtocolError("transport is not connected")
        return self._sock

    def _belongs_to(self, frame: Frame, request_id: str) -> bool:
        if self.config.legacy_done:
            return True
        return frame.get("id") == request_id

    def _dispatch_output(self, frame: Frame) -> None:
        handler = self._output_handler
        if not handler:
            LOGGER.debug("unsolicited frame without handler: %s", frame)
            return
        handler(frame)
