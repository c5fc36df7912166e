"""
Pytest fixtures for nreplrun tests.
"""
import socket
import threading
from typing import Callable, Dict, List, Optional

import pytest

from nreplrun import bencode

Handler = Callable[[Dict[str, str]], List[Dict]]


class FakeNReplServer:
    """Threaded bencode server answering with scripted frames.

    ``handler`` receives each decoded request and returns the frames to send
    back.  Frames without an ``id`` are sent verbatim (unsolicited output);
    every other frame gets the request's ``id`` and ``session`` filled in.
    """

    def __init__(self, handler: Optional[Handler] = None) -> None:
        self.handler = handler or self._default_handler
        self.requests: List[Dict[str, str]] = []
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self.port = self._sock.getsockname()[1]
        self._sock.listen(5)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except OSError:
                break
            conn.settimeout(0.2)
            thread = threading.Thread(target=self._handle_client, args=(conn,), daemon=True)
            thread.start()

    def _handle_client(self, conn: socket.socket) -> None:
        decoder = bencode.Decoder()
        with conn:
            while not self._stop.is_set():
                try:
                    chunk = conn.recv(4096)
                except socket.timeout:
                    continue
                except OSError:
                    break
                if not chunk:
                    break
                decoder.feed(chunk)
                while True:
                    message = decoder.next_message()
                    if message is None:
                        break
                    request = bencode.decode_text(message)
                    self.requests.append(request)
                    for frame in self.handler(request):
                        if frame.get("id", "") is None:
                            frame = {k: v for k, v in frame.items() if k != "id"}
                        elif "id" not in frame:
                            frame = dict(frame, id=request.get("id"))
                            if request.get("session"):
                                frame.setdefault("session", request["session"])
                        try:
                            conn.sendall(bencode.encode(frame))
                        except OSError:
                            return

    @staticmethod
    def _default_handler(request: Dict[str, str]) -> List[Dict]:
        if request.get("op") == "clone":
            return [{"new-session": "sess-1", "status": ["done"]}]
        return [{"value": "nil"}, {"status": ["done"]}]

    def stop(self) -> None:
        self._stop.set()
        try:
            dummy = socket.create_connection(("127.0.0.1", self.port), timeout=0.2)
            dummy.close()
        except OSError:
            pass
        self._sock.close()
        self._thread.join(timeout=0.5)


@pytest.fixture
def fake_server():
    servers: List[FakeNReplServer] = []

    def start(handler: Optional[Handler] = None) -> FakeNReplServer:
        server = FakeNReplServer(handler)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.stop()


@pytest.fixture
def socket_pair():
    client, server = socket.socketpair()
    yield client, server
    for sock in (client, server):
        try:
            sock.close()
        except OSError:
            pass
