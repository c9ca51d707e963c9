from __future__ import annotations

import json
import logging
import socket
import struct
import time
from typing import Any, Callable, Optional, Tuple

from .cancel import Cancellation
from .errors import ConfigurationError, ProtocolMismatchError, ScenarioError, ScenarioTimeoutError

logger = logging.getLogger(__name__)

HEADER = struct.Struct(">I")
MAX_FRAME = 64 * 1024 * 1024
RECV_SLICE = 1.0


def encode_envelope(step: str, payload: Any = None) -> bytes:
    envelope = {"step": getattr(step, "value", step), "payload": payload}
    return json.dumps(envelope, separators=(",", ":")).encode("utf-8")


def decode_envelope(frame: bytes) -> Tuple[str, Any]:
    try:
        envelope = json.loads(frame.decode("utf-8"))
        return envelope["step"], envelope.get("payload")
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError) as exc:
        raise ProtocolMismatchError("envelope", "undecodable", f"undecodable message frame: {exc}") from exc


class Messenger:
    """
    One end of an ordered point-to-point link between two role processes.

    Every message is wrapped as ``{"step": ..., "payload": ...}`` and every
    receive names the step it expects, so a peer running a different
    sequence fails loudly instead of feeding the wrong value onward.
    """

    peer: str = "peer"

    def _send_frame(self, frame: bytes) -> None:
        raise NotImplementedError

    def _recv_frame(self) -> bytes:
        raise NotImplementedError

    def send(self, step: str, payload: Any = None) -> None:
        name = getattr(step, "value", step)
        logger.debug("-> %s: %s", self.peer, name)
        self._send_frame(encode_envelope(name, payload))

    def recv(self, step: str) -> Any:
        expected = getattr(step, "value", step)
        received, payload = decode_envelope(self._recv_frame())
        if received != expected:
            raise ProtocolMismatchError(expected, received)
        logger.debug("<- %s: %s", self.peer, received)
        return payload

    def close(self) -> None:
        pass


class NetMessenger(Messenger):
    def __init__(self, sock: socket.socket, peer: str, timeout: float,
                 cancellation: Optional[Cancellation] = None):
        self.sock = sock
        self.peer = peer
        self.timeout = timeout
        self.cancellation = cancellation or Cancellation()
        self.sock.settimeout(RECV_SLICE)

    @classmethod
    def listen_single_connect(cls, bind_address: str, timeout: float,
                              cancellation: Optional[Cancellation] = None) -> "NetMessenger":
        """Accept exactly one peer on ``bind_address`` within ``timeout`` seconds."""
        host, port = _split_address(bind_address)
        cancellation = cancellation or Cancellation()
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            listener.bind((host, port))
            listener.listen(1)
            listener.settimeout(RECV_SLICE)
            logger.info("Listening for a single peer on %s", bind_address)
            deadline = time.monotonic() + timeout
            while True:
                cancellation.check()
                try:
                    conn, addr = listener.accept()
                    break
                except socket.timeout:
                    if time.monotonic() >= deadline:
                        raise ScenarioTimeoutError(
                            f"no peer connected to {bind_address} within {timeout}s"
                        )
        finally:
            listener.close()
        logger.info("Accepted peer %s:%s on %s", addr[0], addr[1], bind_address)
        return cls(conn, f"{addr[0]}:{addr[1]}", timeout, cancellation)

    @classmethod
    def connect(cls, tries: int, delay: float, address: str, timeout: float,
                cancellation: Optional[Cancellation] = None,
                sleep: Callable[[float], None] = time.sleep) -> "NetMessenger":
        """Connect to a listening peer, retrying ``tries`` times ``delay`` seconds apart."""
        host, port = _split_address(address)
        cancellation = cancellation or Cancellation()
        last_error: Optional[OSError] = None
        for attempt in range(tries):
            cancellation.check()
            try:
                sock = socket.create_connection((host, port), timeout=2)
                logger.info("Connected to %s", address)
                return cls(sock, address, timeout, cancellation)
            except OSError as exc:
                last_error = exc
            if attempt + 1 < tries:
                sleep(delay)
        raise ScenarioTimeoutError(
            f"could not connect to {address} after {tries} tries: {last_error}"
        )

    def _send_frame(self, frame: bytes) -> None:
        try:
            self.sock.sendall(HEADER.pack(len(frame)) + frame)
        except OSError as exc:
            raise ScenarioError(f"sending to {self.peer} failed: {exc}") from exc

    def _recv_frame(self) -> bytes:
        deadline = time.monotonic() + self.timeout
        (length,) = HEADER.unpack(self._recv_exact(HEADER.size, deadline))
        if length > MAX_FRAME:
            raise ProtocolMismatchError("frame", "oversized", f"frame of {length} bytes from {self.peer}")
        return self._recv_exact(length, deadline)

    def _recv_exact(self, size: int, deadline: float) -> bytes:
        chunks = []
        remaining = size
        while remaining:
            self.cancellation.check()
            try:
                chunk = self.sock.recv(remaining)
            except socket.timeout:
                if time.monotonic() >= deadline:
                    raise ScenarioTimeoutError(
                        f"nothing received from {self.peer} within {self.timeout}s"
                    )
                continue
            except OSError as exc:
                raise ScenarioError(f"receiving from {self.peer} failed: {exc}") from exc
            if not chunk:
                raise ScenarioError(f"{self.peer} closed the connection")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            logger.debug("Error closing link to %s", self.peer)


def _split_address(address: str) -> Tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigurationError(f"invalid address '{address}', expected host:port")
    return host, int(port)
