"""
Connection - JSON message channel to a rosbridge websocket server.

A thin wrapper over ``websockets.sync.client`` that sends and receives
JSON objects and turns every transport failure (closed, refused,
timed out, bad handshake) into a ``RemoteConnectionError``.

Clients only rely on ``send``/``receive``/``close``, so any object with
those three methods can stand in for a Connection.

Error codes:
- E6001: Connection error
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import ClientConnection, connect

from ..state.errors import RemoteConnectionError

logger = logging.getLogger(__name__)

DEFAULT_OPEN_TIMEOUT_S = 5.0


class MessageChannel(Protocol):
    """What the remote clients need from a connection."""

    def send(self, message: Dict[str, Any]) -> None: ...

    def receive(self, timeout: Optional[float] = None) -> Dict[str, Any]: ...

    def close(self) -> None: ...


def format_address(host: str, port: int) -> str:
    return f"{host}:{port}"


class Connection:
    """Websocket connection exchanging JSON objects.

    Example:
        >>> with Connection("localhost", 9090) as conn:
        ...     conn.send({"op": "call_service", "service": "/rosapi/topics"})
        ...     reply = conn.receive()
    """

    def __init__(
        self,
        host: str,
        port: int,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT_S,
    ) -> None:
        self.host = host
        self.port = port
        self.address = format_address(host, port)
        self._open_timeout = open_timeout
        self._ws: Optional[ClientConnection] = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    def open(self) -> "Connection":
        """Open the websocket.

        Raises:
            RemoteConnectionError: If the server cannot be reached.
        """
        if self._ws is not None:
            return self
        uri = f"ws://{self.address}"
        try:
            self._ws = connect(uri, open_timeout=self._open_timeout)
        except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as e:
            raise RemoteConnectionError(
                f"Could not connect to {self.address} {e}", address=self.address
            ) from e
        logger.info(f"Connected to rosbridge at {self.address}")
        return self

    def _require_open(self) -> ClientConnection:
        if self._ws is None:
            raise RemoteConnectionError("Connection closed.", address=self.address)
        return self._ws

    def send(self, message: Dict[str, Any]) -> None:
        ws = self._require_open()
        payload = json.dumps(message)
        logger.debug(f"-> {self.address}: {payload}")
        try:
            ws.send(payload)
        except ConnectionClosed as e:
            raise RemoteConnectionError("Connection closed.", address=self.address) from e

    def receive(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Block until the next JSON object arrives.

        Raises:
            RemoteConnectionError: If the connection closes or the timeout
                expires first.
        """
        ws = self._require_open()
        try:
            raw = ws.recv(timeout=timeout)
        except ConnectionClosed as e:
            raise RemoteConnectionError("Connection closed.", address=self.address) from e
        except TimeoutError as e:
            raise RemoteConnectionError(
                f"Timed out waiting for a message from {self.address}", address=self.address
            ) from e
        logger.debug(f"<- {self.address}: {raw!r}")
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            raise RemoteConnectionError(
                f"Malformed message from {self.address}: {e}", address=self.address
            ) from e
        if not isinstance(message, dict):
            raise RemoteConnectionError(
                f"Unexpected message from {self.address}: {raw!r}", address=self.address
            )
        return message

    def close(self) -> None:
        """Close the websocket. Safe to call more than once."""
        ws, self._ws = self._ws, None
        if ws is not None:
            ws.close()
            logger.debug(f"Closed connection to {self.address}")

    def __enter__(self) -> "Connection":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"Connection({self.address!r}, {state})"


__all__ = ["Connection", "MessageChannel", "format_address", "DEFAULT_OPEN_TIMEOUT_S"]
