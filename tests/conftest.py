"""
Shared fixtures for btbridge unit tests.

- FakeChannel: in-memory MessageChannel with scripted replies
- RosbridgeStub: channel factory answering services and actions the way
  a rosbridge server would
- FakeDispatcher: records the calls leaf adapters hand off
"""

import queue
import time
from typing import Any, Callable, Dict, List, Optional

import pytest

from btbridge.core.context import TickContext
from btbridge.state.blackboard import SharedValueStore
from btbridge.state.errors import RemoteConnectionError


# =============================================================================
# Channels
# =============================================================================


Responder = Callable[[Dict[str, Any]], List[Dict[str, Any]]]


class FakeChannel:
    """MessageChannel backed by an in-memory queue.

    Args:
        replies: Messages returned by receive(), in order.
        responder: Called with every sent message; the messages it returns
            are queued as replies.
        blocking: When True, receive() waits for a reply (until closed or
            ``max_wait`` expires) instead of failing on an empty queue.
    """

    def __init__(
        self,
        replies: Optional[List[Dict[str, Any]]] = None,
        responder: Optional[Responder] = None,
        blocking: bool = False,
        max_wait: float = 5.0,
    ) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.close_calls = 0
        self._incoming: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self._responder = responder
        self._blocking = blocking
        self._max_wait = max_wait
        for reply in replies or []:
            self._incoming.put(reply)

    def push(self, message: Dict[str, Any]) -> None:
        self._incoming.put(message)

    def send(self, message: Dict[str, Any]) -> None:
        if self.closed:
            raise RemoteConnectionError("Connection closed.")
        self.sent.append(message)
        if self._responder is not None:
            for reply in self._responder(message):
                self._incoming.put(reply)

    def receive(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        deadline = time.monotonic() + (timeout if timeout is not None else self._max_wait)
        while True:
            if self.closed:
                raise RemoteConnectionError("Connection closed.")
            try:
                return self._incoming.get(timeout=0.01)
            except queue.Empty:
                if not self._blocking:
                    raise RemoteConnectionError("Connection closed.")
                if time.monotonic() >= deadline:
                    raise RemoteConnectionError("Timed out waiting for a message")

    def close(self) -> None:
        self.closed = True
        self.close_calls += 1

    def ops(self) -> List[str]:
        return [message["op"] for message in self.sent]

    def published(self, topic: str) -> List[Dict[str, Any]]:
        return [
            message["msg"]
            for message in self.sent
            if message["op"] == "publish" and message["topic"] == topic
        ]


class RosbridgeStub:
    """Channel factory that answers like a rosbridge server.

    Args:
        services: Service name to response values. Unknown services get
            a failed response.
        actions: Action server name to result payload. Goals sent to an
            unknown server are never answered.
        feedback: Action server name to feedback payloads sent before
            the result.
        held_services: Services whose calls are accepted but never
            answered.
    """

    def __init__(
        self,
        services: Optional[Dict[str, Dict[str, Any]]] = None,
        actions: Optional[Dict[str, Dict[str, Any]]] = None,
        feedback: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        held_services: Optional[List[str]] = None,
    ) -> None:
        self.services = services or {}
        self.actions = actions or {}
        self.feedback = feedback or {}
        self.held_services = set(held_services or [])
        self.channels: List[FakeChannel] = []

    def __call__(self) -> FakeChannel:
        channel = FakeChannel(responder=self._respond, blocking=True)
        self.channels.append(channel)
        return channel

    def sent(self) -> List[Dict[str, Any]]:
        return [message for channel in self.channels for message in channel.sent]

    def published(self, topic: str) -> List[Dict[str, Any]]:
        return [msg for channel in self.channels for msg in channel.published(topic)]

    def _respond(self, message: Dict[str, Any]) -> List[Dict[str, Any]]:
        if message["op"] == "call_service":
            if message["service"] in self.held_services:
                return []
            values = self.services.get(message["service"])
            if values is None:
                return [
                    {
                        "op": "service_response",
                        "id": message["id"],
                        "result": False,
                        "values": f"Service {message['service']} does not exist",
                    }
                ]
            return [
                {"op": "service_response", "id": message["id"], "result": True, "values": values}
            ]

        if message["op"] == "publish" and message["topic"].endswith("/goal"):
            server = message["topic"][: -len("/goal")]
            if server not in self.actions:
                return []
            status = {"goal_id": {"id": message["msg"]["goal_id"]["id"]}}
            replies = [
                {
                    "op": "publish",
                    "topic": f"{server}/feedback",
                    "msg": {"status": status, "feedback": payload},
                }
                for payload in self.feedback.get(server, [])
            ]
            replies.append(
                {
                    "op": "publish",
                    "topic": f"{server}/result",
                    "msg": {"status": status, "result": self.actions[server]},
                }
            )
            return replies
        return []


# =============================================================================
# Dispatcher
# =============================================================================


class FakeDispatcher:
    """Dispatcher that records calls instead of starting workers."""

    def __init__(self) -> None:
        self.actions: List[Any] = []
        self.cancelled: List[tuple] = []
        self.conditions: List[Any] = []

    def start_action(self, call) -> None:
        self.actions.append(call)

    def cancel_action(self, node_index: int, generation: int) -> None:
        self.cancelled.append((node_index, generation))

    def start_condition(self, call) -> None:
        self.conditions.append(call)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_channel() -> Callable[..., FakeChannel]:
    """Factory for FakeChannel instances."""
    return FakeChannel


@pytest.fixture
def rosbridge() -> RosbridgeStub:
    """Stub server answering /is_ready and the /move_to action."""
    return RosbridgeStub(
        services={"/is_ready": {"success": True}},
        actions={"/move_to": {"success": True}},
    )


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def store() -> SharedValueStore:
    return SharedValueStore(scope_name="test")


@pytest.fixture
def tick_context(store: SharedValueStore, dispatcher: FakeDispatcher) -> TickContext:
    return TickContext(store=store, dispatcher=dispatcher)


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    return wait_until


@pytest.fixture
def make_rosbridge() -> Callable[..., RosbridgeStub]:
    """Factory for RosbridgeStub instances with custom answers."""
    return RosbridgeStub
