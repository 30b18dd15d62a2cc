"""
ActionClient - Goal/feedback/result exchange with an actionlib server.

At most one goal is outstanding per client. Feedback is delivered to
the registered callback on the thread that runs ``wait_for_result``.
``cancel_goal`` may be called from any thread at any time; with no
goal outstanding it does nothing.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional

from ..state.errors import CallInProgressError
from . import protocol
from .connection import MessageChannel

logger = logging.getLogger(__name__)

FeedbackCallback = Callable[[Dict[str, Any]], None]


class ActionClient:
    """Client for one action server.

    Example:
        >>> client = ActionClient(conn, "/fibonacci", "actionlib_tutorials/Fibonacci")
        >>> client.register_feedback_callback(print)
        >>> client.send_goal({"order": 5})
        >>> result = client.wait_for_result()
    """

    def __init__(self, channel: MessageChannel, server_name: str, action_type: str) -> None:
        if not server_name:
            raise ValueError("server_name cannot be empty")
        self._channel = channel
        self._server_name = server_name
        self._action_type = action_type
        self._lock = threading.Lock()
        self._goal_key: Optional[str] = None
        self._result: Dict[str, Any] = {}
        self._feedback_callback: Optional[FeedbackCallback] = None
        self._topics_ready = False

        self.goal_topic = protocol.action_topic(server_name, "goal")
        self.cancel_topic = protocol.action_topic(server_name, "cancel")
        self.feedback_topic = protocol.action_topic(server_name, "feedback")
        self.result_topic = protocol.action_topic(server_name, "result")

    @property
    def server_name(self) -> str:
        return self._server_name

    @property
    def action_type(self) -> str:
        return self._action_type

    @property
    def goal_key(self) -> Optional[str]:
        return self._goal_key

    def is_active(self) -> bool:
        with self._lock:
            return self._goal_key is not None

    def register_feedback_callback(self, callback: FeedbackCallback) -> None:
        self._feedback_callback = callback

    def _prepare_topics(self) -> None:
        if self._topics_ready:
            return
        goal_type = f"{self._action_type}Goal" if self._action_type else ""
        self._channel.send(protocol.advertise(self.goal_topic, goal_type))
        self._channel.send(protocol.advertise(self.cancel_topic, protocol.GOAL_ID_TYPE))
        self._channel.send(protocol.subscribe(self.feedback_topic))
        self._channel.send(protocol.subscribe(self.result_topic))
        self._topics_ready = True

    def send_goal(self, goal: Mapping[str, Any]) -> str:
        """Publish a goal and return its id.

        Raises:
            CallInProgressError: If a goal is already outstanding.
        """
        with self._lock:
            if self._goal_key is not None:
                raise CallInProgressError(
                    f"Action client for {self._server_name} already has goal "
                    f"{self._goal_key} outstanding"
                )
            self._goal_key = protocol.next_id(f"goal:{self._server_name}")
            goal_key = self._goal_key
        self._result = {}

        self._prepare_topics()
        self._channel.send(
            protocol.publish(self.goal_topic, protocol.goal_message(goal_key, goal))
        )
        logger.info(f"Sent goal {goal_key} to {self._server_name}")
        return goal_key

    def _belongs_to_goal(self, message: Mapping[str, Any], goal_key: str) -> bool:
        msg = message.get("msg")
        if not isinstance(msg, dict):
            return True
        status = msg.get("status") or {}
        message_goal = (status.get("goal_id") or {}).get("id")
        return not message_goal or message_goal == goal_key

    def wait_for_result(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Block until the outstanding goal reports its result.

        Feedback received while waiting is passed to the callback. If the
        goal is cancelled while waiting, the cancellation result (or an
        empty result) is returned.

        Raises:
            RemoteConnectionError: If the channel fails while waiting.
        """
        goal_key = self._goal_key
        if goal_key is None:
            return dict(self._result)

        while True:
            message = self._channel.receive(timeout=timeout)
            if not self._belongs_to_goal(message, goal_key):
                continue
            if protocol.is_publish_on(message, self.feedback_topic):
                if self._feedback_callback is not None:
                    self._feedback_callback(protocol.feedback_payload(message))
                continue
            if protocol.is_publish_on(message, self.result_topic):
                self._result = protocol.result_payload(message)
                with self._lock:
                    if self._goal_key == goal_key:
                        self._goal_key = None
                logger.info(f"Goal {goal_key} on {self._server_name} finished")
                return dict(self._result)
            logger.debug(f"Action {self._server_name}: skipping {message.get('op')}")

    def get_result(self) -> Dict[str, Any]:
        return dict(self._result)

    def cancel_goal(self) -> bool:
        """Cancel the outstanding goal. Returns False when there was none."""
        with self._lock:
            goal_key, self._goal_key = self._goal_key, None
        if goal_key is None:
            return False
        self._channel.send(protocol.publish(self.cancel_topic, protocol.goal_id(goal_key)))
        logger.info(f"Cancelled goal {goal_key} on {self._server_name}")
        return True


__all__ = ["ActionClient", "FeedbackCallback"]
