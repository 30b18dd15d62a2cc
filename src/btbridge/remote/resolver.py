"""
Action Type Resolvers - Find the message type of an action server.

The goal topic must be advertised with its ``<ActionType>Goal`` type,
which the tree file does not carry. A resolver maps a server name to
the action type:

- TopicTypeResolver asks the rosapi introspection service for the type
  of ``<server>/goal`` and strips the ``Goal`` suffix.
- StaticTypeResolver looks the name up in a fixed mapping.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping, Protocol

from . import protocol
from .connection import MessageChannel
from .service_client import ServiceClient

logger = logging.getLogger(__name__)

DEFAULT_TYPE_SERVICE = "/rosapi/topic_type"
GOAL_SUFFIX = "Goal"


class ActionTypeResolver(Protocol):
    def resolve(self, server_name: str) -> str: ...


def strip_goal_suffix(type_name: str) -> str:
    if type_name.endswith(GOAL_SUFFIX):
        return type_name[: -len(GOAL_SUFFIX)]
    return type_name


class TopicTypeResolver:
    """Resolve action types through the topic introspection service.

    Each resolve opens its own channel through ``channel_factory`` and
    closes it afterwards. An unknown topic resolves to "".
    """

    def __init__(
        self,
        channel_factory: Callable[[], MessageChannel],
        type_service: str = DEFAULT_TYPE_SERVICE,
    ) -> None:
        self._channel_factory = channel_factory
        self._type_service = type_service

    def resolve(self, server_name: str) -> str:
        topic = protocol.action_topic(server_name, "goal")
        channel = self._channel_factory()
        try:
            values = ServiceClient(channel, self._type_service).call({"topic": topic})
        finally:
            channel.close()

        type_name = values.get("type")
        if not isinstance(type_name, str) or not type_name:
            logger.warning(f"No type advertised for {topic}")
            return ""
        action_type = strip_goal_suffix(type_name)
        logger.debug(f"Resolved {server_name} -> {action_type}")
        return action_type


class StaticTypeResolver:
    """Resolve action types from a fixed server-name mapping."""

    def __init__(self, types: Mapping[str, str], default: str = "") -> None:
        self._types: Dict[str, str] = dict(types)
        self._default = default

    def resolve(self, server_name: str) -> str:
        if server_name not in self._types:
            logger.warning(f"No action type configured for {server_name}")
            return self._default
        return self._types[server_name]


__all__ = [
    "ActionTypeResolver",
    "TopicTypeResolver",
    "StaticTypeResolver",
    "strip_goal_suffix",
    "DEFAULT_TYPE_SERVICE",
]
