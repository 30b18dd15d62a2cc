"""
BT Bridge Remote - Rosbridge transport and call clients.

Contains:
- Connection: JSON-over-websocket channel (connection.py)
- protocol: rosbridge v2 message builders (protocol.py)
- ActionClient: goal/feedback/result exchange (action_client.py)
- ServiceClient: request/response calls (service_client.py)
- Action type resolvers (resolver.py)
"""

from . import protocol
from .action_client import ActionClient, FeedbackCallback
from .connection import Connection, MessageChannel, format_address
from .resolver import (
    DEFAULT_TYPE_SERVICE,
    ActionTypeResolver,
    StaticTypeResolver,
    TopicTypeResolver,
    strip_goal_suffix,
)
from .service_client import ServiceClient

__all__ = [
    "protocol",
    "ActionClient",
    "FeedbackCallback",
    "Connection",
    "MessageChannel",
    "format_address",
    "DEFAULT_TYPE_SERVICE",
    "ActionTypeResolver",
    "StaticTypeResolver",
    "TopicTypeResolver",
    "strip_goal_suffix",
    "ServiceClient",
]
