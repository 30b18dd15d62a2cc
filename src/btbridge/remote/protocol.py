"""
Rosbridge Protocol - Builders and readers for rosbridge v2 messages.

Actions follow the actionlib topic layout under the server name:
    <server>/goal      published, type <ActionType>Goal
    <server>/cancel    published, type actionlib_msgs/GoalID
    <server>/feedback  subscribed, msg.feedback carries the payload
    <server>/result    subscribed, msg.result carries the payload

Services use call_service / service_response.
"""

from __future__ import annotations

import itertools
from typing import Any, Dict, Mapping, Optional

GOAL_ID_TYPE = "actionlib_msgs/GoalID"

_ids = itertools.count(1)


def next_id(prefix: str) -> str:
    """Unique id for a goal or a service call within this process."""
    return f"{prefix}:{next(_ids)}"


def action_topic(server_name: str, suffix: str) -> str:
    return f"{server_name.rstrip('/')}/{suffix}"


def advertise(topic: str, msg_type: str) -> Dict[str, Any]:
    return {"op": "advertise", "topic": topic, "type": msg_type}


def unadvertise(topic: str) -> Dict[str, Any]:
    return {"op": "unadvertise", "topic": topic}


def subscribe(topic: str, msg_type: Optional[str] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"op": "subscribe", "topic": topic}
    if msg_type:
        message["type"] = msg_type
    return message


def unsubscribe(topic: str) -> Dict[str, Any]:
    return {"op": "unsubscribe", "topic": topic}


def publish(topic: str, msg: Mapping[str, Any]) -> Dict[str, Any]:
    return {"op": "publish", "topic": topic, "msg": dict(msg)}


def goal_id(goal_key: str) -> Dict[str, Any]:
    return {"id": goal_key, "stamp": {"secs": 0, "nsecs": 0}}


def goal_message(goal_key: str, goal: Mapping[str, Any]) -> Dict[str, Any]:
    """Body of an ActionGoal message."""
    return {"goal_id": goal_id(goal_key), "goal": dict(goal)}


def call_service(call_id: str, service: str, args: Mapping[str, Any]) -> Dict[str, Any]:
    return {"op": "call_service", "id": call_id, "service": service, "args": dict(args)}


def is_publish_on(message: Mapping[str, Any], topic: str) -> bool:
    return message.get("op") == "publish" and message.get("topic") == topic


def is_service_response(message: Mapping[str, Any], call_id: str) -> bool:
    return message.get("op") == "service_response" and message.get("id") == call_id


def feedback_payload(message: Mapping[str, Any]) -> Dict[str, Any]:
    """Extract ``msg.feedback`` from a feedback topic message."""
    return dict(message.get("msg", {}).get("feedback") or {})


def result_payload(message: Mapping[str, Any]) -> Dict[str, Any]:
    """Extract ``msg.result`` from a result topic message."""
    return dict(message.get("msg", {}).get("result") or {})


def is_success(payload: Mapping[str, Any]) -> bool:
    """Only a boolean ``success: true`` counts as success."""
    return payload.get("success") is True


__all__ = [
    "GOAL_ID_TYPE",
    "next_id",
    "action_topic",
    "advertise",
    "unadvertise",
    "subscribe",
    "unsubscribe",
    "publish",
    "goal_id",
    "goal_message",
    "call_service",
    "is_publish_on",
    "is_service_response",
    "feedback_payload",
    "result_payload",
    "is_success",
]
