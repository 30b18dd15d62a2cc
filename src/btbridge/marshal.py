"""
Port Marshaler - Convert typed port values to and from wire (JSON) values.

Supported wire types:
- bool
- int8, int16, int32, int64 and uint8, uint16, uint32, uint64
  (range-checked, stored as Python int)
- float32, float64 (stored as Python float, i.e. double precision)
- string
- composite: any type name containing "/" (e.g. "geometry_msgs/Pose"),
  passed through as a nested JSON value without field-level interpretation

Error codes:
- E2001: Missing input (raised by the node when a port has no value)
- E2005: Unsupported wire type
- E2006: Value does not fit its wire type
- E2007: Feedback names an undeclared port
"""

from __future__ import annotations

import copy
import json
import logging
import math
from typing import Any, Dict, Mapping, Optional, Protocol

from .state.blackboard import SharedValueStore
from .state.errors import (
    MissingInputError,
    PortValueError,
    UnknownPortError,
    UnsupportedTypeError,
)
from .state.models import NodeModel, PortBinding

logger = logging.getLogger(__name__)

COMPOSITE_SEPARATOR = "/"

INTEGER_RANGES = {
    "int8": (-(2**7), 2**7 - 1),
    "int16": (-(2**15), 2**15 - 1),
    "int32": (-(2**31), 2**31 - 1),
    "int64": (-(2**63), 2**63 - 1),
    "uint8": (0, 2**8 - 1),
    "uint16": (0, 2**16 - 1),
    "uint32": (0, 2**32 - 1),
    "uint64": (0, 2**64 - 1),
}
FLOAT_TYPES = ("float32", "float64")
PRIMITIVE_TYPES = frozenset(("bool", "string", *FLOAT_TYPES, *INTEGER_RANGES))

# Ports that route the call rather than feed the remote payload
ROUTING_PORTS = ("server_name", "service_name")

_TRUE_LITERALS = ("true", "1")
_FALSE_LITERALS = ("false", "0")


class PortHolder(Protocol):
    """What the marshaler needs from a runtime node."""

    @property
    def name(self) -> str: ...

    @property
    def model(self) -> NodeModel: ...

    def get_input(self, port_name: str) -> Any: ...

    def binding(self, port_name: str) -> Optional[PortBinding]: ...

    def input_is_literal(self, port_name: str) -> bool: ...

    def set_output(self, port_name: str, value: Any) -> None: ...


def is_composite(type_name: str) -> bool:
    """Composite (message) types carry a namespace separator."""
    return COMPOSITE_SEPARATOR in type_name


def is_supported(type_name: str) -> bool:
    return type_name in PRIMITIVE_TYPES or is_composite(type_name)


def _check_supported(type_name: str, port_name: str, node_name: str) -> None:
    if not is_supported(type_name):
        raise UnsupportedTypeError(type_name, port_name, node_name)


# =============================================================================
# Value Conversion
# =============================================================================


def coerce(value: Any, type_name: str, port_name: str = "", node_name: str = "") -> Any:
    """Check and normalize a value for ``type_name``.

    The same rules apply in both directions, since the native Python
    representation of every wire type is its JSON representation.

    Raises:
        UnsupportedTypeError: If ``type_name`` is not recognized.
        PortValueError: If ``value`` cannot be represented.
    """
    _check_supported(type_name, port_name, node_name)

    if is_composite(type_name):
        return copy.deepcopy(value)

    if type_name == "bool":
        if isinstance(value, bool):
            return value
        # booleans are stored as uint8 by some engines
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise PortValueError(type_name, port_name, value)

    if type_name in INTEGER_RANGES:
        if isinstance(value, bool):
            raise PortValueError(type_name, port_name, value)
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if not isinstance(value, int):
            raise PortValueError(type_name, port_name, value)
        low, high = INTEGER_RANGES[type_name]
        if not low <= value <= high:
            raise PortValueError(type_name, port_name, value)
        return value

    if type_name in FLOAT_TYPES:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PortValueError(type_name, port_name, value)
        return float(value)

    # string
    if not isinstance(value, str):
        raise PortValueError(type_name, port_name, value)
    return value


def parse_literal(text: str, type_name: str, port_name: str = "", node_name: str = "") -> Any:
    """Convert a literal binding string into a wire value.

    Example:
        >>> parse_literal("42", "uint8")
        42
        >>> parse_literal("true", "bool")
        True
        >>> parse_literal('{"x": 1}', "geometry_msgs/Point")
        {'x': 1}
    """
    _check_supported(type_name, port_name, node_name)

    if is_composite(type_name):
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise PortValueError(type_name, port_name, text) from e

    if type_name == "string":
        return text

    stripped = text.strip()
    if type_name == "bool":
        lowered = stripped.lower()
        if lowered in _TRUE_LITERALS:
            return True
        if lowered in _FALSE_LITERALS:
            return False
        raise PortValueError(type_name, port_name, text)

    if type_name in INTEGER_RANGES:
        try:
            value = int(stripped, 10)
        except ValueError as e:
            raise PortValueError(type_name, port_name, text) from e
        return coerce(value, type_name, port_name, node_name)

    try:
        value = float(stripped)
    except ValueError as e:
        raise PortValueError(type_name, port_name, text) from e
    if math.isnan(value) or math.isinf(value):
        # not representable in JSON
        raise PortValueError(type_name, port_name, text)
    return value


# =============================================================================
# Encode / Decode
# =============================================================================


def encode(node: PortHolder, port_name: str, type_name: str) -> Any:
    """Read a typed input from ``node`` and produce its wire value.

    Raises:
        UnsupportedTypeError: If ``type_name`` is not recognized.
        MissingInputError: If the port has no value.
        PortValueError: If the stored value does not fit ``type_name``.
    """
    _check_supported(type_name, port_name, node.name)
    value = node.get_input(port_name)
    if node.input_is_literal(port_name):
        return parse_literal(value, type_name, port_name, node.name)
    return coerce(value, type_name, port_name, node.name)


def decode(node: PortHolder, port_name: str, type_name: str, value: Any) -> None:
    """Write a wire value into a typed output of ``node``.

    Raises:
        UnsupportedTypeError: If ``type_name`` is not recognized.
        PortValueError: If ``value`` does not fit ``type_name``.
    """
    native = coerce(value, type_name, port_name, node.name)
    node.set_output(port_name, native)


# =============================================================================
# Requests and Feedback
# =============================================================================


def request_from_node(node: PortHolder) -> Dict[str, Any]:
    """Build a goal/request payload from a runtime node's bound inputs.

    Output ports, routing ports and unbound ports are skipped.
    """
    request: Dict[str, Any] = {}
    for port in node.model.ports:
        if port.is_output or port.name in ROUTING_PORTS:
            continue
        if node.binding(port.name) is None:
            continue
        request[port.name] = encode(node, port.name, port.wire_type)
    return request


def request_from_bindings(
    model: NodeModel,
    bindings: Mapping[str, str],
    store: SharedValueStore,
    node_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a payload from editor bindings, without a runtime node.

    Used for manual single-node execution. Empty bindings fall back to
    the declared default; references are looked up in ``store``.
    """
    node_name = node_name or model.registration_id
    request: Dict[str, Any] = {}
    for port in model.ports:
        if port.is_output or port.name in ROUTING_PORTS:
            continue
        raw = bindings.get(port.name) or port.default
        if raw is None:
            continue
        binding = PortBinding.parse(raw)
        if binding.is_reference:
            if not store.has(binding.reference):
                raise MissingInputError(
                    port.name, node_name, f"blackboard key '{binding.reference}' is not set"
                )
            request[port.name] = coerce(
                store.get(binding.reference), port.wire_type, port.name, node_name
            )
        else:
            request[port.name] = parse_literal(
                binding.literal, port.wire_type, port.name, node_name
            )
    for name in bindings:
        if model.port(name) is None:
            raise UnknownPortError(name, node_name)
    return request


def apply_feedback(node: PortHolder, feedback: Mapping[str, Any]) -> Optional[str]:
    """Write the field announced by a feedback payload into its port.

    The payload names the field to update in ``update_field_name``; the
    value under that field is decoded into the matching port. Returns
    the updated port name, or None if the payload announces nothing.

    Raises:
        UnknownPortError: If the announced field is not a declared port.
    """
    field_name = feedback.get("update_field_name")
    if not field_name:
        logger.warning(f"Feedback for '{node.name}' has no update_field_name, ignoring")
        return None

    descriptor = node.model.port(field_name)
    if descriptor is None:
        raise UnknownPortError(field_name, node.name)
    if field_name not in feedback:
        raise PortValueError(descriptor.wire_type, field_name, None)

    decode(node, field_name, descriptor.wire_type, feedback[field_name])
    logger.debug(f"Feedback updated '{node.name}.{field_name}'")
    return field_name


__all__ = [
    "COMPOSITE_SEPARATOR",
    "INTEGER_RANGES",
    "FLOAT_TYPES",
    "PRIMITIVE_TYPES",
    "ROUTING_PORTS",
    "PortHolder",
    "is_composite",
    "is_supported",
    "coerce",
    "parse_literal",
    "encode",
    "decode",
    "request_from_node",
    "request_from_bindings",
    "apply_feedback",
]
