"""
BT Bridge Errors - Coded exceptions raised by the interpreter.

Error codes:
- E2001: Missing input (a declared input port has no bound value)
- E2005: Unsupported wire type
- E2006: Port value does not fit its wire type
- E2007: Unknown port (feedback names a port the model does not declare)
- E4001: Tree could not be loaded
- E6001: Connection error (closed, refused, timeout)
- E6002: Call already in progress on a client
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for all interpreter errors.

    Every subclass carries an ``error_code`` and formats its message
    with the code as a ``[Exxxx]`` prefix.
    """

    error_code = "E0000"

    def __init__(self, message: str) -> None:
        self.detail = message
        super().__init__(f"[{self.error_code}] {message}")


class MissingInputError(BridgeError):
    """Raised when an input port has no bound value at encode time.

    Error code: E2001. Fatal to the leaf's current activation only; the
    leaf reports FAILURE.
    """

    error_code = "E2001"

    def __init__(self, port_name: str, node_name: str, reason: Optional[str] = None) -> None:
        self.port_name = port_name
        self.node_name = node_name
        message = f"Missing input '{port_name}' on node '{node_name}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class UnsupportedTypeError(BridgeError):
    """Raised when a wire type is neither a primitive nor a composite.

    Error code: E2005. A configuration error; it terminates the tick.
    """

    error_code = "E2005"

    def __init__(self, type_name: str, port_name: str, node_name: str) -> None:
        self.type_name = type_name
        self.port_name = port_name
        self.node_name = node_name
        super().__init__(
            f"Invalid port type: {type_name} for {port_name} at {node_name}"
        )


class PortValueError(BridgeError):
    """Raised when a value cannot be represented in its wire type."""

    error_code = "E2006"

    def __init__(self, type_name: str, port_name: str, value: object) -> None:
        self.type_name = type_name
        self.port_name = port_name
        self.value = value
        super().__init__(
            f"Value {value!r} for port '{port_name}' is not a valid {type_name}"
        )


class UnknownPortError(BridgeError):
    """Raised when a feedback message names a port the node does not declare."""

    error_code = "E2007"

    def __init__(self, port_name: str, node_name: str) -> None:
        self.port_name = port_name
        self.node_name = node_name
        super().__init__(f"Node '{node_name}' has no port named '{port_name}'")


class TreeLoadError(BridgeError):
    """Raised when a tree definition cannot be turned into a runtime tree."""

    error_code = "E4001"


class RemoteConnectionError(BridgeError):
    """Raised on transport failures: closed, refused or timed out.

    Error code: E6001. Surfaced to the user, never retried automatically.
    """

    error_code = "E6001"

    def __init__(self, message: str, address: Optional[str] = None) -> None:
        self.address = address
        super().__init__(message)


class CallInProgressError(BridgeError):
    """Raised when a client is asked to start a second outstanding call.

    Error code: E6002.
    """

    error_code = "E6002"


__all__ = [
    "BridgeError",
    "MissingInputError",
    "UnsupportedTypeError",
    "PortValueError",
    "UnknownPortError",
    "TreeLoadError",
    "RemoteConnectionError",
    "CallInProgressError",
]
