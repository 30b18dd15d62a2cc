"""
ServiceClient - One request/response call at a time on a rosbridge service.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional

from ..state.errors import CallInProgressError
from . import protocol
from .connection import MessageChannel

logger = logging.getLogger(__name__)


class ServiceClient:
    """Synchronous-looking client for a single service.

    ``call`` sends the request and blocks the calling thread until the
    matching ``service_response`` arrives. Unrelated messages on the
    channel are skipped.

    Raises (from call):
        CallInProgressError: If another call on this client is outstanding.
        RemoteConnectionError: If the channel fails while waiting.
    """

    def __init__(self, channel: MessageChannel, service_name: str) -> None:
        if not service_name:
            raise ValueError("service_name cannot be empty")
        self._channel = channel
        self._service_name = service_name
        self._lock = threading.Lock()
        self._outstanding: Optional[str] = None
        self._response: Dict[str, Any] = {}

    @property
    def service_name(self) -> str:
        return self._service_name

    @property
    def is_busy(self) -> bool:
        return self._outstanding is not None

    def call(self, request: Mapping[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Call the service and return the response values."""
        call_id = protocol.next_id(f"call_service:{self._service_name}")
        with self._lock:
            if self._outstanding is not None:
                raise CallInProgressError(
                    f"Service client for {self._service_name} already has call "
                    f"{self._outstanding} outstanding"
                )
            self._outstanding = call_id

        try:
            self._channel.send(protocol.call_service(call_id, self._service_name, request))
            while True:
                message = self._channel.receive(timeout=timeout)
                if protocol.is_service_response(message, call_id):
                    break
                logger.debug(f"Service {self._service_name}: skipping {message.get('op')}")
        finally:
            with self._lock:
                self._outstanding = None

        values = message.get("values")
        if message.get("result") is False or not isinstance(values, dict):
            logger.warning(
                f"Service {self._service_name} call failed: {values!r}"
            )
            values = {}
        self._response = values
        return dict(values)

    def get_result(self) -> Dict[str, Any]:
        """Values of the last completed call."""
        return dict(self._response)


__all__ = ["ServiceClient"]
