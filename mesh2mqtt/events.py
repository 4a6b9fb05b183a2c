"""
Event bus and event types consumed by the discovery engine
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

logger = logging.getLogger(__name__)


@dataclass
class EntityAdded:
    entity: Any


@dataclass
class EntityRemoved:
    entity: Any


@dataclass
class EntityRenamed:
    entity: Any
    from_name: str
    to_name: str
    homeassistant_rename: bool = True


@dataclass
class GroupMembersChanged:
    group: Any


@dataclass
class EntityOptionsChanged:
    entity: Any
    from_options: Dict[str, Any] = field(default_factory=dict)
    to_options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CapabilitiesChanged:
    device: Any


@dataclass
class ScenesChanged:
    entity: Any


@dataclass
class DeviceNetworkEvent:
    """Announce, join, interview or message from a device"""
    device: Any
    kind: str = 'message'


@dataclass
class MQTTMessage:
    topic: str
    payload: str


@dataclass
class MQTTConnectivity:
    connected: bool


@dataclass
class EntityStatePublished:
    """State payload published for an entity"""
    entity: Any
    message: Dict[str, Any]


class EventBus:
    """
    Synchronous publish/subscribe between the network layer and the engine

    Handlers are registered explicitly with on(); the returned callable
    detaches the handler again.
    """

    def __init__(self):
        self._handlers: Dict[Type, List[Callable]] = {}
        self._lock = threading.Lock()

    def on(self, event_type: Type, handler: Callable[[Any], None]) -> Callable[[], None]:
        """
        Register handler for an event type

        Args:
            event_type: Event class
            handler: Callback receiving the event

        Returns:
            Callable that unsubscribes the handler
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe():
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def emit(self, event: Any):
        """Deliver event to all handlers registered for its type"""
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in {type(event).__name__} handler: {e}", exc_info=True)

    def handler_count(self, event_type: Optional[Type] = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            return sum(len(h) for h in self._handlers.values())
