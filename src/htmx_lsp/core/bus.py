"""Event bus used as the host's status and error surface.

Events are defined with Pydantic property models. The language client
publishes state changes, diagnostics and errors; the host (an editor
integration, the CLI, a test) subscribes to whatever it wants to display.

Example:
    class ClientErrorProps(BaseModel):
        client_id: str
        message: str

    ClientError = BusEvent.define("lsp.client.error", ClientErrorProps)

    unsubscribe = Bus.subscribe(ClientError, lambda payload: print(payload.properties))
    await Bus.publish(ClientError, ClientErrorProps(client_id="htmx-lsp", message="boom"))
    unsubscribe()
"""

import traceback
from contextvars import ContextVar, Token
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar, Union
from pydantic import BaseModel

T = TypeVar('T', bound=BaseModel)

# Lazy logger to avoid circular imports
_log: Optional[Any] = None


def _get_log():
    global _log
    if _log is None:
        from ..util.log import Log
        _log = Log.create({"service": "bus"})
    return _log


class BusEvent(Generic[T]):
    """Event definition: a unique type string plus a properties model."""

    def __init__(self, event_type: str, properties_type: type[T]):
        self.type = event_type
        self.properties_type = properties_type

    @staticmethod
    def define(event_type: str, properties_type: type[T]) -> 'BusEvent[T]':
        """Define and register a new event type."""
        event = BusEvent(event_type, properties_type)
        _registry[event_type] = event
        return event


_registry: Dict[str, BusEvent] = {}


class EventPayload(BaseModel):
    """Payload delivered to subscribers."""
    type: str
    properties: Dict[str, Any]


SubscriptionCallback = Callable[[EventPayload], Union[None, Awaitable[None]]]


_bus_var: ContextVar['Bus'] = ContextVar('_bus_var')
_default_bus: Optional['Bus'] = None


class Bus:
    """Publish/subscribe hub.

    The active instance is resolved through a ContextVar so tests and hosts
    can bind their own; without a binding a process-wide default is used.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[SubscriptionCallback]] = {}

    @classmethod
    def current(cls) -> 'Bus':
        global _default_bus
        try:
            return _bus_var.get()
        except LookupError:
            if _default_bus is None:
                _default_bus = cls()
            return _default_bus

    @classmethod
    def provide(cls, bus: 'Bus') -> Token['Bus']:
        return _bus_var.set(bus)

    @classmethod
    def restore(cls, token: Token['Bus']) -> None:
        _bus_var.reset(token)

    @classmethod
    async def publish(cls, event: BusEvent[T], properties: T) -> None:
        if not isinstance(properties, event.properties_type):
            if isinstance(properties, dict):
                properties = event.properties_type(**properties)
            else:
                raise TypeError(
                    f"Properties must be instance of {event.properties_type.__name__}"
                )

        payload = EventPayload(type=event.type, properties=properties.model_dump())

        bus = cls.current()
        callbacks = [
            *bus._subscriptions.get(event.type, []),
            *bus._subscriptions.get("*", []),
        ]
        for callback in callbacks:
            try:
                result = callback(payload)
                if hasattr(result, '__await__'):
                    await result
            except Exception as e:
                _get_log().error("subscription callback failed", {
                    "error": str(e),
                    "type": event.type,
                    "traceback": traceback.format_exc(),
                })

    @classmethod
    def subscribe(cls, event: BusEvent[T], callback: SubscriptionCallback) -> Callable[[], None]:
        return cls.current()._raw_subscribe(event.type, callback)

    @classmethod
    def subscribe_all(cls, callback: SubscriptionCallback) -> Callable[[], None]:
        return cls.current()._raw_subscribe("*", callback)

    def _raw_subscribe(self, event_type: str, callback: SubscriptionCallback) -> Callable[[], None]:
        self._subscriptions.setdefault(event_type, []).append(callback)

        def unsubscribe() -> None:
            subs = self._subscriptions.get(event_type, [])
            if callback in subs:
                subs.remove(callback)

        return unsubscribe
