"""Message channel between the primary store and its replica."""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

from noty_core.exceptions import ChannelError, ErrorCode

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
Handler = Callable[[Message], Optional[Message]]

SYNC_REQUEST: Message = {"request": "sync"}


def is_sync_request(message: Message) -> bool:
    return message.get("request") == SYNC_REQUEST["request"]


@runtime_checkable
class SyncChannel(Protocol):
    """Best-effort, message-based link to the other side.

    ``send`` delivers one message and returns the peer's reply, if any.
    Timeouts belong to the channel implementation.
    """

    @property
    def is_reachable(self) -> bool:
        ...

    def send(self, message: Message) -> Optional[Message]:
        ...

    def on_receive(self, handler: Handler) -> None:
        ...


class LoopbackChannel:
    """In-process channel end. Create connected ends with :meth:`pair`.

    Delivery is synchronous: ``send`` runs the peer's handler on the
    caller's thread and hands back whatever it returns.
    """

    def __init__(self, name: str = "loopback"):
        self.name = name
        self._peer: Optional["LoopbackChannel"] = None
        self._handler: Optional[Handler] = None
        self._reachable = True
        self._lock = threading.Lock()
        self.sent = 0

    @classmethod
    def pair(
        cls, first: str = "primary", second: str = "replica"
    ) -> Tuple["LoopbackChannel", "LoopbackChannel"]:
        a, b = cls(first), cls(second)
        a._peer, b._peer = b, a
        return a, b

    @property
    def is_reachable(self) -> bool:
        with self._lock:
            return self._reachable and self._peer is not None

    @is_reachable.setter
    def is_reachable(self, value: bool) -> None:
        """Toggle reachability for both ends of the link."""
        with self._lock:
            self._reachable = value
        peer = self._peer
        if peer is not None:
            with peer._lock:
                peer._reachable = value

    def on_receive(self, handler: Handler) -> None:
        with self._lock:
            self._handler = handler

    def send(self, message: Message) -> Optional[Message]:
        if not self.is_reachable:
            raise ChannelError(
                f"{self.name}: peer is not reachable",
                operation="send",
                code=ErrorCode.SYNC_CHANNEL_UNREACHABLE,
            )
        peer = self._peer
        handler = peer._handler if peer is not None else None
        self.sent += 1
        if handler is None:
            logger.debug("%s: peer has no receive handler, message dropped", self.name)
            return None
        return handler(message)
