"""
Reentrant connection handles for sqlroute.

A handle wraps the physical connection(s) one logical owner uses, counts
nested acquisitions, and closes its physical connections exactly once.
"""

import logging
import weakref
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from ..exceptions import ConnectivityError

if TYPE_CHECKING:
    from .datasource import RoutingDataSource


logger = logging.getLogger(__name__)


class HandleState(str, Enum):
    """Lifecycle states of a connection handle."""

    UNOPENED = "unopened"
    OPEN = "open"
    CLOSED = "closed"


class ConnectionHandle:
    """
    Reentrant connection bound to one owner.

    The handle is opened once; routed handles have no meaningful liveness
    probe, so ``ensure_open`` never reconnects. Additional datasource keys are
    opened lazily through ``connection(key)`` and closed together with the
    default one.
    """

    def __init__(self, datasource: "RoutingDataSource", datasource_key: str):
        self._datasource = datasource
        self.datasource_key = datasource_key
        self._connections: Dict[str, Any] = {}
        self._state = HandleState.UNOPENED
        self._usage_count = 0
        self._owner_ref: Optional[Callable[[], Any]] = None

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is HandleState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state is HandleState.CLOSED

    @property
    def usage_count(self) -> int:
        """Number of outstanding claims on this handle."""
        return self._usage_count

    @property
    def owner(self) -> Any:
        """The owner holding this handle, or None once released or collected."""
        if self._owner_ref is None:
            return None
        return self._owner_ref()

    def ensure_open(self) -> None:
        """Open the default physical connection if it is not open yet."""
        if self._state is HandleState.OPEN:
            return
        if self._state is HandleState.CLOSED:
            raise ConnectivityError(
                "Connection handle is already closed", datasource=self.datasource_key
            )
        self._connections[self.datasource_key] = self._datasource.get_connection(
            self.datasource_key
        )
        self._state = HandleState.OPEN
        logger.debug(f"Opened {self!r}")

    def connection(self, datasource_key: Optional[str] = None) -> Any:
        """Get the raw connection for a datasource key, opening it on first use."""
        self.ensure_open()
        key = datasource_key or self.datasource_key
        raw = self._connections.get(key)
        if raw is None:
            raw = self._datasource.get_connection(key)
            self._connections[key] = raw
            logger.debug(f"Routed {self!r} to datasource '{key}'")
        return raw

    def add_used_by_object(self, owner: Any = None) -> None:
        """
        Record one more claim on the handle.

        The first claim sets the owner; later claims only bump the count.
        """
        if self._usage_count == 0:
            self._set_owner(owner)
            self._usage_count = 1
        else:
            self._usage_count += 1

    def pop_used_by_object(self) -> Any:
        """
        Drop one claim on the handle.

        Returns:
            The owner when this was the last claim, otherwise None
        """
        if self._usage_count == 0:
            return None
        self._usage_count -= 1
        if self._usage_count > 0:
            return None
        owner = self.owner
        self._owner_ref = None
        return owner

    def close_physical(self) -> None:
        """Close every physical connection held by the handle."""
        if self._state is HandleState.CLOSED:
            return
        self._state = HandleState.CLOSED
        connections, self._connections = self._connections, {}
        for key, raw in connections.items():
            try:
                self._datasource.close_connection(raw)
            except Exception as e:
                logger.warning(f"Error closing connection to '{key}': {e}")
        logger.debug(f"Closed {self!r}")

    def _set_owner(self, owner: Any) -> None:
        if owner is None:
            self._owner_ref = None
            return
        try:
            self._owner_ref = weakref.ref(owner)
        except TypeError:
            self._owner_ref = lambda: owner

    def __repr__(self) -> str:
        return (
            f"ConnectionHandle(datasource={self.datasource_key!r}, "
            f"state={self._state.value}, usage={self._usage_count})"
        )
