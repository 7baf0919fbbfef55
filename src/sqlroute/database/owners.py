"""
Owner registry for the routing pool.

Maps logical owners (threads, transaction tokens) to their connection
handle. The map is split into lock-striped segments so that owners in
different segments never contend. Owners that support weak references are
held weakly: when one is garbage-collected its handle is handed to the
``on_collect`` callback. Other owners (strings, ints, tuples) are held
strongly and must be removed explicitly.
"""

import logging
import threading
import weakref
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar


logger = logging.getLogger(__name__)

H = TypeVar("H")


class _Segment(Generic[H]):
    __slots__ = ("lock", "weak", "strong")

    def __init__(self) -> None:
        # reentrant: weakref callbacks may fire on a thread already holding the lock
        self.lock = threading.RLock()
        self.weak: Dict[int, Tuple[weakref.ref, H]] = {}
        self.strong: Dict[Any, H] = {}


class OwnerRegistry(Generic[H]):
    """Lock-striped owner -> handle map."""

    def __init__(
        self,
        concurrency_level: int = 12,
        on_collect: Optional[Callable[[H], None]] = None,
    ):
        if concurrency_level < 1:
            raise ValueError("concurrency_level must be at least 1")
        self._segments: List[_Segment[H]] = [_Segment() for _ in range(concurrency_level)]
        self._on_collect = on_collect
        self._size_lock = threading.RLock()
        self._size = 0

    @staticmethod
    def _is_weak(owner: Any) -> bool:
        try:
            weakref.ref(owner)
        except TypeError:
            return False
        return True

    def _segment_for(self, owner: Any, weak: bool) -> _Segment[H]:
        token = id(owner) >> 4 if weak else hash(owner)
        return self._segments[token % len(self._segments)]

    def get(self, owner: Any) -> Optional[H]:
        """Get the handle registered for an owner."""
        weak = self._is_weak(owner)
        segment = self._segment_for(owner, weak)
        with segment.lock:
            if weak:
                entry = segment.weak.get(id(owner))
                if entry is None or entry[0]() is not owner:
                    return None
                return entry[1]
            return segment.strong.get(owner)

    def put(self, owner: Any, handle: H) -> int:
        """
        Register the handle for an owner, replacing any previous one.

        Returns:
            The number of registered owners after the insert
        """
        weak = self._is_weak(owner)
        segment = self._segment_for(owner, weak)
        with segment.lock:
            if weak:
                key = id(owner)
                added = key not in segment.weak
                ref = weakref.ref(owner, lambda r, key=key, seg=segment: self._collected(seg, key, r))
                segment.weak[key] = (ref, handle)
            else:
                added = owner not in segment.strong
                segment.strong[owner] = handle
            return self._adjust_size(1 if added else 0)

    def remove(self, owner: Any, expected: Optional[H] = None) -> Optional[H]:
        """
        Remove the mapping for an owner.

        Args:
            owner: Owner whose mapping is removed
            expected: When given, the mapping is only removed if it points at
                this handle

        Returns:
            The handle that was registered, or None if there was no mapping.
            If it differs from ``expected`` the mapping is left in place.
        """
        weak = self._is_weak(owner)
        segment = self._segment_for(owner, weak)
        with segment.lock:
            if weak:
                entry = segment.weak.get(id(owner))
                if entry is None or entry[0]() is not owner:
                    return None
                current = entry[1]
                if expected is None or current is expected:
                    del segment.weak[id(owner)]
                    self._adjust_size(-1)
                return current

            current = segment.strong.get(owner)
            if current is not None and (expected is None or current is expected):
                del segment.strong[owner]
                self._adjust_size(-1)
            return current

    def values(self) -> List[H]:
        """Snapshot of all registered handles."""
        handles: List[H] = []
        for segment in self._segments:
            with segment.lock:
                handles.extend(handle for _, handle in segment.weak.values())
                handles.extend(segment.strong.values())
        return handles

    def pop_all(self) -> List[H]:
        """Remove every mapping and return the handles that were registered."""
        handles: List[H] = []
        for segment in self._segments:
            with segment.lock:
                removed = len(segment.weak) + len(segment.strong)
                handles.extend(handle for _, handle in segment.weak.values())
                handles.extend(segment.strong.values())
                segment.weak.clear()
                segment.strong.clear()
                self._adjust_size(-removed)
        return handles

    def __len__(self) -> int:
        # maintained on insert/remove; reading it takes no segment lock
        return self._size

    def _adjust_size(self, delta: int) -> int:
        with self._size_lock:
            self._size += delta
            return self._size

    def _collected(self, segment: _Segment[H], key: int, ref: weakref.ref) -> None:
        with segment.lock:
            entry = segment.weak.get(key)
            if entry is None or entry[0] is not ref:
                return
            del segment.weak[key]
            self._adjust_size(-1)
        handle = entry[1]
        logger.warning(f"Owner of {handle!r} was garbage-collected while holding it")
        if self._on_collect is not None:
            try:
                self._on_collect(handle)
            except Exception as e:
                logger.error(f"Failed to clean up {handle!r} after owner collection: {e}")
