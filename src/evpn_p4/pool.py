"""Reference-counted identifier pools for scarce pipeline resources."""

from __future__ import annotations

import heapq
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional, Set, Tuple

from .constants import ECMP_INDEX_RANGE, MOD_PTR_RANGE, TRIE_INDEX_RANGE
from .errors import PoolExhausted

LOG = logging.getLogger(__name__)


@dataclass
class _Allocation:
    id: int
    refs: int = 0
    subkeys: Set[Hashable] = field(default_factory=set)

    @property
    def refcount(self) -> int:
        return self.refs + len(self.subkeys)


class IDPool:
    """Hand out integers from ``[min_id, max_id)`` keyed by an opaque key.

    Repeated requests for the same key return the same identifier and bump its
    reference count; the identifier returns to the pool once the count drops
    to zero.  The lowest free identifier is always handed out first so that
    allocation order is reproducible.

    Two flavours of reference are tracked.  Plain references
    (:meth:`get_id` / :meth:`release_id`) count every call.  Subkey references
    (:meth:`get_id_with_ref` / :meth:`release_id_with_ref`) count distinct
    subkeys, so the same subkey registered twice holds a single reference.
    Both kinds add up to the reported refcount.
    """

    def __init__(self, name: str, min_id: int, max_id: int) -> None:
        if min_id >= max_id:
            raise ValueError(f"empty id range [{min_id}, {max_id}) for pool {name}")
        self.name = name
        self.min_id = min_id
        self.max_id = max_id
        self._lock = threading.Lock()
        self._allocations: Dict[Hashable, _Allocation] = {}
        self._released: List[int] = []
        self._next = min_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._allocations)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._allocations

    def __repr__(self) -> str:
        return f"IDPool({self.name!r}, [{self.min_id}, {self.max_id}))"

    def _take(self) -> int:
        if self._released:
            return heapq.heappop(self._released)
        if self._next >= self.max_id:
            raise PoolExhausted(f"pool {self.name} exhausted")
        value = self._next
        self._next += 1
        return value

    def _allocation_for(self, key: Hashable) -> _Allocation:
        allocation = self._allocations.get(key)
        if allocation is None:
            allocation = _Allocation(id=self._take())
            self._allocations[key] = allocation
            LOG.debug("pool %s: allocated %d for %r", self.name, allocation.id, key)
        return allocation

    def _free_if_unused(self, key: Hashable, allocation: _Allocation) -> None:
        if allocation.refcount == 0:
            del self._allocations[key]
            heapq.heappush(self._released, allocation.id)
            LOG.debug("pool %s: released %d for %r", self.name, allocation.id, key)

    def get_id(self, key: Hashable) -> int:
        with self._lock:
            allocation = self._allocation_for(key)
            allocation.refs += 1
            return allocation.id

    def get_id_with_ref(self, key: Hashable, subkey: Hashable) -> Tuple[int, int]:
        with self._lock:
            allocation = self._allocation_for(key)
            allocation.subkeys.add(subkey)
            return allocation.id, allocation.refcount

    def release_id(self, key: Hashable) -> Optional[int]:
        with self._lock:
            allocation = self._allocations.get(key)
            if allocation is None:
                LOG.warning("pool %s: release of unknown key %r", self.name, key)
                return None
            if allocation.refs > 0:
                allocation.refs -= 1
            self._free_if_unused(key, allocation)
            return allocation.id

    def release_id_with_ref(
        self, key: Hashable, subkey: Hashable
    ) -> Tuple[Optional[int], int]:
        with self._lock:
            allocation = self._allocations.get(key)
            if allocation is None:
                LOG.warning("pool %s: release of unknown key %r", self.name, key)
                return None, 0
            allocation.subkeys.discard(subkey)
            self._free_if_unused(key, allocation)
            return allocation.id, allocation.refcount

    def lookup(self, key: Hashable) -> Optional[int]:
        with self._lock:
            allocation = self._allocations.get(key)
            return allocation.id if allocation is not None else None

    def refcount(self, key: Hashable) -> int:
        with self._lock:
            allocation = self._allocations.get(key)
            return allocation.refcount if allocation is not None else 0


@dataclass
class ResourcePools:
    """The three independent pools shared by every decoder."""

    mod_ptr: IDPool = field(default_factory=lambda: IDPool("mod_ptr", *MOD_PTR_RANGE))
    trie_index: IDPool = field(
        default_factory=lambda: IDPool("trie_index", *TRIE_INDEX_RANGE)
    )
    ecmp: IDPool = field(default_factory=lambda: IDPool("ecmp", *ECMP_INDEX_RANGE))
