"""
Per-account sequence tracking.

State machine per sender address:

    Unknown --current()--> Known(seq, chain_id)
    Known(seq) --advance(seq)--> Known(seq + 1)
    Known(*)  --invalidate()--> Unknown

The local view is advisory: the node is the source of truth and rejects a
stale sequence, at which point the caller invalidates and the next `current`
re-queries the node.

Mutation is serialised per address with `lock(address)`. The tracker does not
take the lock itself; the pipeline holds it across fetch, build, sign,
broadcast and advance so two submissions for one account can never sign the
same sequence. Different addresses have different locks.

Locks are held weakly: an address whose lock nobody holds or awaits keeps no
lock entry, and the next `lock()` call makes a fresh one. Known states stay
cached, one small entry per sender, until `invalidate` drops them.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Awaitable, Callable, Dict, Optional

from ..address import Addr, AddrLike
from ..types.core import AccountState

log = logging.getLogger(__name__)

AccountFetcher = Callable[[Addr], Awaitable[AccountState]]


class SequenceTracker:
    def __init__(self, fetch: AccountFetcher) -> None:
        self._fetch = fetch
        self._states: Dict[Addr, AccountState] = {}
        self._locks: "weakref.WeakValueDictionary[Addr, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock(self, address: AddrLike) -> asyncio.Lock:
        addr = Addr.parse(address)
        lk = self._locks.get(addr)
        if lk is None:
            lk = self._locks[addr] = asyncio.Lock()
        return lk

    def peek(self, address: AddrLike) -> Optional[AccountState]:
        return self._states.get(Addr.parse(address))

    async def current(self, address: AddrLike) -> AccountState:
        """Known state, or a fresh one from the node when Unknown."""
        addr = Addr.parse(address)
        state = self._states.get(addr)
        if state is not None:
            return state
        state = await self._fetch(addr)
        self._states[addr] = state
        log.debug("sequence %s: unknown -> %d (fetched)", addr, state.sequence)
        return state

    def set(self, state: AccountState) -> None:
        self._states[state.address] = state
        log.debug("sequence %s: set -> %d", state.address, state.sequence)

    def advance(self, address: AddrLike, used_sequence: int, *, chain_id: Optional[str] = None) -> AccountState:
        """
        Record that `used_sequence` reached the node; the next one is +1.

        `chain_id` is taken from the known state when not given.
        """
        addr = Addr.parse(address)
        prev = self._states.get(addr)
        if chain_id is None:
            if prev is None:
                raise ValueError(f"cannot advance unknown account {addr} without chain_id")
            chain_id = prev.chain_id
        nxt = AccountState(address=addr, sequence=used_sequence + 1, chain_id=chain_id)
        self._states[addr] = nxt
        log.debug(
            "sequence %s: %s -> %d",
            addr,
            prev.sequence if prev is not None else "unknown",
            nxt.sequence,
        )
        return nxt

    def invalidate(self, address: AddrLike) -> None:
        addr = Addr.parse(address)
        prev = self._states.pop(addr, None)
        if prev is not None:
            log.debug("sequence %s: %d -> unknown", addr, prev.sequence)

    def __contains__(self, address: object) -> bool:
        try:
            return Addr.parse(address) in self._states  # type: ignore[arg-type]
        except ValueError:
            return False


__all__ = ["SequenceTracker", "AccountFetcher"]
