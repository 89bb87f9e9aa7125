from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Iterable

from .counters import TOTAL_VISITS_KEY, CounterStore, CounterStoreError, instance_key
from .runtime import InstanceIdentity, RequestTally

logger = logging.getLogger(__name__)

STORE_NOT_CONNECTED = "Redis not connected"


@dataclass(frozen=True)
class VisitStats:
    total_visits: int
    instance_visits: int


@dataclass(frozen=True)
class VisitResult:
    request_number: int
    stats: VisitStats | None = None
    store_error: str | None = None


@dataclass(frozen=True)
class GlobalStats:
    total_visits: int
    instance_visits: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class StatsResult:
    local_requests: int
    global_stats: GlobalStats | None = None
    store_error: str | None = None


@dataclass(frozen=True)
class ResetResult:
    store_reset: bool
    store_error: str | None = None


@dataclass(frozen=True)
class LoadSample:
    processing_time_ms: float
    result: float


class AccountingService:
    """Per-process visit accounting.

    Owns this instance's identity and request tally; the counter store is
    injected and shared with every other instance. Store failures degrade
    the result (no counters, ``store_error`` set) and are never raised.
    """

    def __init__(
        self,
        identity: InstanceIdentity,
        store: CounterStore | None,
        known_instances: Iterable[str] = (),
    ) -> None:
        self.identity = identity
        self.store = store
        self.tally = RequestTally()
        self.known_instances = tuple(known_instances)

    @property
    def instance_id(self) -> str:
        return self.identity.instance_id

    async def record_visit(self, instance_id: str | None = None) -> VisitResult:
        instance_id = instance_id or self.instance_id
        # The local tally only counts visits to this process's own identity.
        if instance_id == self.instance_id:
            request_number = self.tally.increment()
        else:
            request_number = self.tally.value
        if self.store is None:
            return VisitResult(request_number, store_error=STORE_NOT_CONNECTED)
        try:
            # Register first so every counter that exists is discoverable by stats and reset.
            await self.store.register_instance(instance_id)
            total = await self.store.incr(TOTAL_VISITS_KEY)
            mine = await self.store.incr(instance_key(instance_id))
        except CounterStoreError as e:
            logger.error("Redis operation error: %s", e)
            return VisitResult(request_number, store_error="Could not access Redis")
        return VisitResult(request_number, stats=VisitStats(total_visits=total, instance_visits=mine))

    async def get_stats(self, instance_id: str | None = None) -> StatsResult:
        instance_id = instance_id or self.instance_id
        local = self.tally.value
        if self.store is None:
            return StatsResult(local, store_error=STORE_NOT_CONNECTED)
        try:
            ids = await self._instance_ids(self.store, instance_id)
            total = await self.store.get(TOTAL_VISITS_KEY)
            per_instance = {i: await self.store.get(instance_key(i)) for i in ids}
        except CounterStoreError as e:
            logger.warning("Could not fetch Redis stats: %s", e)
            return StatsResult(local, store_error="Could not fetch Redis stats")
        return StatsResult(local, global_stats=GlobalStats(total_visits=total, instance_visits=per_instance))

    async def reset(self) -> ResetResult:
        self.tally.reset()
        if self.store is None:
            return ResetResult(store_reset=False, store_error=STORE_NOT_CONNECTED)
        try:
            ids = await self._instance_ids(self.store, self.instance_id)
            # Identities stay registered so their counters read back as zero.
            # Deleting absent keys is a no-op, so racing resets are harmless.
            await self.store.delete(TOTAL_VISITS_KEY, *(instance_key(i) for i in ids))
        except CounterStoreError as e:
            logger.error("Could not reset Redis stats: %s", e)
            return ResetResult(store_reset=False, store_error="Could not reset Redis stats")
        logger.info("Stats reset by instance %s", self.instance_id)
        return ResetResult(store_reset=True)

    def record_synthetic_load(self, iterations: int) -> LoadSample:
        """Burn a fixed number of iterations of CPU work and time it."""
        iterations = max(0, int(iterations))
        start = time.perf_counter()
        total = 0.0
        for _ in range(iterations):
            total += random.random()
        elapsed_ms = round((time.perf_counter() - start) * 1000.0, 2)
        return LoadSample(processing_time_ms=elapsed_ms, result=total)

    async def _instance_ids(self, store: CounterStore, instance_id: str) -> list[str]:
        ids = set(self.known_instances) | {instance_id}
        ids |= await store.registered_instances()
        return sorted(ids)
