"""The authoritative in-memory schedule table.

All mutations go through one asyncio.Lock, so they observe a single global
order. The current list is an immutable tuple that is swapped wholesale on
every mutation: readers never see a partial list and never wait on the lock
(and therefore never wait on persistence I/O).
"""
import asyncio
from dataclasses import replace
from typing import Protocol

from loguru import logger

from ...errors import NotFoundError, StoreError
from ..models import ScheduleEntry
from ..schedule import describe_entry
from ..types import MutationResult

logger = logger.bind(module="scheduler.table")


class Store(Protocol):
    """Persistence boundary used by the table."""

    next_id: int

    def load(self) -> list[ScheduleEntry]:
        ...

    def save(self, entries: list[ScheduleEntry], next_id: int | None = None) -> None:
        ...


class ScheduleTable:
    """Ordered collection of schedule entries plus its mutation operations."""

    def __init__(self, store: Store):
        self.store = store
        self._entries: tuple[ScheduleEntry, ...] = ()
        self._next_id = 1
        self._lock = asyncio.Lock()

    # ============== Lifecycle ==============

    async def load(self) -> int:
        """Replace the table contents with what the store holds.

        A store failure leaves the table empty; it is logged, not raised.

        Returns:
            Number of entries loaded
        """
        async with self._lock:
            try:
                entries = await asyncio.to_thread(self.store.load)
            except StoreError as e:
                logger.error(f"Failed to load schedules, starting empty: {e}")
                entries = []
            self._entries = tuple(entries)
            self._next_id = max(self.store.next_id, 1)
            return len(self._entries)

    # ============== Queries ==============

    def __len__(self) -> int:
        return len(self._entries)

    def list(self) -> list[tuple[int, ScheduleEntry]]:
        """Snapshot of (index, entry) pairs in storage order."""
        return list(enumerate(self._entries))

    def snapshot_for_evaluation(self) -> tuple[ScheduleEntry, ...]:
        """Point-in-time view for the evaluator. No side effects."""
        return self._entries

    def get_by_id(self, entry_id: int) -> tuple[int, ScheduleEntry]:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index, entry
        raise NotFoundError(f"Invalid schedule id: {entry_id}")

    # ============== Mutations ==============

    async def add(self, entry: ScheduleEntry) -> MutationResult:
        """Validate, append and persist an entry.

        Raises:
            ValidationError: if the entry is inconsistent (nothing is changed)
        """
        entry.validate()
        async with self._lock:
            stored = replace(entry, id=self._next_id)
            self._next_id += 1
            self._entries = self._entries + (stored,)
            result = MutationResult(entry=stored, index=len(self._entries) - 1)
            result.store_error = await self._persist()

        self._log_mutation("Schedule added", result)
        return result

    async def delete(self, index: int) -> MutationResult:
        """Remove the entry at ``index``; later entries shift down by one.

        Raises:
            NotFoundError: if ``index`` is out of bounds
        """
        async with self._lock:
            if not 0 <= index < len(self._entries):
                raise NotFoundError(f"Invalid schedule ID: {index}")
            return await self._remove_at(index)

    async def delete_by_id(self, entry_id: int) -> MutationResult:
        """Remove the entry with the durable id ``entry_id``.

        Raises:
            NotFoundError: if no entry has that id
        """
        async with self._lock:
            index, _ = self.get_by_id(entry_id)
            return await self._remove_at(index)

    async def _remove_at(self, index: int) -> MutationResult:
        removed = self._entries[index]
        self._entries = self._entries[:index] + self._entries[index + 1:]
        result = MutationResult(entry=removed, index=index)
        result.store_error = await self._persist()
        self._log_mutation("Schedule deleted", result)
        return result

    async def _persist(self) -> str | None:
        """Save the current list; return the error message on failure."""
        save = asyncio.ensure_future(
            asyncio.to_thread(self.store.save, list(self._entries), self._next_id)
        )
        try:
            try:
                await asyncio.shield(save)
            except asyncio.CancelledError:
                # The worker thread cannot be stopped; keep holding the lock
                # until it finishes so saves never overlap.
                await asyncio.wait({save})
                raise
        except StoreError as e:
            return str(e)
        return None

    @staticmethod
    def _log_mutation(action: str, result: MutationResult) -> None:
        message = f"{action}: [{result.index}] (id {result.entry.id}) {describe_entry(result.entry)}"
        if result.persisted:
            logger.info(message)
        else:
            logger.warning(f"{message}; not persisted, change will be lost on restart: {result.store_error}")
