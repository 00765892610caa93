"""The owned collection of scan items and its state machine."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .errors import InvalidTransitionError
from .models import TERMINAL_STATES, TRANSITIONS, ItemChange, ScanItem, ScanStatus

LOGGER = logging.getLogger(__name__)

Listener = Callable[[ItemChange], None]


class ScanBatch:
    """Scan items for one session, kept in submission order.

    All mutation is addressed by item id. Every write carries the batch
    generation it was computed under; ``reset`` bumps the generation so that
    results computed for a discarded batch are dropped instead of applied.
    """

    def __init__(self) -> None:
        self._items: Dict[str, ScanItem] = {}
        self._generation = 0
        self._listeners: List[Listener] = []

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def items(self) -> Tuple[ScanItem, ...]:
        return tuple(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def get(self, item_id: str) -> ScanItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise KeyError(f"Unknown scan item {item_id}") from None

    def find(self, item_id: str) -> Optional[ScanItem]:
        return self._items.get(item_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def add(self, images: Iterable[bytes], *, exclude_reprints: bool = True) -> List[ScanItem]:
        created = [ScanItem(image_data=data, exclude_reprints=exclude_reprints) for data in images]
        for item in created:
            self.add_item(item)
        return created

    def add_item(self, item: ScanItem) -> ScanItem:
        if item.status is not ScanStatus.QUEUED:
            raise InvalidTransitionError(f"New scan items must be queued, got {item.status.value}")
        if item.id in self._items:
            raise ValueError(f"Duplicate scan item id {item.id}")
        self._items[item.id] = item
        self._notify(item, None)
        return item

    @property
    def processing_item(self) -> Optional[ScanItem]:
        for item in self._items.values():
            if item.status is ScanStatus.PROCESSING:
                return item
        return None

    def next_queued(self) -> Optional[ScanItem]:
        for item in self._items.values():
            if item.status is ScanStatus.QUEUED:
                return item
        return None

    def claim_next(self) -> Optional[ScanItem]:
        """Move the oldest queued item to processing.

        Returns ``None`` when nothing is queued or another item is still
        processing; at most one item is ever in flight.
        """

        if self.processing_item is not None:
            return None
        item = self.next_queued()
        if item is None:
            return None
        return self.transition(item.id, ScanStatus.PROCESSING)

    def transition(
        self,
        item_id: str,
        status: ScanStatus,
        *,
        generation: Optional[int] = None,
        **changes: object,
    ) -> Optional[ScanItem]:
        """Apply a status change and field updates to one item.

        When ``generation`` is given the write is dropped (returning ``None``)
        if the batch was reset since, or the item no longer exists.
        """

        if generation is not None and generation != self._generation:
            LOGGER.info(
                "Dropping stale write for %s (generation %d, current %d)",
                item_id,
                generation,
                self._generation,
            )
            return None
        current = self._items.get(item_id)
        if current is None:
            if generation is not None:
                LOGGER.info("Dropping write for discarded item %s", item_id)
                return None
            raise KeyError(f"Unknown scan item {item_id}")
        if status not in TRANSITIONS[current.status]:
            raise InvalidTransitionError(
                f"Scan item {item_id} cannot move from {current.status.value} to {status.value}"
            )
        updated = replace(current, status=status, **changes)
        self._items[item_id] = updated
        self._notify(updated, current.status)
        return updated

    def reset(self) -> int:
        discarded = len(self._items)
        self._items.clear()
        self._generation += 1
        LOGGER.info("Batch reset; discarded %d item(s), generation now %d", discarded, self._generation)
        return discarded

    def count(self, *statuses: ScanStatus) -> int:
        wanted = set(statuses)
        return sum(1 for item in self._items.values() if item.status in wanted)

    @property
    def done_count(self) -> int:
        return self.count(*TERMINAL_STATES)

    @property
    def is_complete(self) -> bool:
        return bool(self._items) and self.done_count == len(self._items)

    def next_for_review(self) -> Optional[ScanItem]:
        for item in self._items.values():
            if item.awaiting_review:
                return item
        return None

    def _notify(self, item: ScanItem, previous: Optional[ScanStatus]) -> None:
        change = ItemChange(item=item, previous_status=previous, generation=self._generation)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:  # pragma: no cover - defensive logging
                LOGGER.exception("Batch listener failed for %s", item.id)
