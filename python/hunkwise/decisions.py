from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional

import structlog

from hunkwise.models import Decision, DecisionChangeEvent

logger = structlog.get_logger(__name__)

DecisionListener = Callable[[DecisionChangeEvent], None]


class DecisionManager:
    """
    Tracks the reviewer's decision for every modified block of one segment.

    The managed index set is fixed at construction. Mutations naming any other
    index are ignored, so a stale reference from a renderer can never create a
    decision the segment does not own.
    """

    def __init__(
        self,
        modified_indices: Iterable[int],
        on_change: Optional[DecisionListener] = None,
        segment_index: Optional[int] = None,
    ):
        self._indices: List[int] = list(dict.fromkeys(modified_indices))
        self._known = frozenset(self._indices)
        self._decisions: Dict[int, Decision] = {i: Decision.PENDING for i in self._indices}
        self._listeners: List[DecisionListener] = []
        self.segment_index = segment_index
        if on_change is not None:
            self._listeners.append(on_change)

    @property
    def modified_indices(self) -> List[int]:
        return list(self._indices)

    def subscribe(self, listener: DecisionListener) -> Callable[[], None]:
        """Registers a change listener. Returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set(self, block_index: int, decision: Decision) -> None:
        decision = Decision(decision)
        if block_index not in self._known:
            logger.debug(f"Ignoring decision for unknown block {block_index}", segment=self.segment_index)
            return

        self._decisions[block_index] = decision
        self._notify(block_index, decision)

    def get(self, block_index: int) -> Decision:
        return self._decisions.get(block_index, Decision.PENDING)

    def undo(self, block_index: int) -> None:
        self.set(block_index, Decision.PENDING)

    def accept_all_incoming(self) -> None:
        self._set_all(Decision.INCOMING)

    def accept_all_current(self) -> None:
        self._set_all(Decision.CURRENT)

    def reset_all(self) -> None:
        self._set_all(Decision.PENDING)

    def resolved_count(self) -> int:
        return sum(1 for d in self._decisions.values() if d != Decision.PENDING)

    def total_count(self) -> int:
        return len(self._indices)

    def is_complete(self) -> bool:
        return self.resolved_count() == self.total_count()

    def snapshot(self) -> Mapping[int, Decision]:
        """Read-only copy of the index -> decision mapping."""
        return MappingProxyType(dict(self._decisions))

    def _set_all(self, decision: Decision) -> None:
        for index in self._indices:
            self._decisions[index] = decision
        # One notification for the whole batch, keyed on the last block
        if self._indices:
            self._notify(self._indices[-1], decision)

    def _notify(self, block_index: int, decision: Decision) -> None:
        if not self._listeners:
            return
        event = DecisionChangeEvent(
            block_index=block_index,
            decision=decision,
            resolved_count=self.resolved_count(),
            total_count=self.total_count(),
            segment_index=self.segment_index,
        )
        for listener in list(self._listeners):
            listener(event)
