"""Snapshot-based undo/redo over the canvas graph model.

``past`` holds pre-mutation snapshots (newest on the right), ``future`` holds
states undone by the user (newest on the left). Both are bounded; overflow
evicts the oldest entry. Any new edit invalidates the redo branch.
"""

import contextlib
from collections import deque
from collections.abc import Iterator

import structlog

from app.core.config import settings
from app.services.graph_model import GraphModel, GraphSnapshot

logger = structlog.stdlib.get_logger(__name__)


class HistoryStack:
    """Linear undo/redo for one GraphModel."""

    def __init__(self, model: GraphModel, capacity: int | None = None):
        self._model = model
        self.capacity = capacity if capacity is not None else settings.history.history_capacity
        if self.capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._past: deque[GraphSnapshot] = deque(maxlen=self.capacity)
        self._future: deque[GraphSnapshot] = deque(maxlen=self.capacity)
        self._applying = False

    @property
    def past(self) -> tuple[GraphSnapshot, ...]:
        return tuple(self._past)

    @property
    def future(self) -> tuple[GraphSnapshot, ...]:
        return tuple(self._future)

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    @property
    def is_applying(self) -> bool:
        return self._applying

    def record(self) -> None:
        """Push the current state before a mutation. Suppressed while applying history."""
        if self._applying:
            return
        self._past.append(self._model.snapshot())
        self._future.clear()

    def undo(self) -> bool:
        if not self._past:
            return False
        previous = self._past.pop()
        self._future.appendleft(self._model.snapshot())
        with self._apply_guard():
            self._model.restore(previous)
        logger.debug("history_undo", past=len(self._past), future=len(self._future))
        return True

    def redo(self) -> bool:
        if not self._future:
            return False
        following = self._future.popleft()
        self._past.append(self._model.snapshot())
        with self._apply_guard():
            self._model.restore(following)
        logger.debug("history_redo", past=len(self._past), future=len(self._future))
        return True

    def rekey_node(self, old_id: int, new_id: int) -> None:
        """Follow a node that the store re-created under a new id."""
        self._past = deque((s.rekeyed(old_id, new_id) for s in self._past), maxlen=self.capacity)
        self._future = deque(
            (s.rekeyed(old_id, new_id) for s in self._future), maxlen=self.capacity
        )

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()

    @contextlib.contextmanager
    def _apply_guard(self) -> Iterator[None]:
        self._applying = True
        try:
            yield
        finally:
            self._applying = False


def history_action_for(
    key: str, *, ctrl: bool = False, meta: bool = False, shift: bool = False
) -> str | None:
    """Map a key press to "undo" / "redo" (Ctrl/Cmd+Z, Ctrl/Cmd+Y, Ctrl/Cmd+Shift+Z)."""
    if not (ctrl or meta):
        return None
    if key.lower() == "z":
        return "redo" if shift else "undo"
    if key.lower() == "y":
        return "redo"
    return None
