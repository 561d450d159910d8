from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from shotscan.models import ClassifiedCandidates, ConfirmedHole, HoleCandidate, PixelPoint

logger = logging.getLogger(__name__)

# touch radii in screen points; image-space radius shrinks as the operator zooms in
MIN_TOUCH_RADIUS = 10.0
BASE_TOUCH_RADIUS = 25.0


class EditKind(str, Enum):
    ADD = "add"
    MOVE = "move"
    DELETE = "delete"
    CLEAR = "clear"


@dataclass(frozen=True)
class UndoAction:
    kind: EditKind
    hole_id: Optional[int] = None
    hole: Optional[ConfirmedHole] = None
    index: int = 0
    previous_position: Optional[PixelPoint] = None
    cleared: Tuple[ConfirmedHole, ...] = ()


def touch_radius(zoom: float) -> float:
    """Hit-test radius in image pixels at the given zoom factor."""
    if zoom <= 0:
        raise ValueError("zoom must be positive")
    return max(MIN_TOUCH_RADIUS, BASE_TOUCH_RADIUS / zoom)


class CorrectionSession:
    """Operator edits over the confirmed holes of one session.

    Edits must be serialized by the caller. Only the most recent edit can be undone.
    """

    def __init__(self, holes: Iterable[ConfirmedHole] = ()) -> None:
        self._holes: List[ConfirmedHole] = list(holes)
        self._next_id = max((hole.id for hole in self._holes), default=0) + 1
        self._last_action: Optional[UndoAction] = None

    @classmethod
    def from_classification(cls, classified: ClassifiedCandidates) -> "CorrectionSession":
        session = cls()
        for candidate in classified.accepted:
            session._holes.append(session._issue(candidate.pixel_position, "auto"))
        return session

    @property
    def holes(self) -> Tuple[ConfirmedHole, ...]:
        return tuple(self._holes)

    @property
    def positions(self) -> List[PixelPoint]:
        return [hole.position for hole in self._holes]

    @property
    def last_action(self) -> Optional[UndoAction]:
        return self._last_action

    @property
    def can_undo(self) -> bool:
        return self._last_action is not None

    def __len__(self) -> int:
        return len(self._holes)

    def get(self, hole_id: int) -> ConfirmedHole:
        return self._holes[self._index_of(hole_id)]

    def add(self, point: PixelPoint, source: str = "manual") -> ConfirmedHole:
        hole = self._issue(point, source)
        self._holes.append(hole)
        self._last_action = UndoAction(EditKind.ADD, hole_id=hole.id)
        return hole

    def confirm(self, candidate: HoleCandidate) -> ConfirmedHole:
        return self.add(candidate.pixel_position, source="suggested")

    def move(self, hole_id: int, point: PixelPoint) -> ConfirmedHole:
        index = self._index_of(hole_id)
        hole = self._holes[index]
        moved = replace(hole, position=(float(point[0]), float(point[1])))
        self._holes[index] = moved
        self._last_action = UndoAction(EditKind.MOVE, hole_id=hole_id, previous_position=hole.position)
        return moved

    def delete(self, hole_id: int) -> ConfirmedHole:
        index = self._index_of(hole_id)
        hole = self._holes.pop(index)
        self._last_action = UndoAction(EditKind.DELETE, hole=hole, index=index)
        return hole

    def clear_all(self) -> None:
        if not self._holes:
            return
        self._last_action = UndoAction(EditKind.CLEAR, cleared=tuple(self._holes))
        self._holes = []

    def undo(self) -> bool:
        action = self._last_action
        if action is None:
            return False
        if action.kind is EditKind.ADD:
            self._holes.pop(self._index_of(action.hole_id))
        elif action.kind is EditKind.DELETE:
            self._holes.insert(action.index, action.hole)
        elif action.kind is EditKind.MOVE:
            index = self._index_of(action.hole_id)
            self._holes[index] = replace(self._holes[index], position=action.previous_position)
        else:
            self._holes = list(action.cleared)
        self._last_action = None
        logger.debug("Undid %s", action.kind.value)
        return True

    def hit_test(self, point: PixelPoint, zoom: float = 1.0) -> Optional[ConfirmedHole]:
        """Nearest hole within the touch radius for ``zoom``, or None."""
        radius = touch_radius(zoom)
        best: Optional[ConfirmedHole] = None
        best_distance = radius
        for hole in self._holes:
            distance = math.hypot(hole.position[0] - point[0], hole.position[1] - point[1])
            if distance <= best_distance and (best is None or distance < best_distance):
                best = hole
                best_distance = distance
        return best

    def _issue(self, point: PixelPoint, source: str) -> ConfirmedHole:
        hole = ConfirmedHole(id=self._next_id, position=(float(point[0]), float(point[1])), source=source)
        self._next_id += 1
        return hole

    def _index_of(self, hole_id: Optional[int]) -> int:
        for index, hole in enumerate(self._holes):
            if hole.id == hole_id:
                return index
        raise KeyError(f"Unknown hole id: {hole_id}")
