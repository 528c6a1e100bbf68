"""Pointer-driven placement of people and tables on the floor plan."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .config import BoardConfig
from .events import DragTarget, PointerDown, PointerMove, PointerUp
from .models import Person, Placement, Table, normalize_name
from .storage import new_person_id, new_table_id

logger = logging.getLogger("minutestaker")

ZONE_LIST = "list"
ZONE_CANVAS = "canvas"
ZONE_ABSENT = "absent"

SETUP_STAGE = 1
MEETING_STAGE = 2

TABLE_SHAPES = ("oval", "circle", "rect")
RESIZE_HANDLES = ("e", "s", "se")


@dataclass
class Rect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom


def _clamp(value: float, upper: float) -> float:
    return max(0.0, min(value, upper))


@dataclass
class DragSession:
    type: str
    target_id: str
    pointer_id: int
    start_x: float
    start_y: float
    origin: str
    hover: Optional[str] = None
    dragging: bool = False
    proxy: Optional[Tuple[float, float]] = None
    offset_x: float = 0.0
    offset_y: float = 0.0
    handle: Optional[str] = None
    start_width: float = 0.0
    start_height: float = 0.0


@dataclass
class DragOutcome:
    """Result of a finished gesture.

    ``action`` is one of ``placed``, ``absent``, ``kept``, ``returned``,
    ``click``, ``moved``, ``resized`` or ``cancelled``.
    """

    action: str
    session: DragSession

    @property
    def target_id(self) -> str:
        return self.session.target_id


class PlacementEngine:
    def __init__(
        self,
        board: Optional[BoardConfig] = None,
        canvas: Optional[Rect] = None,
        absent_zone: Optional[Rect] = None,
    ) -> None:
        self.board = board or BoardConfig()
        self.canvas = canvas or Rect(0, 0, 960, 640)
        self.absent_zone = absent_zone
        self.people: List[Person] = []
        self.tables: List[Table] = []
        self.stage = SETUP_STAGE
        self._drags: Dict[int, DragSession] = {}

    def set_layout(self, canvas: Rect, absent_zone: Optional[Rect] = None) -> None:
        self.canvas = canvas
        self.absent_zone = absent_zone

    # -- lookups ---------------------------------------------------------

    def find_person(self, person_id: str) -> Optional[Person]:
        return next((p for p in self.people if p.id == person_id), None)

    def find_person_by_name(self, name: str) -> Optional[Person]:
        needle = name.lower()
        return next((p for p in self.people if p.name.lower() == needle), None)

    def find_table(self, table_id: str) -> Optional[Table]:
        return next((t for t in self.tables if t.id == table_id), None)

    def drag_for(self, pointer_id: int) -> Optional[DragSession]:
        return self._drags.get(pointer_id)

    @property
    def active_drags(self) -> List[DragSession]:
        return list(self._drags.values())

    def hover_zone(self, x: float, y: float) -> Optional[str]:
        if self.absent_zone is not None and self.absent_zone.contains(x, y):
            return ZONE_ABSENT
        if self.canvas.contains(x, y):
            return ZONE_CANVAS
        return None

    def canvas_coords(self, x: float, y: float) -> Placement:
        size = self.board.person_size
        offset = size / 2
        return Placement(
            x=_clamp(x - self.canvas.left - offset, self.canvas.width - size),
            y=_clamp(y - self.canvas.top - offset, self.canvas.height - size),
        )

    # -- roster ----------------------------------------------------------

    def set_roster(self, people: List[Person]) -> None:
        guests = [p for p in self.people if p.is_guest]
        self.people = list(people) + guests

    def add_guest(self, raw_name: str) -> Optional[Person]:
        name = normalize_name(raw_name)
        if not name or self.find_person_by_name(name):
            return None
        person = Person(id=new_person_id(), name=name, is_guest=True)
        self.people.append(person)
        logger.info("Guest added: %s", name)
        return person

    def remove_guest(self, person_id: str) -> bool:
        person = self.find_person(person_id)
        if person is None or not person.is_guest:
            return False
        self.people = [p for p in self.people if p.id != person_id]
        for pointer_id, drag in list(self._drags.items()):
            if drag.type == "person" and drag.target_id == person_id:
                del self._drags[pointer_id]
        return True

    def place_person(self, person_id: str, x: float, y: float) -> None:
        person = self.find_person(person_id)
        if person is None:
            return
        person.placement = Placement(x=x, y=y)
        person.absent = False

    def mark_absent(self, person_id: str) -> None:
        person = self.find_person(person_id)
        if person is None:
            return
        person.absent = True
        person.placement = None

    def clear_person_status(self, person_id: str) -> None:
        person = self.find_person(person_id)
        if person is None:
            return
        person.absent = False
        person.placement = None

    # -- tables ----------------------------------------------------------

    def add_table(self, shape: str = "oval") -> Optional[Table]:
        if self.stage != SETUP_STAGE:
            return None
        if shape not in TABLE_SHAPES:
            raise ValueError(f"Unknown table shape: {shape}")
        board = self.board
        if shape == "circle":
            width, height = board.circle_size, board.circle_size
        elif shape == "rect":
            width, height = board.rect_width, board.rect_height
        else:
            width, height = board.oval_width, board.oval_height
        offset = len(self.tables) * board.table_stagger
        table = Table(
            id=new_table_id(),
            label=f"Table {len(self.tables) + 1}",
            x=board.table_origin + offset,
            y=board.table_origin + offset,
            width=width,
            height=height,
            shape=shape,
        )
        self.tables.append(table)
        return table

    def delete_table(self, table_id: str) -> bool:
        if self.stage != SETUP_STAGE:
            return False
        before = len(self.tables)
        self.tables = [t for t in self.tables if t.id != table_id]
        return len(self.tables) != before

    def clear_tables(self) -> None:
        if self.stage != SETUP_STAGE:
            return
        self.tables = []
        for person in self.people:
            person.placement = None
            person.absent = False

    def reset(self) -> None:
        self.cancel_all()
        self.tables = []
        for person in self.people:
            person.placement = None
            person.absent = False
        self.stage = SETUP_STAGE

    # -- drag lifecycle --------------------------------------------------

    def begin_drag(self, target: DragTarget, event: PointerDown) -> Optional[DragSession]:
        if event.button != 0:
            return None
        if event.pointer_id in self._drags:
            logger.debug("Pointer %s already dragging; ignored", event.pointer_id)
            return None
        if target.kind == "person":
            session = self._begin_person(target, event)
        elif target.kind in ("table", "resize"):
            session = self._begin_table(target, event)
        else:
            raise ValueError(f"Unknown drag target: {target.kind}")
        if session is not None:
            self._drags[event.pointer_id] = session
        return session

    def _begin_person(self, target: DragTarget, event: PointerDown) -> Optional[DragSession]:
        person = self.find_person(target.id)
        if person is None:
            return None
        return DragSession(
            type="person",
            target_id=person.id,
            pointer_id=event.pointer_id,
            start_x=event.x,
            start_y=event.y,
            origin=person.status,
        )

    def _begin_table(self, target: DragTarget, event: PointerDown) -> Optional[DragSession]:
        if self.stage != SETUP_STAGE:
            return None
        if any(d.type == "person" for d in self._drags.values()):
            return None
        table = self.find_table(target.id)
        if table is None:
            return None
        session = DragSession(
            type=target.kind,
            target_id=table.id,
            pointer_id=event.pointer_id,
            start_x=event.x,
            start_y=event.y,
            origin=ZONE_CANVAS,
        )
        if target.kind == "resize":
            if target.handle not in RESIZE_HANDLES:
                raise ValueError(f"Unknown resize handle: {target.handle}")
            session.handle = target.handle
            session.start_width = table.width
            session.start_height = table.height
        else:
            session.offset_x = event.x - (self.canvas.left + table.x)
            session.offset_y = event.y - (self.canvas.top + table.y)
        return session

    def update_drag(self, event: PointerMove) -> Optional[DragSession]:
        session = self._drags.get(event.pointer_id)
        if session is None:
            return None
        if session.type == "person":
            self._update_person(session, event)
        elif session.type == "table":
            self._move_table(session, event)
        else:
            self.resize_table(session, event)
        return session

    def _update_person(self, session: DragSession, event: PointerMove) -> None:
        dx = event.x - session.start_x
        dy = event.y - session.start_y
        if not session.dragging and math.hypot(dx, dy) > self.board.drag_threshold_px:
            session.dragging = True
        if session.dragging:
            offset = self.board.person_size / 2
            session.proxy = (event.x - offset, event.y - offset)
            session.hover = self.hover_zone(event.x, event.y)

    def _move_table(self, session: DragSession, event: PointerMove) -> None:
        table = self.find_table(session.target_id)
        if table is None:
            return
        session.dragging = True
        table.x = _clamp(
            event.x - self.canvas.left - session.offset_x,
            self.canvas.width - table.width,
        )
        table.y = _clamp(
            event.y - self.canvas.top - session.offset_y,
            self.canvas.height - table.height,
        )

    def resize_table(self, session: DragSession, event: PointerMove) -> Optional[Table]:
        table = self.find_table(session.target_id)
        if table is None or session.handle is None:
            return None
        session.dragging = True
        min_size = self.board.min_table_size
        width = session.start_width
        height = session.start_height
        if "e" in session.handle:
            width = max(min_size, session.start_width + event.x - session.start_x)
        if "s" in session.handle:
            height = max(min_size, session.start_height + event.y - session.start_y)

        max_width = self.canvas.width - table.x
        max_height = self.canvas.height - table.y
        if table.shape == "circle":
            size = min(max(width, height), max_width, max_height)
            width = height = size
        else:
            width = min(width, max_width)
            height = min(height, max_height)

        table.width = width
        table.height = height
        return table

    def end_drag(self, event: PointerUp) -> Optional[DragOutcome]:
        session = self._drags.pop(event.pointer_id, None)
        if session is None:
            return None
        if session.type == "table":
            return DragOutcome("moved", session)
        if session.type == "resize":
            return DragOutcome("resized", session)
        if not session.dragging:
            return DragOutcome("click", session)

        session.hover = self.hover_zone(event.x, event.y)
        if session.hover == ZONE_ABSENT:
            self.mark_absent(session.target_id)
            action = "absent"
        elif session.hover == ZONE_CANVAS:
            coords = self.canvas_coords(event.x, event.y)
            self.place_person(session.target_id, coords.x, coords.y)
            action = "placed"
        elif session.origin == ZONE_CANVAS:
            action = "kept"
        else:
            self.clear_person_status(session.target_id)
            action = "returned"
        logger.debug("Drop %s -> %s", session.target_id, action)
        return DragOutcome(action, session)

    def cancel_drag(self, pointer_id: int) -> Optional[DragOutcome]:
        session = self._drags.pop(pointer_id, None)
        if session is None:
            return None
        logger.debug("Drag cancelled for pointer %s", pointer_id)
        return DragOutcome("cancelled", session)

    def cancel_all(self) -> int:
        count = len(self._drags)
        self._drags.clear()
        return count
