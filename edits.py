"""Edit model and the in-memory edit log."""

from __future__ import annotations

import dataclasses
import enum
import itertools
from typing import Iterator, NamedTuple, Union

from PySide6.QtCore import QPointF
from PySide6.QtGui import QColor, QImage

from log import get_logger

log = get_logger("edits")


class Tool(enum.Enum):
  SELECT = "select"
  LINE = "line"
  ARROW = "arrow"
  RECTANGLE = "rectangle"
  COPY_REGION = "copy_region"
  ERASER = "eraser"
  BLUR = "blur"
  PIXELATE = "pixelate"


STROKE_TOOLS = (Tool.LINE, Tool.ARROW, Tool.RECTANGLE, Tool.BLUR, Tool.PIXELATE)
FILTER_TOOLS = (Tool.BLUR, Tool.PIXELATE)
# Tools whose points form a polyline; the rest use only first and last point
FREEHAND_TOOLS = (Tool.LINE, Tool.BLUR, Tool.PIXELATE)
TWO_POINT_TOOLS = (Tool.ARROW, Tool.RECTANGLE)

DEFAULT_INTENSITY = 40

STROKE = "stroke"
REGION = "region"


@dataclasses.dataclass
class StrokeAction:
  id: int
  tool: Tool
  points: list
  color: QColor
  width: float
  intensity: int | None = None

  def __post_init__(self) -> None:
    if self.tool not in STROKE_TOOLS:
      raise ValueError(f"{self.tool} is not a stroke tool")
    if not self.points:
      raise ValueError("a stroke needs at least one point")

  @property
  def is_filter(self) -> bool:
    return self.tool in FILTER_TOOLS

  @property
  def effective_intensity(self) -> int:
    return DEFAULT_INTENSITY if self.intensity is None else self.intensity

  @property
  def first(self) -> QPointF:
    return self.points[0]

  @property
  def last(self) -> QPointF:
    return self.points[-1]


@dataclasses.dataclass
class PastedRegion:
  id: int
  pixels: QImage
  position: QPointF
  width: float
  height: float


Edit = Union[StrokeAction, PastedRegion]


class EditRef(NamedTuple):
  """Addresses one edit by collection kind and index."""
  kind: str
  index: int


class LogEntry(NamedTuple):
  kind: str
  index: int
  edit: Edit

  @property
  def ref(self) -> EditRef:
    return EditRef(self.kind, self.index)


class EditLog:
  """Owns the stroke and region collections.

  Entries are never reordered; chronological order across both
  collections is rebuilt on demand by sorting on the shared id source.
  """

  def __init__(self) -> None:
    self.strokes: list[StrokeAction] = []
    self.regions: list[PastedRegion] = []
    self._ids = itertools.count(1)
    self._last_id = 0

  def next_id(self) -> int:
    self._last_id = next(self._ids)
    return self._last_id

  def _known_ids(self) -> set[int]:
    return {e.id for e in self.strokes} | {r.id for r in self.regions}

  def _claim(self, edit_id: int) -> None:
    if edit_id in self._known_ids():
      raise ValueError(f"duplicate edit id {edit_id}")
    if edit_id > self._last_id:
      self._ids = itertools.count(edit_id + 1)
      self._last_id = edit_id

  # -- Creation ---------------------------------------------------------------

  def add_stroke(self, tool: Tool, points: list, color: QColor, width: float,
                 intensity: int | None = None) -> StrokeAction:
    action = StrokeAction(
      id=self.next_id(), tool=tool, points=list(points),
      color=QColor(color), width=width, intensity=intensity,
    )
    self.strokes.append(action)
    log.debug("Added %s stroke id=%d (%d points)", tool.value, action.id, len(action.points))
    return action

  def add_region(self, pixels: QImage, position: QPointF, width: float,
                 height: float) -> PastedRegion:
    region = PastedRegion(
      id=self.next_id(), pixels=pixels.copy(), position=QPointF(position),
      width=width, height=height,
    )
    self.regions.append(region)
    log.debug("Added region id=%d at (%.1f, %.1f) %gx%g",
              region.id, position.x(), position.y(), width, height)
    return region

  def append_stroke(self, action: StrokeAction) -> None:
    self._claim(action.id)
    self.strokes.append(action)

  def append_region(self, region: PastedRegion) -> None:
    self._claim(region.id)
    self.regions.append(region)

  # -- Mutation ---------------------------------------------------------------

  def remove_stroke(self, index: int) -> StrokeAction:
    action = self.strokes.pop(index)
    log.debug("Removed stroke id=%d", action.id)
    return action

  def remove_region(self, index: int) -> PastedRegion:
    region = self.regions.pop(index)
    log.debug("Removed region id=%d", region.id)
    return region

  def remove_ref(self, ref: EditRef) -> Edit:
    if ref.kind == STROKE:
      return self.remove_stroke(ref.index)
    return self.remove_region(ref.index)

  def replace_stroke(self, index: int, action: StrokeAction) -> None:
    old = self.strokes[index]
    if action.id != old.id and action.id in self._known_ids():
      raise ValueError(f"duplicate edit id {action.id}")
    self.strokes[index] = action

  def replace_region(self, index: int, region: PastedRegion) -> None:
    old = self.regions[index]
    if region.id != old.id and region.id in self._known_ids():
      raise ValueError(f"duplicate edit id {region.id}")
    self.regions[index] = region

  def get(self, ref: EditRef) -> Edit:
    if ref.kind == STROKE:
      return self.strokes[ref.index]
    return self.regions[ref.index]

  # -- Ordering ---------------------------------------------------------------

  def _entries(self) -> list[LogEntry]:
    return (
      [LogEntry(STROKE, i, a) for i, a in enumerate(self.strokes)]
      + [LogEntry(REGION, i, r) for i, r in enumerate(self.regions)]
    )

  def chronological(self) -> list[LogEntry]:
    """All edits oldest-first (painter's order)."""
    return sorted(self._entries(), key=lambda e: e.edit.id)

  def topmost_first(self) -> list[LogEntry]:
    """All edits newest-first (hit-test priority)."""
    return sorted(self._entries(), key=lambda e: e.edit.id, reverse=True)

  def latest(self) -> LogEntry | None:
    entries = self._entries()
    if not entries:
      return None
    return max(entries, key=lambda e: e.edit.id)

  def undo(self) -> Edit | None:
    """Remove the most recent edit across both collections."""
    entry = self.latest()
    if entry is None:
      return None
    return self.remove_ref(entry.ref)

  def clear(self) -> None:
    self.strokes.clear()
    self.regions.clear()
    log.debug("Cleared edit log")

  def __len__(self) -> int:
    return len(self.strokes) + len(self.regions)

  def __iter__(self) -> Iterator[LogEntry]:
    return iter(self.chronological())
