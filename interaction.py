"""Pointer-event state machine that turns pointer input into edit log changes."""

from __future__ import annotations

import dataclasses
import enum
import math
from typing import Callable

from PySide6.QtCore import Qt, QPointF, QRect, QRectF
from PySide6.QtGui import QColor, QImage

from compositor import FeedbackState, capture_pixels
from edits import (
  EditLog, EditRef, PastedRegion, StrokeAction, Tool,
  FILTER_TOOLS, FREEHAND_TOOLS, TWO_POINT_TOOLS, DEFAULT_INTENSITY,
)
from hit_test import (
  Handle, Hit, bounds_of, region_box, find_erase_target_at, find_selectable_at,
)
from log import get_logger

log = get_logger("interaction")

MIN_RESIZE = 10
PASTE_OFFSET = 10

DEFAULT_COLOR = QColor("#c4213a")
DEFAULT_STROKE_WIDTH = 8
DEFAULT_TOOL = Tool.ARROW


class Mode(enum.Enum):
  IDLE = "idle"
  CREATING = "creating"
  DRAGGING = "dragging"
  MARKING_SELECTION = "marking_selection"
  ERASING = "erasing"


@dataclasses.dataclass
class EditorSettings:
  """Live tool configuration supplied by the application layer."""
  tool: Tool = DEFAULT_TOOL
  color: QColor = dataclasses.field(default_factory=lambda: QColor(DEFAULT_COLOR))
  stroke_width: float = DEFAULT_STROKE_WIDTH
  intensity: int = DEFAULT_INTENSITY


@dataclasses.dataclass
class DragCapture:
  """Geometry of the dragged edit as it was when the drag began."""
  ref: EditRef
  handle: Handle
  origin: QPointF
  initial_box: QRectF
  initial_points: list | None = None
  initial_position: QPointF | None = None


@dataclasses.dataclass
class InteractionState:
  mode: Mode = Mode.IDLE
  tool: Tool | None = None  # tool the active interaction started with
  points: list = dataclasses.field(default_factory=list)
  selection_start: QPointF | None = None
  selection_end: QPointF | None = None
  drag: DragCapture | None = None
  hovered: Hit | None = None
  hovered_erase: EditRef | None = None
  pointer: QPointF | None = None

  @property
  def active(self) -> bool:
    return self.mode is not Mode.IDLE

  def selection_rect(self) -> QRectF | None:
    if self.selection_start is None or self.selection_end is None:
      return None
    return QRectF(self.selection_start, self.selection_end).normalized()

  def feedback(self, tool: Tool) -> FeedbackState:
    return FeedbackState(
      tool=tool,
      dragged=self.drag.ref if self.drag else None,
      hovered=self.hovered,
      hovered_erase=self.hovered_erase,
    )

  def end_interaction(self) -> None:
    self.mode = Mode.IDLE
    self.tool = None
    self.points = []
    self.selection_start = None
    self.selection_end = None
    self.drag = None


# -- Resize math --------------------------------------------------------------

def resized_box(initial: QRectF, handle: Handle, dx: float, dy: float) -> QRectF:
  """Box after dragging handle by (dx, dy); resized sides never go below MIN_RESIZE."""
  x, y, w, h = initial.x(), initial.y(), initial.width(), initial.height()
  if handle is Handle.MOVE:
    return QRectF(x + dx, y + dy, w, h)
  edges = handle.edges
  if "e" in edges:
    w = max(MIN_RESIZE, initial.width() + dx)
  if "w" in edges:
    w = max(MIN_RESIZE, initial.width() - dx)
    x = initial.x() + (initial.width() - w)
  if "s" in edges:
    h = max(MIN_RESIZE, initial.height() + dy)
  if "n" in edges:
    h = max(MIN_RESIZE, initial.height() - dy)
    y = initial.y() + (initial.height() - h)
  return QRectF(x, y, w, h)


def rescale_points(points: list, old: QRectF, new: QRectF) -> list:
  """Map points proportionally from old box to new box.

  A zero-sized axis keeps its offsets unscaled.
  """
  sx = new.width() / old.width() if old.width() else 1.0
  sy = new.height() / old.height() if old.height() else 1.0
  return [
    QPointF(new.x() + (p.x() - old.x()) * sx, new.y() + (p.y() - old.y()) * sy)
    for p in points
  ]


def translate_points(points: list, dx: float, dy: float) -> list:
  return [QPointF(p.x() + dx, p.y() + dy) for p in points]


_HANDLE_CURSORS = {
  Handle.NW: Qt.CursorShape.SizeFDiagCursor,
  Handle.SE: Qt.CursorShape.SizeFDiagCursor,
  Handle.NE: Qt.CursorShape.SizeBDiagCursor,
  Handle.SW: Qt.CursorShape.SizeBDiagCursor,
  Handle.N: Qt.CursorShape.SizeVerCursor,
  Handle.S: Qt.CursorShape.SizeVerCursor,
  Handle.E: Qt.CursorShape.SizeHorCursor,
  Handle.W: Qt.CursorShape.SizeHorCursor,
  Handle.POINT_START: Qt.CursorShape.PointingHandCursor,
  Handle.POINT_END: Qt.CursorShape.PointingHandCursor,
  Handle.MOVE: Qt.CursorShape.SizeAllCursor,
}


def cursor_for(tool: Tool, hovered: Hit | None) -> Qt.CursorShape:
  # Brush-like tools draw their own preview ring instead of a cursor
  if tool in (Tool.ERASER, Tool.BLUR, Tool.PIXELATE, Tool.LINE):
    return Qt.CursorShape.BlankCursor
  if tool is not Tool.SELECT:
    return Qt.CursorShape.CrossCursor
  if hovered is None:
    return Qt.CursorShape.ArrowCursor
  return _HANDLE_CURSORS[hovered.handle]


# -- Controller ---------------------------------------------------------------

def _round_half_up(v: float) -> int:
  # round() is half-to-even; selections snap .5 upward
  return math.floor(v + 0.5)


class InteractionController:
  """Drives create, drag/resize, erase and copy-region interactions.

  The edit log and the live settings are owned by the caller and passed
  into every call; the controller only keeps a reference to the
  interaction state it was given.
  """

  def __init__(self, state: InteractionState,
               on_tool_change: Callable[[Tool], None] | None = None,
               on_analyze_request: Callable[[QImage], None] | None = None):
    self.state = state
    self.on_tool_change = on_tool_change
    self.on_analyze_request = on_analyze_request

  @property
  def is_active(self) -> bool:
    return self.state.active

  # -- Pointer events ---------------------------------------------------------

  def pointer_down(self, edit_log: EditLog, settings: EditorSettings,
                   p: QPointF) -> None:
    st = self.state
    if st.active:
      return
    st.pointer = QPointF(p)
    tool = settings.tool

    if tool is Tool.SELECT:
      hit = find_selectable_at(edit_log, p)
      if hit is not None:
        self.begin_drag(edit_log, hit, p)
    elif tool is Tool.ERASER:
      st.mode = Mode.ERASING
      st.tool = tool
      self._erase_at(edit_log, settings, p)
    elif tool is Tool.COPY_REGION:
      st.mode = Mode.MARKING_SELECTION
      st.tool = tool
      st.selection_start = QPointF(p)
      st.selection_end = QPointF(p)
    else:
      st.mode = Mode.CREATING
      st.tool = tool
      st.points = [QPointF(p)]

  def begin_drag(self, edit_log: EditLog, hit: Hit, p: QPointF) -> None:
    st = self.state
    edit = edit_log.get(hit.ref)
    if isinstance(edit, PastedRegion):
      capture = DragCapture(
        ref=hit.ref, handle=hit.handle, origin=QPointF(p),
        initial_box=region_box(edit), initial_position=QPointF(edit.position),
      )
    else:
      capture = DragCapture(
        ref=hit.ref, handle=hit.handle, origin=QPointF(p),
        initial_box=bounds_of(edit),
        initial_points=[QPointF(pt) for pt in edit.points],
      )
    st.mode = Mode.DRAGGING
    st.tool = Tool.SELECT
    st.drag = capture
    log.debug("Drag started on %s #%d with handle %s", hit.kind, hit.index, hit.handle.value)

  def pointer_move(self, edit_log: EditLog, settings: EditorSettings,
                   p: QPointF) -> bool:
    """Returns True when the rendered surface needs refreshing."""
    st = self.state
    if not st.active:
      return self.hover(edit_log, settings, p)
    st.pointer = QPointF(p)

    if st.mode is Mode.DRAGGING:
      self._drag_to(edit_log, p)
    elif st.mode is Mode.CREATING:
      if st.tool in FREEHAND_TOOLS:
        st.points.append(QPointF(p))
      else:
        st.points = [st.points[0], QPointF(p)]
    elif st.mode is Mode.ERASING:
      self._erase_at(edit_log, settings, p)
    elif st.mode is Mode.MARKING_SELECTION:
      st.selection_end = QPointF(p)
    return True

  def pointer_up(self, edit_log: EditLog, settings: EditorSettings,
                 surface: QImage):
    """Finalize the active interaction.

    Returns the edit created, if any. Raises PixelAccessDenied when a copy
    region is taken from a protected surface; the interaction still ends.
    """
    st = self.state
    mode = st.mode
    try:
      if mode is Mode.MARKING_SELECTION:
        return self._finish_selection(edit_log, surface)
      if mode is Mode.CREATING:
        return self._finish_stroke(edit_log, settings)
      if mode is Mode.DRAGGING:
        log.debug("Drag finished on %s #%d", st.drag.ref.kind, st.drag.ref.index)
      return None
    finally:
      st.end_interaction()

  def hover(self, edit_log: EditLog, settings: EditorSettings, p: QPointF) -> bool:
    """Recompute hover targets; returns True if they changed."""
    st = self.state
    st.pointer = QPointF(p)
    if st.active:
      return False
    hovered = None
    hovered_erase = None
    if settings.tool is Tool.SELECT:
      hovered = find_selectable_at(edit_log, p)
    elif settings.tool is Tool.ERASER:
      hovered_erase = find_erase_target_at(edit_log, p, settings.stroke_width)
    changed = (hovered, hovered_erase) != (st.hovered, st.hovered_erase)
    st.hovered = hovered
    st.hovered_erase = hovered_erase
    return changed

  def leave(self) -> bool:
    st = self.state
    st.pointer = None
    if st.active:
      return False
    return self.cancel_hover()

  def cancel_hover(self) -> bool:
    st = self.state
    changed = st.hovered is not None or st.hovered_erase is not None
    st.hovered = None
    st.hovered_erase = None
    return changed

  # -- Helpers ----------------------------------------------------------------

  def preview_stroke(self, settings: EditorSettings) -> StrokeAction | None:
    """In-progress stroke to draw on top of the log, if one is being created."""
    st = self.state
    if st.mode is not Mode.CREATING or not st.points:
      return None
    return StrokeAction(
      id=0, tool=st.tool, points=list(st.points), color=QColor(settings.color),
      width=settings.stroke_width,
      intensity=settings.intensity if st.tool in FILTER_TOOLS else None,
    )

  def request_analysis(self, surface: QImage) -> None:
    if self.on_analyze_request:
      self.on_analyze_request(surface)

  def _erase_at(self, edit_log: EditLog, settings: EditorSettings, p: QPointF) -> bool:
    target = find_erase_target_at(edit_log, p, settings.stroke_width)
    if target is None:
      return False
    edit_log.remove_ref(target)
    self.state.hovered_erase = None
    return True

  def _drag_to(self, edit_log: EditLog, p: QPointF) -> None:
    cap = self.state.drag
    dx = p.x() - cap.origin.x()
    dy = p.y() - cap.origin.y()
    box = resized_box(cap.initial_box, cap.handle, dx, dy)
    edit = edit_log.get(cap.ref)

    if isinstance(edit, PastedRegion):
      edit_log.replace_region(cap.ref.index, dataclasses.replace(
        edit, position=QPointF(box.x(), box.y()),
        width=box.width(), height=box.height(),
      ))
      return

    pts = cap.initial_points
    if cap.handle is Handle.POINT_START:
      new_points = [QPointF(p)] + pts[1:]
    elif cap.handle is Handle.POINT_END:
      new_points = pts[:-1] + [QPointF(p)]
    elif cap.handle is Handle.MOVE:
      new_points = translate_points(pts, dx, dy)
    else:
      new_points = rescale_points(pts, cap.initial_box, box)
    edit_log.replace_stroke(cap.ref.index, dataclasses.replace(edit, points=new_points))

  def _finish_selection(self, edit_log: EditLog, surface: QImage) -> PastedRegion | None:
    start, end = self.state.selection_start, self.state.selection_end
    x = _round_half_up(min(start.x(), end.x()))
    y = _round_half_up(min(start.y(), end.y()))
    w = _round_half_up(abs(start.x() - end.x()))
    h = _round_half_up(abs(start.y() - end.y()))
    if w <= 0 or h <= 0:
      log.debug("Discarded empty copy-region selection")
      return None
    pixels = capture_pixels(surface, QRect(x, y, w, h))
    region = edit_log.add_region(
      pixels, QPointF(x + PASTE_OFFSET, y + PASTE_OFFSET), w, h,
    )
    log.info("Copied %dx%d region at (%d, %d)", w, h, x, y)
    if self.on_tool_change:
      self.on_tool_change(Tool.SELECT)
    return region

  def _finish_stroke(self, edit_log: EditLog,
                     settings: EditorSettings) -> StrokeAction | None:
    st = self.state
    if not st.points:
      return None
    if st.tool in TWO_POINT_TOOLS and len(st.points) < 2:
      log.debug("Discarded %s with a single point", st.tool.value)
      return None
    return edit_log.add_stroke(
      st.tool, st.points, settings.color, settings.stroke_width,
      intensity=settings.intensity if st.tool in FILTER_TOOLS else None,
    )
