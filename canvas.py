"""Widget that shows the composited surface and feeds pointer input to the controller."""

from __future__ import annotations

from typing import Callable, TYPE_CHECKING

from PySide6.QtCore import Qt, QPointF, QRect, QRectF, QSize, Signal
from PySide6.QtGui import QImage, QPainter, QColor, QPen, QBrush, QCursor
from PySide6.QtWidgets import QWidget

from compositor import FILTER_WIDTH_FACTOR, PixelAccessDenied, Compositor
from edits import EditLog, Tool
from interaction import (
  EditorSettings, InteractionController, InteractionState, Mode, cursor_for,
)
from log import get_logger

if TYPE_CHECKING:
  from PySide6.QtGui import QPaintEvent, QMouseEvent, QResizeEvent

log = get_logger("canvas")

BACKGROUND = QColor(24, 24, 27)
ERASER_RING = QColor("#ef4444")
ERASER_FILL = QColor(239, 68, 68, 26)
BLUR_RING = QColor(59, 130, 246, 204)
PIXELATE_RING = QColor(34, 197, 94, 204)
MARQUEE_COLOR = QColor("#3b82f6")
MARQUEE_FILL = QColor(59, 130, 246, 51)


class AnnotationCanvas(QWidget):
  """Displays the editor surface, fitted and centered, and handles the pointer."""

  surface_changed = Signal()
  pixel_access_denied = Signal(str)

  def __init__(self, edit_log: EditLog, settings: Callable[[], EditorSettings],
               on_tool_change: Callable[[Tool], None] | None = None,
               on_analyze_request: Callable[[QImage], None] | None = None,
               parent: QWidget | None = None):
    super().__init__(parent)
    self._log = edit_log
    self._settings = settings
    self._base = QImage()
    self._surface = QImage()
    self._capturing = False

    self.state = InteractionState()
    self.controller = InteractionController(
      self.state, on_tool_change=on_tool_change,
      on_analyze_request=on_analyze_request,
    )
    self.compositor = Compositor()

    self.setMouseTracking(True)
    self.setMinimumSize(200, 150)

  # -- Image and surface ------------------------------------------------------

  def set_base_image(self, image: QImage) -> None:
    self._end_capture()
    self._base = QImage(image)
    self.compositor.cache.clear()
    self.state.end_interaction()
    self.controller.cancel_hover()
    self.updateGeometry()
    self.refresh()
    log.info("Base image set (%dx%d)", image.width(), image.height())

  def base_image(self) -> QImage:
    return self._base

  def surface(self) -> QImage:
    return self._surface

  def refresh(self) -> None:
    """Recompute the whole surface from the base image and the edit log."""
    settings = self._settings()
    self._surface = self.compositor.render(
      self._base, self._log,
      preview=self.controller.preview_stroke(settings),
      feedback=self.state.feedback(settings.tool),
    )
    self.setCursor(QCursor(cursor_for(settings.tool, self.state.hovered)))
    self.update()
    self.surface_changed.emit()

  def sizeHint(self) -> QSize:
    if self._base.isNull():
      return QSize(800, 600)
    return self._base.size()

  # -- Coordinates ------------------------------------------------------------

  def image_rect(self) -> QRect:
    """Where the surface is displayed: fitted, never upscaled, centered."""
    sw, sh = self.width(), self.height()
    iw, ih = self._base.width(), self._base.height()
    if iw <= 0 or ih <= 0:
      return QRect(0, 0, sw, sh)
    scale = min(sw / iw, sh / ih, 1.0)
    dw = max(1, int(iw * scale))
    dh = max(1, int(ih * scale))
    return QRect((sw - dw) // 2, (sh - dh) // 2, dw, dh)

  def to_surface(self, pos: QPointF) -> QPointF:
    """Widget position -> surface pixels, using surface size / displayed size."""
    rect = self.image_rect()
    if self._base.isNull() or rect.width() <= 0 or rect.height() <= 0:
      return QPointF(pos)
    sx = self._base.width() / rect.width()
    sy = self._base.height() / rect.height()
    return QPointF((pos.x() - rect.x()) * sx, (pos.y() - rect.y()) * sy)

  def to_widget(self, p: QPointF) -> QPointF:
    rect = self.image_rect()
    if self._base.isNull():
      return QPointF(p)
    sx = rect.width() / self._base.width()
    sy = rect.height() / self._base.height()
    return QPointF(rect.x() + p.x() * sx, rect.y() + p.y() * sy)

  def _display_scale(self) -> float:
    if self._base.isNull():
      return 1.0
    return self.image_rect().width() / self._base.width()

  # -- Pointer capture --------------------------------------------------------

  def _begin_capture(self) -> None:
    """Keep receiving moves and the release while the pointer is outside."""
    if not self._capturing and self.isVisible():
      self.grabMouse()
      self._capturing = True

  def _end_capture(self) -> None:
    if self._capturing:
      self.releaseMouse()
      self._capturing = False

  # -- Mouse events -----------------------------------------------------------

  def mousePressEvent(self, event: QMouseEvent) -> None:
    if event.button() != Qt.MouseButton.LeftButton or self._base.isNull():
      return
    p = self.to_surface(event.position())
    self.controller.pointer_down(self._log, self._settings(), p)
    if self.controller.is_active:
      self._begin_capture()
    self.refresh()

  def mouseMoveEvent(self, event: QMouseEvent) -> None:
    if self._base.isNull():
      return
    p = self.to_surface(event.position())
    if self.controller.pointer_move(self._log, self._settings(), p):
      self.refresh()
    else:
      # Tool preview ring follows the pointer
      self.update()

  def mouseReleaseEvent(self, event: QMouseEvent) -> None:
    if event.button() != Qt.MouseButton.LeftButton:
      return
    if not self.controller.is_active:
      return
    try:
      self.controller.pointer_up(self._log, self._settings(), self._surface)
    except PixelAccessDenied as e:
      log.error("Copy region failed: %s", e)
      self.pixel_access_denied.emit(str(e))
    finally:
      self._end_capture()
      self.refresh()

  def leaveEvent(self, event) -> None:
    if self.controller.leave():
      self.refresh()
    else:
      self.update()
    super().leaveEvent(event)

  # -- Paint ------------------------------------------------------------------

  def paintEvent(self, event: QPaintEvent) -> None:
    painter = QPainter(self)
    painter.fillRect(self.rect(), BACKGROUND)
    if self._surface.isNull():
      painter.end()
      return
    painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
    painter.drawImage(QRectF(self.image_rect()), self._surface)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    self._paint_selection(painter)
    self._paint_tool_ring(painter)
    painter.end()

  def _paint_selection(self, painter: QPainter) -> None:
    rect = self.state.selection_rect()
    if self.state.mode is not Mode.MARKING_SELECTION or rect is None:
      return
    top_left = self.to_widget(rect.topLeft())
    bottom_right = self.to_widget(rect.bottomRight())
    shown = QRectF(top_left, bottom_right)
    painter.fillRect(shown, MARQUEE_FILL)
    pen = QPen(MARQUEE_COLOR, 1)
    pen.setDashPattern([5, 5])
    painter.setPen(pen)
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawRect(shown)

  def _paint_tool_ring(self, painter: QPainter) -> None:
    pointer = self.state.pointer
    if pointer is None:
      return
    settings = self._settings()
    tool = settings.tool
    center = self.to_widget(pointer)
    scale = self._display_scale()
    width = settings.stroke_width

    if tool is Tool.ERASER:
      radius = width * 1.5 * scale
      painter.setPen(QPen(ERASER_RING, 2))
      painter.setBrush(QBrush(ERASER_FILL))
    elif tool in (Tool.BLUR, Tool.PIXELATE):
      radius = width * FILTER_WIDTH_FACTOR / 2 * scale
      painter.setPen(QPen(BLUR_RING if tool is Tool.BLUR else PIXELATE_RING, 2))
      painter.setBrush(Qt.BrushStyle.NoBrush)
    elif tool is Tool.LINE:
      radius = width / 2 * scale
      painter.setPen(QPen(settings.color, 1.5))
      painter.setBrush(Qt.BrushStyle.NoBrush)
    else:
      return
    painter.drawEllipse(center, radius, radius)
