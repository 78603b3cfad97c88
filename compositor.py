"""Renders the base image plus the full edit log, oldest edit first.

Every render starts again from the base image. Blur and pixelate strokes
read back the surface as rendered so far, so the result depends on edit
order: a blur painted over an earlier pixelate blurs the pixelated pixels.

Hover and drag feedback is drawn by wrapping the affected edit in a
drop-shadow glow. Dashed outlines and arrow endpoint handles are painted
last, above every edit.
"""

from __future__ import annotations

import dataclasses
import math

from PySide6.QtCore import Qt, QPointF, QRect, QRectF
from PySide6.QtGui import (
  QImage, QPixmap, QPainter, QColor, QPen, QBrush, QPainterPath, QPolygonF,
)
from PySide6.QtWidgets import (
  QGraphicsScene, QGraphicsPixmapItem, QGraphicsEffect, QGraphicsBlurEffect,
  QGraphicsDropShadowEffect,
)

from edits import EditLog, EditRef, LogEntry, PastedRegion, StrokeAction, Tool, REGION
from hit_test import HANDLE_RADIUS, Handle, Hit, bounds_of, region_box
from log import get_logger
from region_cache import RegionCache

log = get_logger("compositor")

SURFACE_FORMAT = QImage.Format.Format_ARGB32_Premultiplied

FILTER_WIDTH_FACTOR = 3.5
MAX_BLUR_RADIUS = 40
ARROW_HEAD_FACTOR = 4.5
ARROW_HEAD_MIN = 20
ARROW_HEAD_ANGLE = math.pi / 6.5
ARROW_INDENT = 0.75

SELECT_COLOR = QColor("#3b82f6")
ERASE_COLOR = QColor("#ef4444")
REGION_OUTLINE_PAD = 8
DASH = 4

PROTECTED_KEY = "inkpatch.protected"


class PixelAccessDenied(RuntimeError):
  """Pixel data of a surface cannot be read back."""


def mark_protected(image: QImage) -> None:
  """Flag an image whose pixels must not be read back or exported."""
  image.setText(PROTECTED_KEY, "1")


def is_protected(image: QImage) -> bool:
  return image.text(PROTECTED_KEY) == "1"


def capture_pixels(surface: QImage, rect: QRect) -> QImage:
  """Copy rect out of surface. Areas outside the surface come back transparent."""
  if surface is None or surface.isNull():
    raise PixelAccessDenied("surface has no pixel data")
  if is_protected(surface):
    raise PixelAccessDenied("surface is protected; its pixels cannot be read")
  return surface.copy(rect)


@dataclasses.dataclass(frozen=True)
class Glow:
  color: QColor
  blur: float
  dx: float = 0
  dy: float = 0


GLOW_ERASE = Glow(ERASE_COLOR, 15)
GLOW_DRAG = Glow(SELECT_COLOR, 20, 5, 5)
GLOW_SELECT = Glow(SELECT_COLOR, 12)


@dataclasses.dataclass
class FeedbackState:
  """What the pointer is currently hovering or dragging."""
  tool: Tool | None = None
  dragged: EditRef | None = None
  hovered: Hit | None = None
  hovered_erase: EditRef | None = None

  def is_hovered_select(self, ref: EditRef) -> bool:
    return (self.tool is Tool.SELECT and self.hovered is not None
            and self.hovered.ref == ref)

  def is_hovered_erase(self, ref: EditRef) -> bool:
    return self.tool is Tool.ERASER and self.hovered_erase == ref

  def glow_for(self, ref: EditRef) -> Glow | None:
    if self.is_hovered_erase(ref):
      return GLOW_ERASE
    if self.dragged == ref:
      return GLOW_DRAG
    if self.is_hovered_select(ref):
      return GLOW_SELECT
    return None


# -- Effect helpers -----------------------------------------------------------

def blur_radius(intensity: float) -> float:
  return max(1.0, intensity / 100 * MAX_BLUR_RADIUS)


def pixel_scale(intensity: float) -> float:
  return max(0.005, 0.2 - intensity / 100 * 0.195)


def _render_effect(image: QImage, effect: QGraphicsEffect) -> QImage:
  """Run a QGraphicsEffect over an image, keeping its size and origin."""
  scene = QGraphicsScene()
  scene.setSceneRect(0, 0, image.width(), image.height())
  item = QGraphicsPixmapItem(QPixmap.fromImage(image))
  item.setGraphicsEffect(effect)
  scene.addItem(item)
  out = QImage(image.size(), SURFACE_FORMAT)
  out.fill(Qt.GlobalColor.transparent)
  painter = QPainter(out)
  scene.render(painter, QRectF(out.rect()), scene.sceneRect())
  painter.end()
  return out


def blurred(image: QImage, radius: float) -> QImage:
  effect = QGraphicsBlurEffect()
  effect.setBlurRadius(radius)
  effect.setBlurHints(QGraphicsBlurEffect.BlurHint.QualityHint)
  return _render_effect(image, effect)


def pixelated(image: QImage, scale: float) -> QImage:
  """Nearest-neighbour downscale by scale, then back up to full size."""
  w, h = image.width(), image.height()
  mini = image.scaled(
    max(1, math.ceil(w * scale)), max(1, math.ceil(h * scale)),
    Qt.AspectRatioMode.IgnoreAspectRatio, Qt.TransformationMode.FastTransformation,
  )
  return mini.scaled(
    w, h, Qt.AspectRatioMode.IgnoreAspectRatio, Qt.TransformationMode.FastTransformation,
  )


def with_glow(layer: QImage, glow: Glow) -> QImage:
  effect = QGraphicsDropShadowEffect()
  effect.setColor(glow.color)
  effect.setBlurRadius(glow.blur)
  effect.setOffset(glow.dx, glow.dy)
  return _render_effect(layer, effect)


# -- Stroke geometry ----------------------------------------------------------

def _polyline_path(points: list) -> QPainterPath:
  path = QPainterPath()
  path.moveTo(points[0])
  for pt in points[1:]:
    path.lineTo(pt)
  return path


def arrow_geometry(start: QPointF, end: QPointF,
                   weight: float) -> tuple[QPointF, QPolygonF]:
  """Return the shaft end (indent point) and the arrowhead polygon."""
  angle = math.atan2(end.y() - start.y(), end.x() - start.x())
  head_len = max(weight * ARROW_HEAD_FACTOR, ARROW_HEAD_MIN)
  left = QPointF(
    end.x() - head_len * math.cos(angle - ARROW_HEAD_ANGLE),
    end.y() - head_len * math.sin(angle - ARROW_HEAD_ANGLE),
  )
  right = QPointF(
    end.x() - head_len * math.cos(angle + ARROW_HEAD_ANGLE),
    end.y() - head_len * math.sin(angle + ARROW_HEAD_ANGLE),
  )
  indent = QPointF(
    end.x() - head_len * ARROW_INDENT * math.cos(angle),
    end.y() - head_len * ARROW_INDENT * math.sin(angle),
  )
  return indent, QPolygonF([end, left, indent, right])


def outline_padding(stroke_width: float) -> float:
  return max(8.0, stroke_width / 2 + 6)


def _round_pen(color: QColor, width: float) -> QPen:
  return QPen(color, width, Qt.PenStyle.SolidLine,
              Qt.PenCapStyle.RoundCap, Qt.PenJoinStyle.RoundJoin)


def _dashed_pen(color: QColor, width: float) -> QPen:
  pen = QPen(color, width)
  # Qt dash lengths are in pen widths; keep 4px on / 4px off
  pen.setDashPattern([DASH / width, DASH / width])
  return pen


def _paint_dot_or_path(painter: QPainter, points: list, color: QColor,
                       width: float) -> None:
  if len(points) == 1:
    painter.setPen(Qt.PenStyle.NoPen)
    painter.setBrush(QBrush(color))
    painter.drawEllipse(points[0], width / 2, width / 2)
  else:
    painter.setPen(_round_pen(color, width))
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawPath(_polyline_path(points))


class Compositor:
  """Rebuilds the composited surface from scratch on every call to render()."""

  def __init__(self, cache: RegionCache | None = None):
    self.cache = cache if cache is not None else RegionCache()
    # Scratch buffers, resized only when the surface size changes
    self._scratch: QImage | None = None
    self._snapshot: QImage | None = None
    self._layer: QImage | None = None

  def _acquire(self, name: str, w: int, h: int) -> QImage:
    buf = getattr(self, name)
    if buf is None or buf.width() != w or buf.height() != h:
      buf = QImage(w, h, SURFACE_FORMAT)
      setattr(self, name, buf)
    buf.fill(Qt.GlobalColor.transparent)
    return buf

  def render(self, base: QImage, edit_log: EditLog,
             preview: StrokeAction | None = None,
             feedback: FeedbackState | None = None) -> QImage:
    if base is None or base.isNull():
      log.warning("Render skipped: no base image")
      return QImage()
    feedback = feedback or FeedbackState()
    w, h = base.width(), base.height()

    surface = QImage(w, h, SURFACE_FORMAT)
    surface.fill(Qt.GlobalColor.transparent)
    painter = QPainter(surface)
    if not painter.isActive():
      log.warning("Render skipped: could not paint on a %dx%d surface", w, h)
      return QImage()
    painter.drawImage(0, 0, base)
    painter.end()

    entries = edit_log.chronological()
    self.cache.prune(e.edit.id for e in entries if e.kind == REGION)

    for entry in entries:
      glow = feedback.glow_for(entry.ref)
      if glow is None:
        self._apply(surface, surface, entry.edit)
      else:
        layer = self._acquire("_layer", w, h)
        self._apply(surface, layer, entry.edit)
        self._draw_image(surface, with_glow(layer, glow))

    if preview is not None:
      self._apply(surface, surface, preview)

    self._draw_overlays(surface, entries, feedback)

    if is_protected(base):
      mark_protected(surface)
    return surface

  # -- Edit application -------------------------------------------------------

  @staticmethod
  def _draw_image(target: QImage, image: QImage) -> None:
    painter = QPainter(target)
    painter.drawImage(0, 0, image)
    painter.end()

  def _apply(self, surface: QImage, target: QImage, edit) -> None:
    """Draw one edit onto target; filters sample the surface so far."""
    if isinstance(edit, PastedRegion):
      self._draw_region(target, edit)
    elif isinstance(edit, StrokeAction):
      if edit.is_filter:
        self._apply_filter(surface, target, edit)
      else:
        self._draw_stroke(target, edit)
    else:
      raise TypeError(f"unknown edit type {type(edit).__name__}")

  def _draw_region(self, target: QImage, region: PastedRegion) -> None:
    painter = QPainter(target)
    painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
    painter.drawImage(region_box(region), self.cache.get(region))
    painter.end()

  def _draw_stroke(self, target: QImage, action: StrokeAction) -> None:
    painter = QPainter(target)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    tool = action.tool
    if tool is Tool.LINE:
      _paint_dot_or_path(painter, action.points, action.color, action.width)
    elif tool is Tool.ARROW:
      if len(action.points) >= 2:
        self._paint_arrow(painter, action)
    elif tool is Tool.RECTANGLE:
      if len(action.points) >= 2:
        painter.setPen(_round_pen(action.color, action.width))
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawRect(QRectF(action.first, action.last).normalized())
    else:
      painter.end()
      raise ValueError(f"{tool} is not a drawn stroke")
    painter.end()

  @staticmethod
  def _paint_arrow(painter: QPainter, action: StrokeAction) -> None:
    indent, head = arrow_geometry(action.first, action.last, action.width)
    painter.setPen(_round_pen(action.color, action.width))
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawLine(action.first, indent)
    painter.setPen(Qt.PenStyle.NoPen)
    painter.setBrush(QBrush(action.color))
    painter.drawPolygon(head)

  def _apply_filter(self, surface: QImage, target: QImage,
                    action: StrokeAction) -> None:
    w, h = surface.width(), surface.height()

    snapshot = self._acquire("_snapshot", w, h)
    painter = QPainter(snapshot)
    painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_Source)
    painter.drawImage(0, 0, surface)
    painter.end()

    if action.tool is Tool.BLUR:
      source = blurred(snapshot, blur_radius(action.effective_intensity))
    elif action.tool is Tool.PIXELATE:
      source = pixelated(snapshot, pixel_scale(action.effective_intensity))
    else:
      raise ValueError(f"{action.tool} is not a filter")

    # Mask: brushed path in opaque white, then keep the source only there
    scratch = self._acquire("_scratch", w, h)
    painter = QPainter(scratch)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    _paint_dot_or_path(painter, action.points, QColor(Qt.GlobalColor.white),
                       action.width * FILTER_WIDTH_FACTOR)
    painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_SourceIn)
    painter.drawImage(0, 0, source)
    painter.end()

    self._draw_image(target, scratch)

  # -- Overlays ---------------------------------------------------------------

  def _draw_overlays(self, surface: QImage, entries: list[LogEntry],
                     feedback: FeedbackState) -> None:
    painter = QPainter(surface)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.setBrush(Qt.BrushStyle.NoBrush)
    for entry in entries:
      ref = entry.ref
      hovered_select = feedback.is_hovered_select(ref)
      hovered_erase = feedback.is_hovered_erase(ref)
      if not (hovered_select or hovered_erase):
        continue
      edit = entry.edit
      if isinstance(edit, PastedRegion):
        color = ERASE_COLOR if hovered_erase else SELECT_COLOR
        self._dashed_outline(painter, region_box(edit), REGION_OUTLINE_PAD, color, 2)
      elif hovered_select:
        self._dashed_outline(painter, bounds_of(edit), outline_padding(edit.width),
                             SELECT_COLOR, 1.5)
        if edit.tool is Tool.ARROW:
          handle = feedback.hovered.handle
          self._endpoint_handle(painter, edit.first, handle is Handle.POINT_START)
          self._endpoint_handle(painter, edit.last, handle is Handle.POINT_END)
      else:
        self._dashed_outline(painter, bounds_of(edit), outline_padding(edit.width),
                             ERASE_COLOR, 2)
    painter.end()

  @staticmethod
  def _dashed_outline(painter: QPainter, box: QRectF, pad: float,
                      color: QColor, width: float) -> None:
    painter.setPen(_dashed_pen(color, width))
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawRect(box.adjusted(-pad, -pad, pad, pad))

  @staticmethod
  def _endpoint_handle(painter: QPainter, center: QPointF, active: bool) -> None:
    painter.setPen(QPen(SELECT_COLOR, 1.5))
    painter.setBrush(QBrush(SELECT_COLOR if active else QColor(Qt.GlobalColor.white)))
    painter.drawEllipse(center, HANDLE_RADIUS, HANDLE_RADIUS)
