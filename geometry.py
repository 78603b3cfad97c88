"""Point, segment and bounding-box helpers shared by rendering and hit-testing."""

from __future__ import annotations

from typing import Iterable

from PySide6.QtCore import QPointF, QRectF


def dist_sq(a: QPointF, b: QPointF) -> float:
  dx = a.x() - b.x()
  dy = a.y() - b.y()
  return dx * dx + dy * dy


def dist_to_segment_sq(p: QPointF, v: QPointF, w: QPointF) -> float:
  """Squared distance from p to the segment v-w (clamped projection)."""
  l2 = dist_sq(v, w)
  if l2 == 0:
    return dist_sq(p, v)
  t = ((p.x() - v.x()) * (w.x() - v.x()) + (p.y() - v.y()) * (w.y() - v.y())) / l2
  t = max(0.0, min(1.0, t))
  return dist_sq(p, QPointF(v.x() + t * (w.x() - v.x()), v.y() + t * (w.y() - v.y())))


def bounding_box(points: Iterable[QPointF]) -> QRectF:
  """Axis-aligned box spanning all points. Degenerate boxes keep zero size."""
  pts = list(points)
  if not pts:
    return QRectF()
  xs = [p.x() for p in pts]
  ys = [p.y() for p in pts]
  min_x, min_y = min(xs), min(ys)
  return QRectF(min_x, min_y, max(xs) - min_x, max(ys) - min_y)


def box_contains(box: QRectF, p: QPointF) -> bool:
  """Inclusive containment, valid for zero-width or zero-height boxes.

  QRectF.contains() rejects points on degenerate boxes, so hit-testing
  uses this instead.
  """
  return (box.x() <= p.x() <= box.x() + box.width()
          and box.y() <= p.y() <= box.y() + box.height())


def rect_sides(start: QPointF, end: QPointF) -> list[tuple[QPointF, QPointF]]:
  """The four sides of the box spanned by two opposite corners."""
  top_right = QPointF(end.x(), start.y())
  bottom_left = QPointF(start.x(), end.y())
  return [
    (start, top_right),
    (top_right, end),
    (end, bottom_left),
    (bottom_left, start),
  ]
