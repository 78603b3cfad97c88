"""Tests for surface compositing, effects and feedback overlays."""

import math

import pytest
from PySide6.QtCore import QPointF, QRect
from PySide6.QtGui import QColor, QImage, QPainter
from PySide6.QtWidgets import QApplication

app = QApplication.instance() or QApplication([])

from compositor import (
  Compositor, FeedbackState, PixelAccessDenied, arrow_geometry, blur_radius,
  capture_pixels, is_protected, mark_protected, pixel_scale, GLOW_DRAG, GLOW_ERASE,
  GLOW_SELECT,
)
from edits import EditLog, EditRef, Tool, REGION, STROKE
from hit_test import Handle, Hit

RED = QColor(255, 0, 0)
BLUE = QColor(0, 0, 255)


def _base(w=100, h=100, color=QColor(255, 255, 255)):
  img = QImage(w, h, QImage.Format.Format_ARGB32)
  img.fill(color)
  return img


def _striped(w=120, h=120):
  """Alternating 3px white and black columns."""
  img = QImage(w, h, QImage.Format.Format_ARGB32)
  img.fill(QColor(255, 255, 255))
  painter = QPainter(img)
  for x in range(3, w, 6):
    painter.fillRect(QRect(x, 0, 3, h), QColor(0, 0, 0))
  painter.end()
  return img


def _rgb(img, x, y):
  c = img.pixelColor(x, y)
  return c.red(), c.green(), c.blue()


class TestEffectParameters:
  def test_blur_radius(self):
    assert blur_radius(40) == 16
    assert blur_radius(100) == 40
    assert blur_radius(1) == 1

  def test_pixel_scale(self):
    assert pixel_scale(100) == pytest.approx(0.005)
    assert pixel_scale(0) == pytest.approx(0.2)

  def test_arrow_geometry(self):
    indent, head = arrow_geometry(QPointF(0, 0), QPointF(100, 0), 8)
    # head length is max(8 * 4.5, 20) = 36, indent at 0.75 of it
    assert indent.x() == pytest.approx(100 - 27)
    assert indent.y() == pytest.approx(0)
    assert head.count() == 4
    left = head.at(1)
    assert math.hypot(100 - left.x(), left.y()) == pytest.approx(36)


class TestRender:
  def test_null_base_is_noop(self):
    assert Compositor().render(QImage(), EditLog()).isNull()

  def test_empty_log_reproduces_base(self):
    out = Compositor().render(_base(color=QColor(10, 200, 30)), EditLog())
    assert out.size() == _base().size()
    assert _rgb(out, 50, 50) == (10, 200, 30)

  def test_edits_drawn_oldest_first(self):
    log = EditLog()
    log.add_stroke(Tool.LINE, [QPointF(10, 50), QPointF(90, 50)], RED, 10)
    log.add_stroke(Tool.LINE, [QPointF(50, 10), QPointF(50, 90)], BLUE, 10)
    out = Compositor().render(_base(), log)
    assert _rgb(out, 50, 50) == (0, 0, 255)
    assert _rgb(out, 20, 50) == (255, 0, 0)

  def test_region_and_stroke_interleave_by_id(self):
    log = EditLog()
    log.add_stroke(Tool.LINE, [QPointF(0, 30), QPointF(100, 30)], RED, 10)
    log.add_region(_base(40, 40, BLUE), QPointF(10, 10), 40, 40)
    out = Compositor().render(_base(), log)
    # The region covers the earlier stroke
    assert _rgb(out, 30, 30) == (0, 0, 255)
    assert _rgb(out, 80, 30) == (255, 0, 0)

  def test_single_point_line_is_a_dot(self):
    log = EditLog()
    log.add_stroke(Tool.LINE, [QPointF(50, 50)], RED, 10)
    out = Compositor().render(_base(), log)
    assert _rgb(out, 50, 50) == (255, 0, 0)
    assert _rgb(out, 70, 50) == (255, 255, 255)

  def test_preview_drawn_on_top(self):
    log = EditLog()
    log.add_stroke(Tool.LINE, [QPointF(10, 50), QPointF(90, 50)], RED, 10)
    preview = EditLog().add_stroke(Tool.LINE, [QPointF(10, 50), QPointF(90, 50)], BLUE, 10)
    out = Compositor().render(_base(), log, preview=preview)
    assert _rgb(out, 50, 50) == (0, 0, 255)

  def test_region_cache_pruned_after_removal(self):
    comp = Compositor()
    log = EditLog()
    region = log.add_region(_base(10, 10, BLUE), QPointF(0, 0), 10, 10)
    comp.render(_base(), log)
    assert region.id in comp.cache
    log.undo()
    comp.render(_base(), log)
    assert region.id not in comp.cache


class TestFilters:
  def test_blur_confined_to_brushed_path(self):
    log = EditLog()
    log.add_stroke(Tool.BLUR, [QPointF(10, 20), QPointF(110, 20)], RED, 8, intensity=60)
    base = _striped()
    out = Compositor().render(base, log)
    assert out.pixelColor(60, 100) == base.pixelColor(60, 100)
    assert out.copy(QRect(20, 15, 80, 10)) != base.convertToFormat(out.format()).copy(QRect(20, 15, 80, 10))

  def test_filter_order_matters(self):
    big = [QPointF(10, 60), QPointF(110, 60)]
    small = [QPointF(40, 60), QPointF(80, 60)]

    first = EditLog()
    first.add_stroke(Tool.BLUR, big, RED, 12, intensity=50)
    first.add_stroke(Tool.PIXELATE, small, RED, 6, intensity=90)

    second = EditLog()
    second.add_stroke(Tool.PIXELATE, small, RED, 6, intensity=90)
    second.add_stroke(Tool.BLUR, big, RED, 12, intensity=50)

    comp = Compositor()
    assert comp.render(_striped(), first) != comp.render(_striped(), second)


class TestFeedback:
  def test_glow_priority(self):
    ref = EditRef(STROKE, 0)
    fb = FeedbackState(tool=Tool.ERASER, dragged=ref, hovered_erase=ref)
    assert fb.glow_for(ref) is GLOW_ERASE
    fb = FeedbackState(tool=Tool.SELECT, dragged=ref, hovered=Hit(STROKE, 0, Handle.MOVE))
    assert fb.glow_for(ref) is GLOW_DRAG
    fb = FeedbackState(tool=Tool.SELECT, hovered=Hit(STROKE, 0, Handle.MOVE))
    assert fb.glow_for(ref) is GLOW_SELECT
    assert fb.glow_for(EditRef(REGION, 0)) is None

  def test_hover_changes_render(self):
    log = EditLog()
    log.add_stroke(Tool.ARROW, [QPointF(20, 20), QPointF(80, 80)], RED, 6)
    comp = Compositor()
    plain = comp.render(_base(), log)
    hovered = comp.render(_base(), log, feedback=FeedbackState(
      tool=Tool.SELECT, hovered=Hit(STROKE, 0, Handle.POINT_END),
    ))
    assert plain != hovered

  def test_hover_ignored_for_other_tools(self):
    log = EditLog()
    log.add_stroke(Tool.RECTANGLE, [QPointF(20, 20), QPointF(80, 80)], RED, 6)
    comp = Compositor()
    plain = comp.render(_base(), log)
    other = comp.render(_base(), log, feedback=FeedbackState(
      tool=Tool.ARROW, hovered=Hit(STROKE, 0, Handle.MOVE),
    ))
    assert plain == other


class TestProtectedSurfaces:
  def test_flag_propagates_to_output(self):
    base = _base()
    mark_protected(base)
    out = Compositor().render(base, EditLog())
    assert is_protected(out)

  def test_capture_pixels_refuses_protected(self):
    base = _base()
    mark_protected(base)
    with pytest.raises(PixelAccessDenied):
      capture_pixels(base, QRect(0, 0, 10, 10))

  def test_capture_pixels_refuses_null(self):
    with pytest.raises(PixelAccessDenied):
      capture_pixels(QImage(), QRect(0, 0, 10, 10))

  def test_capture_pixels_copies_rect(self):
    out = capture_pixels(_base(color=BLUE), QRect(5, 5, 20, 10))
    assert out.width() == 20 and out.height() == 10
    assert _rgb(out, 0, 0) == (0, 0, 255)
