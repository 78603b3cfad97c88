"""Tests for the canvas widget: layout, coordinate mapping and pointer flow."""

from unittest.mock import MagicMock

from PySide6.QtCore import QEvent, QPointF, QRect, Qt
from PySide6.QtGui import QColor, QImage, QMouseEvent
from PySide6.QtWidgets import QApplication

app = QApplication.instance() or QApplication([])

from canvas import AnnotationCanvas
from compositor import mark_protected
from edits import EditLog, Tool
from interaction import EditorSettings


def make_test_image(w=100, h=100):
  img = QImage(w, h, QImage.Format.Format_ARGB32)
  img.fill(QColor(255, 255, 255))
  return img


def _mouse(kind, pos, button=Qt.MouseButton.LeftButton):
  buttons = Qt.MouseButton.NoButton if kind == QEvent.Type.MouseButtonRelease else button
  return QMouseEvent(kind, QPointF(pos), QPointF(pos), button, buttons,
                     Qt.KeyboardModifier.NoModifier)


def _make_canvas(settings=None, w=400, h=300, image=None, **kw):
  log = EditLog()
  settings = settings or EditorSettings()
  canvas = AnnotationCanvas(log, lambda: settings, **kw)
  canvas.resize(w, h)
  canvas.set_base_image(make_test_image() if image is None else image)
  return canvas, log, settings


class TestLayout:
  def test_image_centered_and_not_upscaled(self):
    canvas, _, _ = _make_canvas()
    assert canvas.image_rect() == QRect(150, 100, 100, 100)

  def test_image_fitted_when_widget_smaller(self):
    canvas, _, _ = _make_canvas(image=make_test_image(800, 800))
    rect = canvas.image_rect()
    assert rect.width() == 300 and rect.height() == 300
    assert (rect.x(), rect.y()) == (50, 0)

  def test_to_surface_uses_size_ratio(self):
    canvas, _, _ = _make_canvas(image=make_test_image(800, 600))
    p = canvas.to_surface(QPointF(25, 10))
    assert (p.x(), p.y()) == (50, 20)
    back = canvas.to_widget(p)
    assert (back.x(), back.y()) == (25, 10)

  def test_widget_never_below_minimum(self):
    canvas, _, _ = _make_canvas(w=50, h=50)
    assert canvas.width() >= 200 and canvas.height() >= 150

  def test_surface_rendered_on_load(self):
    canvas, _, _ = _make_canvas()
    assert canvas.surface().size() == canvas.base_image().size()


class TestPointerFlow:
  def test_drawing_adds_stroke_and_emits(self):
    canvas, log, settings = _make_canvas(EditorSettings(tool=Tool.RECTANGLE))
    changed = MagicMock()
    canvas.surface_changed.connect(changed)
    canvas.mousePressEvent(_mouse(QEvent.Type.MouseButtonPress, canvas.to_widget(QPointF(10, 10))))
    canvas.mouseMoveEvent(_mouse(QEvent.Type.MouseMove, canvas.to_widget(QPointF(60, 40))))
    canvas.mouseReleaseEvent(_mouse(QEvent.Type.MouseButtonRelease, canvas.to_widget(QPointF(60, 40))))
    assert len(log.strokes) == 1
    assert log.strokes[0].points == [QPointF(10, 10), QPointF(60, 40)]
    assert changed.call_count >= 3
    assert not canvas.controller.is_active

  def test_right_button_ignored(self):
    canvas, log, _ = _make_canvas(EditorSettings(tool=Tool.LINE))
    canvas.mousePressEvent(_mouse(QEvent.Type.MouseButtonPress, canvas.to_widget(QPointF(10, 10)),
                                  Qt.MouseButton.RightButton))
    assert not canvas.controller.is_active

  def test_protected_copy_region_reports_error(self):
    settings = EditorSettings(tool=Tool.COPY_REGION)
    canvas, log, _ = _make_canvas(settings)
    base = make_test_image()
    mark_protected(base)
    canvas.set_base_image(base)
    denied = MagicMock()
    canvas.pixel_access_denied.connect(denied)
    canvas.mousePressEvent(_mouse(QEvent.Type.MouseButtonPress, canvas.to_widget(QPointF(10, 10))))
    canvas.mouseMoveEvent(_mouse(QEvent.Type.MouseMove, canvas.to_widget(QPointF(40, 40))))
    canvas.mouseReleaseEvent(_mouse(QEvent.Type.MouseButtonRelease, canvas.to_widget(QPointF(40, 40))))
    denied.assert_called_once()
    assert len(log) == 0
    assert not canvas.controller.is_active

  def test_new_base_image_resets_interaction(self):
    canvas, log, _ = _make_canvas(EditorSettings(tool=Tool.LINE))
    canvas.mousePressEvent(_mouse(QEvent.Type.MouseButtonPress, canvas.to_widget(QPointF(10, 10))))
    assert canvas.controller.is_active
    canvas.set_base_image(make_test_image(50, 50))
    assert not canvas.controller.is_active

  def test_paint_with_tool_ring(self):
    for tool in (Tool.ERASER, Tool.BLUR, Tool.PIXELATE, Tool.LINE, Tool.ARROW):
      canvas, _, _ = _make_canvas(EditorSettings(tool=tool))
      canvas.mouseMoveEvent(_mouse(QEvent.Type.MouseMove, canvas.to_widget(QPointF(30, 30))))
      assert not canvas.grab().isNull()
