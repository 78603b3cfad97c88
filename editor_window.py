"""Editor window: toolbar, canvas and the session's edit log."""

from __future__ import annotations

import os
from typing import Any, Callable, TYPE_CHECKING

from PySide6.QtCore import Qt, QPointF, QRect, QThread, QTimer, Signal
from PySide6.QtGui import (
  QImage, QPixmap, QPainter, QColor, QPen, QPolygonF, QIcon,
)
from PySide6.QtWidgets import (
  QWidget, QHBoxLayout, QVBoxLayout, QPushButton, QSpinBox, QButtonGroup,
  QColorDialog, QLabel, QFileDialog, QMessageBox,
)

from analysis import AnalysisWorker, DEFAULT_MODEL, FAILED_MESSAGE, encode_png
from canvas import AnnotationCanvas
from compositor import PixelAccessDenied
from edits import EditLog, Tool, FILTER_TOOLS, DEFAULT_INTENSITY
from export import EXPORT_FILENAME, export_filter, save_surface
from ingest import capture_screen, image_file_filter, image_from_clipboard, load_image_file
from interaction import EditorSettings, DEFAULT_COLOR, DEFAULT_STROKE_WIDTH, DEFAULT_TOOL
from log import get_logger

if TYPE_CHECKING:
  from PySide6.QtGui import QKeyEvent, QCloseEvent

log = get_logger("editor")

ICON_SIZE = 24
MIN_STROKE_WIDTH = 1
MAX_STROKE_WIDTH = 50
MIN_INTENSITY = 1
MAX_INTENSITY = 100
SAVE_DEBOUNCE_MS = 150
SCREEN_GRAB_DELAY_MS = 250

_ICON_COLOR = QColor(200, 200, 200)


def settings_from_config(config: dict[str, Any]) -> EditorSettings:
  """Build live settings from config values, falling back on bad entries."""
  try:
    tool = Tool(config.get("default_tool", DEFAULT_TOOL.value))
  except ValueError:
    log.warning("Unknown default tool %r, using %s",
                config.get("default_tool"), DEFAULT_TOOL.value)
    tool = DEFAULT_TOOL
  color = QColor(str(config.get("color", DEFAULT_COLOR.name())))
  if not color.isValid():
    color = QColor(DEFAULT_COLOR)

  def _int(key: str, default: int, lo: int, hi: int) -> int:
    try:
      value = int(config.get(key, default))
    except (TypeError, ValueError):
      return default
    return max(lo, min(hi, value))

  return EditorSettings(
    tool=tool,
    color=color,
    stroke_width=_int("stroke_width", DEFAULT_STROKE_WIDTH, MIN_STROKE_WIDTH, MAX_STROKE_WIDTH),
    intensity=_int("intensity", DEFAULT_INTENSITY, MIN_INTENSITY, MAX_INTENSITY),
  )


# -- Icon drawing helpers -----------------------------------------------------

def _make_icon(draw_fn) -> QIcon:
  """Create a QIcon by painting onto a 24x24 pixmap."""
  pixmap = QPixmap(ICON_SIZE, ICON_SIZE)
  pixmap.fill(QColor(0, 0, 0, 0))
  painter = QPainter(pixmap)
  painter.setRenderHint(QPainter.RenderHint.Antialiasing)
  painter.setPen(QPen(_ICON_COLOR, 2))
  painter.setBrush(Qt.BrushStyle.NoBrush)
  draw_fn(painter, ICON_SIZE)
  painter.end()
  return QIcon(pixmap)


def _draw_select_icon(painter: QPainter, size: int) -> None:
  painter.setBrush(_ICON_COLOR)
  painter.drawPolygon(QPolygonF([
    QPointF(6, 3), QPointF(6, size - 5), QPointF(11, size - 10), QPointF(size - 6, size - 10),
  ]))


def _draw_line_icon(painter: QPainter, size: int) -> None:
  painter.drawLine(4, size - 4, size - 4, 4)


def _draw_arrow_icon(painter: QPainter, size: int) -> None:
  painter.drawLine(4, size - 4, size - 6, 6)
  painter.setBrush(_ICON_COLOR)
  painter.drawPolygon(QPolygonF([
    QPointF(size - 4, 4), QPointF(size - 10, 6), QPointF(size - 6, 12),
  ]))


def _draw_rect_icon(painter: QPainter, size: int) -> None:
  painter.drawRect(3, 5, size - 6, size - 10)


def _draw_copy_icon(painter: QPainter, size: int) -> None:
  painter.drawRect(3, 3, size - 10, size - 10)
  pen = QPen(_ICON_COLOR, 2)
  pen.setStyle(Qt.PenStyle.DashLine)
  painter.setPen(pen)
  painter.drawRect(7, 7, size - 10, size - 10)


def _draw_blur_icon(painter: QPainter, size: int) -> None:
  painter.setPen(Qt.PenStyle.NoPen)
  for radius, alpha in ((10, 60), (7, 120), (4, 220)):
    painter.setBrush(QColor(200, 200, 200, alpha))
    painter.drawEllipse(QPointF(size / 2, size / 2), radius, radius)


def _draw_pixelate_icon(painter: QPainter, size: int) -> None:
  painter.setPen(Qt.PenStyle.NoPen)
  cell = size // 4
  for row in range(4):
    for col in range(4):
      if (row + col) % 2 == 0:
        painter.fillRect(QRect(col * cell, row * cell, cell, cell), _ICON_COLOR)


def _draw_eraser_icon(painter: QPainter, size: int) -> None:
  painter.drawPolygon(QPolygonF([
    QPointF(4, size - 8), QPointF(size - 10, 4), QPointF(size - 3, 11), QPointF(11, size - 4),
  ]))
  painter.drawLine(4, size - 3, size - 4, size - 3)


_TOOL_BUTTONS = [
  (Tool.SELECT, "Select", _draw_select_icon),
  (Tool.LINE, "Pencil", _draw_line_icon),
  (Tool.ARROW, "Arrow", _draw_arrow_icon),
  (Tool.RECTANGLE, "Box", _draw_rect_icon),
  (Tool.COPY_REGION, "Copy Region", _draw_copy_icon),
  (Tool.BLUR, "Blur Brush", _draw_blur_icon),
  (Tool.PIXELATE, "Pixelate Brush", _draw_pixelate_icon),
  (Tool.ERASER, "Eraser", _draw_eraser_icon),
]


# -- Color button -------------------------------------------------------------

class ColorButton(QPushButton):
  """Color swatch button that opens a QColorDialog on click."""
  color_changed = Signal(QColor)

  def __init__(self, color: QColor = DEFAULT_COLOR, parent: QWidget | None = None):
    super().__init__(parent)
    self._color = QColor(color)
    self.setFixedSize(28, 28)
    self.setToolTip("Stroke color")
    self._update_style()
    self.clicked.connect(self._pick_color)

  def color(self) -> QColor:
    return QColor(self._color)

  def set_color(self, color: QColor) -> None:
    self._color = QColor(color)
    self._update_style()

  def _update_style(self) -> None:
    self.setStyleSheet(
      "QPushButton { background-color: %s; border: 2px solid #555; border-radius: 4px; }"
      "QPushButton:hover { border-color: #aaa; }"
      % self._color.name()
    )

  def _pick_color(self) -> None:
    c = QColorDialog.getColor(self._color, self.parentWidget(), "Stroke Color")
    if c.isValid():
      self.set_color(c)
      self.color_changed.emit(c)


# -- Toolbar ------------------------------------------------------------------

class EditorToolbar(QWidget):
  """Tool selection, stroke settings and editor actions."""

  tool_changed = Signal(object)
  color_changed = Signal(QColor)
  width_changed = Signal(int)
  intensity_changed = Signal(int)
  undo_requested = Signal()
  clear_requested = Signal()
  analyze_requested = Signal()
  open_requested = Signal()
  screen_requested = Signal()
  save_requested = Signal()

  def __init__(self, settings: EditorSettings, parent: QWidget | None = None):
    super().__init__(parent)
    self.setAttribute(Qt.WidgetAttribute.WA_StyledBackground, True)
    self.setStyleSheet("EditorToolbar { background: rgb(40, 40, 40); }")

    layout = QHBoxLayout(self)
    layout.setContentsMargins(8, 4, 8, 4)
    layout.setSpacing(4)

    btn_style = (
      "QPushButton { background: transparent; border: 1px solid #555; border-radius: 4px; padding: 2px; }"
      "QPushButton:checked { background: rgba(255, 255, 255, 40); border-color: #aaa; }"
      "QPushButton:hover { background: rgba(255, 255, 255, 20); }"
    )

    self._tool_group = QButtonGroup(self)
    self._tool_group.setExclusive(True)
    self._tool_buttons: dict[Tool, QPushButton] = {}
    for tool, label, draw_fn in _TOOL_BUTTONS:
      btn = QPushButton()
      btn.setIcon(_make_icon(draw_fn))
      btn.setFixedSize(32, 32)
      btn.setCheckable(True)
      btn.setToolTip(label)
      btn.setStyleSheet(btn_style)
      self._tool_group.addButton(btn)
      self._tool_buttons[tool] = btn
      layout.addWidget(btn)
    self._tool_group.buttonClicked.connect(self._on_tool_clicked)

    layout.addWidget(self._separator())

    self.color_btn = ColorButton(settings.color, self)
    self.color_btn.color_changed.connect(self.color_changed.emit)
    layout.addWidget(self.color_btn)

    spin_style = (
      "QSpinBox { background: #333; color: #ccc; border: 1px solid #555;"
      " border-radius: 4px; padding-right: 18px; }"
      "QSpinBox::up-button { width: 16px; }"
      "QSpinBox::down-button { width: 16px; }"
    )
    layout.addWidget(self._label("W:"))
    self.width_spin = QSpinBox()
    self.width_spin.setRange(MIN_STROKE_WIDTH, MAX_STROKE_WIDTH)
    self.width_spin.setValue(int(settings.stroke_width))
    self.width_spin.setFixedWidth(58)
    self.width_spin.setToolTip("Stroke width")
    self.width_spin.setStyleSheet(spin_style)
    self.width_spin.valueChanged.connect(self.width_changed.emit)
    layout.addWidget(self.width_spin)

    layout.addWidget(self._label("I:"))
    self.intensity_spin = QSpinBox()
    self.intensity_spin.setRange(MIN_INTENSITY, MAX_INTENSITY)
    self.intensity_spin.setValue(settings.intensity)
    self.intensity_spin.setFixedWidth(58)
    self.intensity_spin.setToolTip("Blur / pixelate intensity")
    self.intensity_spin.setStyleSheet(spin_style)
    self.intensity_spin.valueChanged.connect(self.intensity_changed.emit)
    layout.addWidget(self.intensity_spin)

    layout.addWidget(self._separator())

    action_style = (
      "QPushButton { color: #ccc; background: transparent; border: 1px solid #555;"
      " border-radius: 4px; font-size: 11px; padding: 2px 8px; }"
      "QPushButton:hover { background: rgba(255, 255, 255, 20); }"
      "QPushButton:disabled { color: #555; border-color: #444; }"
    )
    self._undo_btn = self._action_button("Undo", "Undo (Ctrl+Z)", action_style)
    self._undo_btn.setEnabled(False)
    self._undo_btn.clicked.connect(self.undo_requested.emit)
    layout.addWidget(self._undo_btn)

    self._clear_btn = self._action_button("Clear", "Clear all edits", action_style)
    self._clear_btn.setEnabled(False)
    self._clear_btn.clicked.connect(self.clear_requested.emit)
    layout.addWidget(self._clear_btn)

    layout.addWidget(self._separator())

    self._analyze_btn = self._action_button("Analyze", "Describe the annotated image", action_style)
    self._analyze_btn.setEnabled(False)
    self._analyze_btn.clicked.connect(self.analyze_requested.emit)
    layout.addWidget(self._analyze_btn)

    open_btn = self._action_button("Open", "Open image (Ctrl+O)", action_style)
    open_btn.clicked.connect(self.open_requested.emit)
    layout.addWidget(open_btn)

    screen_btn = self._action_button("Screen", "Capture the screen as base image", action_style)
    screen_btn.clicked.connect(self.screen_requested.emit)
    layout.addWidget(screen_btn)

    self._save_btn = self._action_button("Save", "Save annotated image (Ctrl+S)", action_style)
    self._save_btn.setEnabled(False)
    self._save_btn.clicked.connect(self.save_requested.emit)
    layout.addWidget(self._save_btn)

    layout.addStretch(1)
    self.set_active_tool_button(settings.tool)

  @staticmethod
  def _separator() -> QLabel:
    sep = QLabel("|")
    sep.setStyleSheet("QLabel { color: #555; }")
    return sep

  @staticmethod
  def _label(text: str) -> QLabel:
    label = QLabel(text)
    label.setStyleSheet("QLabel { color: #ccc; font-size: 11px; }")
    return label

  @staticmethod
  def _action_button(text: str, tip: str, style: str) -> QPushButton:
    btn = QPushButton(text)
    btn.setFixedHeight(28)
    btn.setToolTip(tip)
    btn.setStyleSheet(style)
    return btn

  def _on_tool_clicked(self, btn: QPushButton) -> None:
    for tool, candidate in self._tool_buttons.items():
      if candidate is btn:
        self.tool_changed.emit(tool)
        return

  def current_tool(self) -> Tool:
    checked = self._tool_group.checkedButton()
    for tool, btn in self._tool_buttons.items():
      if btn is checked:
        return tool
    return DEFAULT_TOOL

  def set_active_tool_button(self, tool: Tool) -> None:
    """Visually check the button for the given tool."""
    btn = self._tool_buttons.get(tool)
    if btn:
      btn.setChecked(True)
    self.intensity_spin.setEnabled(tool in FILTER_TOOLS)

  def set_undo_enabled(self, enabled: bool) -> None:
    self._undo_btn.setEnabled(enabled)
    self._clear_btn.setEnabled(enabled)

  def set_analyze_enabled(self, enabled: bool) -> None:
    self._analyze_btn.setEnabled(enabled)

  def set_save_enabled(self, enabled: bool) -> None:
    self._save_btn.setEnabled(enabled)


# -- Main editor --------------------------------------------------------------

class EditorWindow(QWidget):
  """Owns the edit log and live settings and wires the canvas to the toolbar."""

  def __init__(self, config: dict[str, Any], image: QImage | None = None,
               on_config_change: Callable[[dict[str, Any]], None] | None = None):
    super().__init__()
    self._config = config
    self._on_config_change = on_config_change
    self._settings = settings_from_config(config)
    self.edit_log = EditLog()

    self._analysis_thread: QThread | None = None
    self._analysis_worker: AnalysisWorker | None = None

    self.setWindowTitle("InkPatch")
    self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)

    self._save_timer = QTimer(self)
    self._save_timer.setSingleShot(True)
    self._save_timer.setInterval(SAVE_DEBOUNCE_MS)
    self._save_timer.timeout.connect(self._flush_config)

    self.toolbar = EditorToolbar(self._settings, self)
    self.toolbar.tool_changed.connect(self.set_tool)
    self.toolbar.color_changed.connect(self._set_color)
    self.toolbar.width_changed.connect(self._set_width)
    self.toolbar.intensity_changed.connect(self._set_intensity)
    self.toolbar.undo_requested.connect(self.undo)
    self.toolbar.clear_requested.connect(self.clear)
    self.toolbar.analyze_requested.connect(self.analyze)
    self.toolbar.open_requested.connect(self.open_file)
    self.toolbar.screen_requested.connect(self.capture_screen)
    self.toolbar.save_requested.connect(self.save_image)

    self.canvas = AnnotationCanvas(
      self.edit_log, self.settings,
      on_tool_change=self.set_tool, on_analyze_request=self._start_analysis,
      parent=self,
    )
    self.canvas.surface_changed.connect(self._update_buttons)
    self.canvas.pixel_access_denied.connect(self._show_pixel_error)

    self.analysis_label = QLabel("")
    self.analysis_label.setWordWrap(True)
    self.analysis_label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
    self.analysis_label.setStyleSheet("QLabel { color: #ccc; background: #222; padding: 6px; }")
    self.analysis_label.hide()

    layout = QVBoxLayout(self)
    layout.setContentsMargins(0, 0, 0, 0)
    layout.setSpacing(0)
    layout.addWidget(self.toolbar)
    layout.addWidget(self.canvas, 1)
    layout.addWidget(self.analysis_label)

    if image is not None and not image.isNull():
      self.load_image(image)

  # -- Settings ---------------------------------------------------------------

  def settings(self) -> EditorSettings:
    return self._settings

  def set_tool(self, tool: Tool) -> None:
    if tool is self._settings.tool:
      return
    self._settings.tool = tool
    self.toolbar.set_active_tool_button(tool)
    self.canvas.controller.cancel_hover()
    self._config["default_tool"] = tool.value
    self._schedule_config_save()
    self.canvas.refresh()

  def _set_color(self, color: QColor) -> None:
    self._settings.color = QColor(color)
    self._config["color"] = color.name()
    self._schedule_config_save()
    self.canvas.refresh()

  def _set_width(self, width: int) -> None:
    self._settings.stroke_width = width
    self._config["stroke_width"] = width
    self._schedule_config_save()
    self.canvas.update()

  def _set_intensity(self, intensity: int) -> None:
    self._settings.intensity = intensity
    self._config["intensity"] = intensity
    self._schedule_config_save()

  def _schedule_config_save(self) -> None:
    self._save_timer.start()

  def _flush_config(self) -> None:
    if self._on_config_change:
      self._on_config_change(self._config)

  # -- Image sources ----------------------------------------------------------

  def load_image(self, image: QImage) -> None:
    """Start a new session on image; the previous edits are discarded."""
    self.edit_log.clear()
    self.analysis_label.hide()
    self.analysis_label.setText("")
    self.canvas.set_base_image(image)
    self._update_buttons()

  def open_file(self) -> None:
    folder = self._config.get("open_folder", "")
    path, _ = QFileDialog.getOpenFileName(self, "Open image", folder, image_file_filter())
    if not path:
      return
    try:
      image = load_image_file(path)
    except ValueError as e:
      log.error("%s", e)
      QMessageBox.warning(self, "Open image", str(e))
      return
    self._config["open_folder"] = os.path.dirname(path)
    self._schedule_config_save()
    self.load_image(image)

  def paste_image(self) -> bool:
    image = image_from_clipboard()
    if image is None:
      log.debug("Paste ignored: clipboard has no image")
      return False
    self.load_image(image)
    return True

  def capture_screen(self) -> None:
    """Hide, grab the screen once the window is gone, then come back."""
    self.hide()
    QTimer.singleShot(SCREEN_GRAB_DELAY_MS, self._grab_screen)

  def _grab_screen(self) -> None:
    try:
      image = capture_screen()
    except Exception as e:
      log.error("Failed to capture screen: %s", e)
      image = None
    self.show()
    self.raise_()
    self.activateWindow()
    if image is not None:
      self.load_image(image)

  def save_image(self) -> None:
    """Write the composited surface to a file the user picks."""
    surface = self.canvas.surface()
    if surface.isNull():
      return
    folder = self._config.get("save_folder") or os.path.expanduser("~")
    path, _ = QFileDialog.getSaveFileName(
      self, "Save image", os.path.join(folder, EXPORT_FILENAME), export_filter(),
    )
    if not path:
      return
    try:
      written = save_surface(surface, path)
    except PixelAccessDenied as e:
      log.warning("Save refused: %s", e)
      self._show_pixel_error(str(e))
      return
    except OSError as e:
      QMessageBox.warning(self, "Save image", str(e))
      return
    self._config["save_folder"] = os.path.dirname(written)
    self._schedule_config_save()

  # -- Edits ------------------------------------------------------------------

  def undo(self) -> None:
    if self.canvas.controller.is_active:
      return
    if self.edit_log.undo() is None:
      return
    self.canvas.controller.cancel_hover()
    self.canvas.refresh()

  def clear(self, confirm: bool = True) -> None:
    if self.canvas.controller.is_active or len(self.edit_log) == 0:
      return
    if confirm:
      answer = QMessageBox.question(
        self, "Clear edits", "Are you sure you want to clear all edits?",
      )
      if answer != QMessageBox.StandardButton.Yes:
        return
    self.edit_log.clear()
    self.analysis_label.hide()
    self.canvas.controller.cancel_hover()
    self.canvas.refresh()

  def _update_buttons(self) -> None:
    self.toolbar.set_undo_enabled(len(self.edit_log) > 0)
    self.toolbar.set_analyze_enabled(
      not self.canvas.surface().isNull() and self._analysis_thread is None
    )
    self.toolbar.set_save_enabled(not self.canvas.surface().isNull())

  def _show_pixel_error(self, message: str) -> None:
    QMessageBox.warning(self, "Pixel access denied", message)

  # -- Analysis ---------------------------------------------------------------

  def analyze(self) -> None:
    self.canvas.controller.request_analysis(self.canvas.surface())

  def _start_analysis(self, surface: QImage) -> None:
    if self._analysis_thread is not None:
      return
    try:
      png = encode_png(surface)
    except PixelAccessDenied as e:
      log.error("Analysis refused: %s", e)
      self._show_pixel_error(str(e))
      return

    self.analysis_label.setText("Analyzing...")
    self.analysis_label.show()

    self._analysis_thread = QThread()
    self._analysis_worker = AnalysisWorker(png, self._config.get("analysis_model", DEFAULT_MODEL))
    self._analysis_worker.moveToThread(self._analysis_thread)

    self._analysis_thread.started.connect(self._analysis_worker.run)
    self._analysis_worker.finished.connect(self._on_analysis_finished)
    self._analysis_worker.failed.connect(self._on_analysis_failed)
    self._analysis_worker.finished.connect(self._analysis_thread.quit)
    self._analysis_worker.failed.connect(self._analysis_thread.quit)
    self._analysis_thread.finished.connect(self._analysis_done)
    self._analysis_thread.finished.connect(self._analysis_worker.deleteLater)
    self._analysis_thread.finished.connect(self._analysis_thread.deleteLater)

    self._update_buttons()
    self._analysis_thread.start()

  def _on_analysis_finished(self, text: str) -> None:
    self.analysis_label.setText(text)
    self.analysis_label.show()

  def _on_analysis_failed(self, err: str) -> None:
    self.analysis_label.setText(FAILED_MESSAGE)
    self.analysis_label.show()

  def _analysis_done(self) -> None:
    self._analysis_thread = None
    self._analysis_worker = None
    self._update_buttons()

  # -- Keyboard ---------------------------------------------------------------

  def keyPressEvent(self, event: QKeyEvent) -> None:
    key = event.key()
    mods = event.modifiers() & (
      Qt.KeyboardModifier.ControlModifier
      | Qt.KeyboardModifier.ShiftModifier
      | Qt.KeyboardModifier.AltModifier
    )
    if key == Qt.Key.Key_Z and mods == Qt.KeyboardModifier.ControlModifier:
      self.undo()
    elif key == Qt.Key.Key_V and mods == Qt.KeyboardModifier.ControlModifier:
      self.paste_image()
    elif key == Qt.Key.Key_O and mods == Qt.KeyboardModifier.ControlModifier:
      self.open_file()
    elif key == Qt.Key.Key_S and mods == Qt.KeyboardModifier.ControlModifier:
      self.save_image()
    else:
      super().keyPressEvent(event)

  def closeEvent(self, event: QCloseEvent) -> None:
    if self._save_timer.isActive():
      self._save_timer.stop()
      self._flush_config()
    if self._analysis_thread is not None:
      self._analysis_thread.quit()
      self._analysis_thread.wait(2000)
    super().closeEvent(event)
