from __future__ import annotations

import json
import os
import sys
from typing import Any

from PySide6.QtCore import Qt, QPointF
from PySide6.QtGui import QIcon, QPixmap, QPainter, QColor, QPen, QPolygonF
from PySide6.QtWidgets import QApplication

from analysis import DEFAULT_MODEL
from edits import DEFAULT_INTENSITY
from editor_window import EditorWindow
from ingest import load_image_file
from interaction import DEFAULT_COLOR, DEFAULT_STROKE_WIDTH, DEFAULT_TOOL
from log import get_logger

log = get_logger("main")

# When frozen as exe, config lives next to the executable
if getattr(sys, "frozen", False):
  APP_DIR = os.path.dirname(sys.executable)
else:
  APP_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_PATH = os.path.join(APP_DIR, "config.json")


CONFIG_VERSION = 2

DEFAULT_CONFIG = {
  "config_version": CONFIG_VERSION,
  "default_tool": DEFAULT_TOOL.value,
  "color": DEFAULT_COLOR.name(),
  "stroke_width": DEFAULT_STROKE_WIDTH,
  "intensity": DEFAULT_INTENSITY,
  "analysis_model": DEFAULT_MODEL,
  "open_folder": os.path.expanduser("~"),
  "save_folder": os.path.expanduser("~"),
}


def migrate_config(config: dict[str, Any]) -> bool:
  """Fill in missing keys from defaults and bump version. Returns True if changed."""
  version = config.get("config_version", 0)
  changed = False

  for key, default_val in DEFAULT_CONFIG.items():
    if key not in config:
      config[key] = default_val
      log.info("Config migration: added '%s' = %r", key, default_val)
      changed = True

  if version < CONFIG_VERSION:
    config["config_version"] = CONFIG_VERSION
    changed = True
    log.info("Config migrated from v%d to v%d", version, CONFIG_VERSION)

  return changed


def load_config() -> dict[str, Any]:
  if not os.path.exists(CONFIG_PATH):
    log.info("No config found, creating defaults at %s", CONFIG_PATH)
    save_config(DEFAULT_CONFIG)
    return dict(DEFAULT_CONFIG)
  try:
    with open(CONFIG_PATH) as f:
      config = json.load(f)
  except json.JSONDecodeError as e:
    log.error("Corrupted config file, resetting to defaults: %s", e)
    save_config(DEFAULT_CONFIG)
    return dict(DEFAULT_CONFIG)
  except OSError as e:
    log.error("Cannot read config file: %s", e)
    return dict(DEFAULT_CONFIG)

  if not isinstance(config, dict):
    log.error("Config is not a JSON object, resetting to defaults")
    save_config(DEFAULT_CONFIG)
    return dict(DEFAULT_CONFIG)

  if migrate_config(config):
    save_config(config)
  return config


def save_config(config: dict[str, Any]) -> None:
  try:
    with open(CONFIG_PATH, "w") as f:
      json.dump(config, f, indent=2)
      f.write("\n")
  except OSError as e:
    log.error("Failed to save config: %s", e)


# App icon geometry (64x64 canvas)
_ICON_SIZE = 64
_ICON_BG_COLOR = "#27272a"
_ICON_INK_COLOR = DEFAULT_COLOR.name()


def create_app_icon() -> QIcon:
  """Generate a rounded tile with an arrow stroke using QPainter."""
  pixmap = QPixmap(_ICON_SIZE, _ICON_SIZE)
  pixmap.fill(QColor(0, 0, 0, 0))

  painter = QPainter(pixmap)
  painter.setRenderHint(QPainter.RenderHint.Antialiasing)
  painter.setPen(Qt.PenStyle.NoPen)

  painter.setBrush(QColor(_ICON_BG_COLOR))
  painter.drawRoundedRect(2, 2, 60, 60, 12, 12)

  ink = QColor(_ICON_INK_COLOR)
  pen = QPen(ink, 7)
  pen.setCapStyle(Qt.PenCapStyle.RoundCap)
  painter.setPen(pen)
  painter.drawLine(14, 50, 40, 24)

  painter.setPen(Qt.PenStyle.NoPen)
  painter.setBrush(ink)
  painter.drawPolygon(QPolygonF([QPointF(52, 12), QPointF(30, 20), QPointF(44, 34)]))

  painter.end()
  return QIcon(pixmap)


def main(argv: list[str] | None = None) -> int:
  argv = list(sys.argv if argv is None else argv)
  app = QApplication.instance() or QApplication(argv)
  app.setWindowIcon(create_app_icon())

  config = load_config()
  window = EditorWindow(config, on_config_change=save_config)

  if len(argv) > 1:
    try:
      window.load_image(load_image_file(argv[1]))
    except ValueError as e:
      log.error("%s", e)

  window.resize(1200, 800)
  window.show()
  log.info("InkPatch started")
  code = app.exec()
  log.info("InkPatch exiting")
  return code


if __name__ == "__main__":
  sys.exit(main())
