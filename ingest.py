"""Sources for the base image: files, the clipboard and the screen."""

from __future__ import annotations

import os

import mss
from PySide6.QtGui import QGuiApplication, QImage, QImageReader

from log import get_logger

log = get_logger("ingest")

BASE_FORMAT = QImage.Format.Format_ARGB32


def image_file_filter() -> str:
  """File dialog filter listing every format Qt can decode."""
  exts = sorted(bytes(f).decode() for f in QImageReader.supportedImageFormats())
  patterns = " ".join(f"*.{e}" for e in exts)
  return f"Images ({patterns});;All files (*)"


def load_image_file(path: str) -> QImage:
  """Decode an image file into a base image. Raises ValueError if unreadable."""
  reader = QImageReader(os.path.expanduser(path))
  reader.setAutoTransform(True)
  image = reader.read()
  if image.isNull():
    raise ValueError(f"Cannot read image {path!r}: {reader.errorString()}")
  log.info("Loaded %s (%dx%d)", path, image.width(), image.height())
  return image.convertToFormat(BASE_FORMAT)


def image_from_clipboard() -> QImage | None:
  """Return the clipboard image, or None if the clipboard holds no image."""
  clipboard = QGuiApplication.clipboard()
  mime = clipboard.mimeData()
  if mime is None or not mime.hasImage():
    return None
  image = clipboard.image()
  if image.isNull():
    return None
  log.info("Pasted image from clipboard (%dx%d)", image.width(), image.height())
  return image.convertToFormat(BASE_FORMAT)


def capture_screen() -> QImage:
  """Capture all monitors using mss."""
  with mss.mss() as sct:
    monitor = sct.monitors[0]
    raw = sct.grab(monitor)
    image = QImage(
      bytes(raw.bgra), raw.width, raw.height, QImage.Format.Format_ARGB32,
    ).copy()
  log.info("Captured screen (%dx%d)", image.width(), image.height())
  return image
