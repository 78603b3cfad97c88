"""Writing the composited surface to disk."""

from __future__ import annotations

import os

from PySide6.QtGui import QImage

from compositor import PixelAccessDenied, is_protected
from log import get_logger

log = get_logger("export")

EXPORT_FILENAME = "inkpatch-edit.png"
JPEG_QUALITY = 85

_FORMATS = {
  ".png": "PNG",
  ".jpg": "JPEG",
  ".jpeg": "JPEG",
  ".webp": "WEBP",
}


def export_filter() -> str:
  return "PNG image (*.png);;JPEG image (*.jpg *.jpeg);;WebP image (*.webp)"


def save_surface(image: QImage, path: str) -> str:
  """Write image to path and return the path actually written.

  The format follows the extension; a missing or unknown extension gets
  ".png". Raises PixelAccessDenied for protected or empty surfaces and
  OSError when the file cannot be written.
  """
  if image is None or image.isNull():
    raise PixelAccessDenied("surface has no pixel data")
  if is_protected(image):
    raise PixelAccessDenied("surface is protected; its pixels cannot be exported")

  path = os.path.expanduser(path)
  ext = os.path.splitext(path)[1].lower()
  fmt = _FORMATS.get(ext)
  if fmt is None:
    path += ".png"
    fmt = "PNG"

  folder = os.path.dirname(path)
  if folder:
    os.makedirs(folder, exist_ok=True)

  if fmt == "PNG":
    ok = image.save(path, fmt)
  else:
    # JPEG has no alpha; flatten onto the pixels as shown
    ok = image.convertToFormat(QImage.Format.Format_RGB32).save(path, fmt, JPEG_QUALITY)
  if not ok:
    log.error("Failed to save image to %s", path)
    raise OSError(f"could not write {path}")

  log.info("Saved %dx%d image to %s", image.width(), image.height(), path)
  return path
