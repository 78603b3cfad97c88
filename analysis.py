"""
Remote image analysis of the composited surface using Gemini.

The worker is meant to run on a QThread; results come back through its
finished/failed signals.
"""

from __future__ import annotations

import os

from google import genai
from google.genai import types
from PySide6.QtCore import QBuffer, QByteArray, QIODevice, QObject, Signal
from PySide6.QtGui import QImage

from compositor import PixelAccessDenied, is_protected
from log import get_logger

log = get_logger("analysis")

DEFAULT_MODEL = "gemini-3-flash-preview"
NO_INSIGHTS = "No insights available for this image."
FAILED_MESSAGE = "Failed to analyze image. Please try again."

ANALYSIS_PROMPT = (
  "Analyze this image and the markings on it. Provide a brief professional "
  "description of the image content and any annotations (arrows, boxes, lines) "
  "added. Suggest one creative way to improve this visual communication."
)


def encode_png(image: QImage) -> bytes:
  """PNG bytes of a surface. Protected or empty surfaces cannot be exported."""
  if image is None or image.isNull():
    raise PixelAccessDenied("surface has no pixel data")
  if is_protected(image):
    raise PixelAccessDenied("surface is protected; its pixels cannot be exported")
  data = QByteArray()
  buf = QBuffer(data)
  buf.open(QIODevice.OpenModeFlag.WriteOnly)
  ok = image.save(buf, "PNG")
  buf.close()
  if not ok:
    raise ValueError("PNG encoding failed")
  return bytes(data.data())


def api_key_from_env() -> str:
  for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY"):
    key = os.environ.get(name, "").strip()
    if key:
      return key
  return ""


class AnalysisWorker(QObject):
  """
  Sends one PNG to the model and reports the text answer.

  Signals:
      finished(str): analysis text (or a placeholder when the model is silent)
      failed(str): error message
  """

  finished = Signal(str)
  failed = Signal(str)

  def __init__(self, png: bytes, model: str = DEFAULT_MODEL):
    super().__init__()
    self.png = png
    self.model = model

  def run(self) -> None:
    try:
      api_key = api_key_from_env()
      if not api_key:
        raise RuntimeError("GEMINI_API_KEY (or GOOGLE_API_KEY) is not set.")

      client = genai.Client(api_key=api_key)
      response = client.models.generate_content(
        model=self.model,
        contents=[
          types.Part.from_bytes(data=self.png, mime_type="image/png"),
          ANALYSIS_PROMPT,
        ],
      )
      text = getattr(response, "text", None) or NO_INSIGHTS
      log.info("Analysis finished (%d chars)", len(text))
      self.finished.emit(text)
    except Exception as e:
      log.error("Analysis failed: %s", e)
      self.failed.emit(str(e))
