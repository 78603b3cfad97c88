"""Tests for base-image ingestion from files, the clipboard and the screen."""

from unittest.mock import patch, MagicMock

import pytest
from PySide6.QtGui import QColor, QImage
from PySide6.QtWidgets import QApplication

app = QApplication.instance() or QApplication([])

from ingest import capture_screen, image_file_filter, image_from_clipboard, load_image_file


def make_test_image(w=30, h=20):
  img = QImage(w, h, QImage.Format.Format_RGB32)
  img.fill(QColor(200, 10, 10))
  return img


class TestLoadImageFile:
  def test_loads_png(self, tmp_path):
    path = tmp_path / "shot.png"
    assert make_test_image().save(str(path))
    img = load_image_file(str(path))
    assert (img.width(), img.height()) == (30, 20)
    assert img.format() == QImage.Format.Format_ARGB32

  def test_missing_file_raises(self, tmp_path):
    with pytest.raises(ValueError):
      load_image_file(str(tmp_path / "nope.png"))

  def test_garbage_raises(self, tmp_path):
    path = tmp_path / "bad.png"
    path.write_bytes(b"not an image")
    with pytest.raises(ValueError):
      load_image_file(str(path))

  def test_filter_lists_png(self):
    assert "*.png" in image_file_filter()


class TestClipboard:
  def test_no_image_returns_none(self):
    clipboard = MagicMock()
    clipboard.mimeData.return_value.hasImage.return_value = False
    with patch("ingest.QGuiApplication") as mock_app:
      mock_app.clipboard.return_value = clipboard
      assert image_from_clipboard() is None

  def test_image_returned(self):
    clipboard = MagicMock()
    clipboard.mimeData.return_value.hasImage.return_value = True
    clipboard.image.return_value = make_test_image()
    with patch("ingest.QGuiApplication") as mock_app:
      mock_app.clipboard.return_value = clipboard
      img = image_from_clipboard()
    assert img is not None
    assert img.width() == 30


class TestCaptureScreen:
  def test_grabs_all_monitors(self):
    with patch("ingest.mss.mss") as mock_mss:
      ctx = MagicMock()
      ctx.monitors = [{"left": 0, "top": 0, "width": 200, "height": 150}]
      grab_result = MagicMock()
      grab_result.bgra = bytes(200 * 150 * 4)
      grab_result.width = 200
      grab_result.height = 150
      ctx.grab.return_value = grab_result
      mock_mss.return_value.__enter__ = lambda s: ctx
      mock_mss.return_value.__exit__ = MagicMock(return_value=False)

      img = capture_screen()

    ctx.grab.assert_called_once_with(ctx.monitors[0])
    assert (img.width(), img.height()) == (200, 150)

  def test_capture_error_propagates(self):
    with patch("ingest.mss.mss", side_effect=RuntimeError("no display")):
      with pytest.raises(RuntimeError):
        capture_screen()
