"""Tests for the pasted-region rasterization cache."""

from PySide6.QtCore import QPointF
from PySide6.QtGui import QColor, QImage
from PySide6.QtWidgets import QApplication

app = QApplication.instance() or QApplication([])

from edits import EditLog
from region_cache import RegionCache


def _region(log):
  img = QImage(6, 6, QImage.Format.Format_ARGB32)
  img.fill(QColor(0, 200, 0))
  return log.add_region(img, QPointF(0, 0), 6, 6)


class TestRegionCache:
  def test_get_caches_premultiplied_image(self):
    cache = RegionCache()
    region = _region(EditLog())
    img = cache.get(region)
    assert img.format() == QImage.Format.Format_ARGB32_Premultiplied
    assert region.id in cache
    assert cache.get(region) is img

  def test_prune_drops_removed_regions(self):
    log = EditLog()
    cache = RegionCache()
    a, b = _region(log), _region(log)
    cache.get(a)
    cache.get(b)
    cache.prune([b.id])
    assert a.id not in cache
    assert b.id in cache
    assert len(cache) == 1

  def test_invalidate_and_clear(self):
    cache = RegionCache()
    region = _region(EditLog())
    cache.get(region)
    cache.invalidate(region.id)
    assert len(cache) == 0
    cache.get(region)
    cache.clear()
    assert len(cache) == 0
