"""Rasterization cache for pasted regions."""

from __future__ import annotations

from typing import Iterable

from PySide6.QtGui import QImage

from edits import PastedRegion
from log import get_logger

log = get_logger("region_cache")


class RegionCache:
  """Region id -> premultiplied image ready for drawing.

  Snapshots are immutable, so an entry stays valid for the region's whole
  life; entries for removed regions are dropped by prune().
  """

  def __init__(self) -> None:
    self._images: dict[int, QImage] = {}

  def get(self, region: PastedRegion) -> QImage:
    img = self._images.get(region.id)
    if img is None:
      img = region.pixels.convertToFormat(QImage.Format.Format_ARGB32_Premultiplied)
      self._images[region.id] = img
      log.debug("Cached region id=%d (%dx%d)", region.id, img.width(), img.height())
    return img

  def invalidate(self, region_id: int) -> None:
    self._images.pop(region_id, None)

  def prune(self, live_ids: Iterable[int]) -> None:
    live = set(live_ids)
    for region_id in [k for k in self._images if k not in live]:
      del self._images[region_id]

  def clear(self) -> None:
    self._images.clear()

  def __contains__(self, region_id: int) -> bool:
    return region_id in self._images

  def __len__(self) -> int:
    return len(self._images)
