"""Centralized logging for InkPatch.

Every module logs through get_logger(name), which returns the
"inkpatch.<name>" logger. Records go to a rotating file at full detail and
to stderr at the level named by INKPATCH_LOG_LEVEL (INFO by default).
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from logging.handlers import RotatingFileHandler

LOG_FILENAME = "inkpatch.log"
LOGGER_PREFIX = "inkpatch"
LEVEL_ENV = "INKPATCH_LOG_LEVEL"
MAX_LOG_BYTES = 1_000_000
LOG_BACKUPS = 3


def _writable_dir(path: str) -> bool:
  try:
    os.makedirs(path, exist_ok=True)
    with open(os.path.join(path, LOG_FILENAME), "a"):
      pass
  except OSError:
    return False
  return True


def _resolve_log_dir() -> str:
  """Pick a writable directory for the log file.

  Priority: app dir (next to exe) > %APPDATA%/InkPatch or XDG state > temp dir.
  """
  if getattr(sys, "frozen", False):
    candidates = [os.path.dirname(sys.executable)]
  else:
    candidates = [os.path.dirname(os.path.abspath(__file__))]

  if sys.platform == "win32":
    appdata = os.environ.get("APPDATA", "")
    if appdata:
      candidates.append(os.path.join(appdata, "InkPatch"))
  else:
    xdg = os.environ.get("XDG_STATE_HOME", os.path.expanduser("~/.local/state"))
    candidates.append(os.path.join(xdg, "inkpatch"))

  for path in candidates:
    if _writable_dir(path):
      return path
  return tempfile.gettempdir()


def console_level() -> int:
  """Console threshold from INKPATCH_LOG_LEVEL; unknown names mean INFO."""
  name = os.environ.get(LEVEL_ENV, "INFO").strip().upper()
  level = logging.getLevelName(name)
  return level if isinstance(level, int) else logging.INFO


_log_dir = _resolve_log_dir()
LOG_PATH = os.path.join(_log_dir, LOG_FILENAME)

_formatter = logging.Formatter(
  "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
  datefmt="%Y-%m-%d %H:%M:%S",
)


def _build_file_handler() -> logging.Handler | None:
  try:
    handler = RotatingFileHandler(
      LOG_PATH, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8",
    )
  except OSError:
    return None
  handler.setFormatter(_formatter)
  return handler


def _build_console_handler() -> logging.Handler:
  handler = logging.StreamHandler()
  handler.setFormatter(_formatter)
  handler.setLevel(console_level())
  return handler


_file_handler = _build_file_handler()
_console_handler = _build_console_handler()


def get_logger(name: str) -> logging.Logger:
  """Get a named logger with file and console handlers."""
  logger = logging.getLogger(f"{LOGGER_PREFIX}.{name}")
  if not logger.handlers:
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    if _file_handler:
      logger.addHandler(_file_handler)
    logger.addHandler(_console_handler)
  return logger
