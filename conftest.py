import os

# Headless runs have no display server
if not os.environ.get("DISPLAY") and not os.environ.get("WAYLAND_DISPLAY"):
  os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
