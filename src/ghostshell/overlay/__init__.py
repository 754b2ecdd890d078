"""Inline ghost-text suggestions drawn past the cursor."""

from ghostshell.overlay.renderer import OverlayRenderer, OverlaySpan
from ghostshell.overlay.scheduler import LatestWins

__all__ = ["LatestWins", "OverlayRenderer", "OverlaySpan"]
