"""Page-by-page capture of a cleared viewer."""

from src.capture.pagination import CaptureConfig, PaginationController

__all__ = ["CaptureConfig", "PaginationController"]
