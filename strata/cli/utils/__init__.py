"""CLI output utilities."""

from .colors import success, error, warning, info, dim, bold

__all__ = ["success", "error", "warning", "info", "dim", "bold"]
