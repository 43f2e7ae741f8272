"""Shared rich console for capture logs and CLI output."""

from __future__ import annotations

from rich.console import Console

console = Console()
err_console = Console(stderr=True)


def truncate(s: str, max_len: int) -> str:
    """Truncate a string to max_len, adding '...' if needed."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def human_size(num_bytes: int) -> str:
    """Format a byte count as B / KB / MB."""
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"
