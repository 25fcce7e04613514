from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    status_code: int


class SourceUnavailable(Exception):
    """A facility source could not be queried; recoverable via fallback."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class DiscoveryUnavailable(Exception):
    """Every facility source tier failed for one discovery call."""
