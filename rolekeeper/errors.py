# errors.py – Error taxonomy shared by the boards, analyzer and bot layers

from __future__ import annotations

from typing import Optional


class RoleManagerError(Exception):
    """Base exception for every failure the bot reports to a user."""

    def __init__(self, cause: str):
        super().__init__(cause)
        self.cause = cause

    def __str__(self) -> str:
        return self.cause


class TransportError(RoleManagerError):
    """Network failure or non-2xx status from an external board."""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        self.url = url
        self.status = status
        super().__init__(f"Failed to request {url}: {message}")


class UpstreamFormatError(RoleManagerError):
    """A board answered with JSON that does not have the expected shape."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Failed to convert response from {url}: {message}")


class ConfigError(RoleManagerError):
    """Malformed role definition document, duration string or server config."""


class DataIntegrityError(RoleManagerError):
    """A stored or provided external id does not parse the way it should."""
