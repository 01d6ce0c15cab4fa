"""Domain models for the users API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class User:
    """Represents a user row stored in the ``users`` table."""

    id: int
    name: str
    email: str
    created_at: datetime


__all__ = ["User"]
