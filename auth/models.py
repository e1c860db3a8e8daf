"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in vault/models.py -- dataclasses own domain shape; stores and routes do the
work.

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A StashIt account, created on the first Google login.

    google_id is the provider's stable subject ("sub" claim). It is unique,
    never changes once written, and is the only link between a Google identity
    and this record -- email addresses can change on the provider side.

    last_login_at is the only field a repeat login touches.
    """

    google_id: str
    email: str
    id: int | None = None
    name: str | None = None
    avatar: str | None = None  # profile picture URL
    created_at: str | None = None
    last_login_at: str | None = None
