#!/usr/bin/env python3
"""
auth.py
-------
Shared-secret admin login.

This is a convenience gate for admin-only commands, not a security
boundary: one password, compared in constant time, with the session
state held in memory.
"""
from __future__ import annotations

import hmac
from typing import Optional

from .logging_manager import MidweaveLogger, safe_logger


class AdminAuth:
    """In-memory admin session backed by a single shared password."""

    def __init__(self, password: str, logger: Optional[MidweaveLogger] = None) -> None:
        self._password = password
        self._authenticated = False
        self.logger = logger

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    def login(self, password: str) -> bool:
        """Return True and open the session if the password matches."""
        self._authenticated = bool(self._password) and hmac.compare_digest(
            password.encode("utf-8"), self._password.encode("utf-8")
        )
        if not self._authenticated:
            safe_logger(self.logger).log_warning("Admin login rejected")
        return self._authenticated

    def logout(self) -> None:
        self._authenticated = False
