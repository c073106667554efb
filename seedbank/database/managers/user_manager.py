#!/usr/bin/env python3
"""
user_manager.py
--------------------
Manages User rows.

Users are keyed by lower-cased email. Passwords are stored as salted
PBKDF2-SHA256 hashes. A re-import keeps the stored hash unless the source
record carries its own password.

Usage:
    users = UserManager(session, logger)
    user_id, created = users.upsert(values, password="secret")
"""
import base64
import hashlib
import hmac
import os
from typing import Any, Dict, Optional, Tuple

from seedbank.database.decorators import handle_db_errors, log_database_operation
from seedbank.database.models import User
from .base_manager import BaseManager

PBKDF2_ITERATIONS = 260_000


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """
    Hash a password as ``pbkdf2_sha256$<iterations>$<salt>$<hash>``.

    Examples:
        >>> hash_password("secret").startswith("pbkdf2_sha256$")
        True
    """
    salt = base64.b64encode(os.urandom(12)).decode("ascii")
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), iterations)
    encoded = base64.b64encode(digest).decode("ascii")
    return f"pbkdf2_sha256${iterations}${salt}${encoded}"


def verify_password(password: str, encoded: str) -> bool:
    """Check a password against a hash produced by hash_password."""
    try:
        algorithm, iterations, salt, expected = encoded.split("$", 3)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("ascii"), int(iterations)
    )
    return hmac.compare_digest(base64.b64encode(digest).decode("ascii"), expected)


class UserManager(BaseManager):
    """Natural-key persistence for users."""

    @handle_db_errors
    def get_by_key(self, email: str) -> Optional[User]:
        """User with this email (case-insensitive), or None."""
        return self._get_by_field(User, "email", email.strip().lower() if email else None)

    @handle_db_errors
    @log_database_operation("upsert_user")
    def upsert(
        self,
        values: Dict[str, Any],
        password: Optional[str] = None,
        default_password: str = "Password123!",
    ) -> Tuple[int, bool]:
        """
        Insert or update a user keyed by email.

        Args:
            values: Column values without the password hash
            password: Plain password from the source, if any
            default_password: Password hashed for new users without one

        Returns:
            Tuple of (user id, created)
        """
        values = dict(values)
        values["email"] = values["email"].strip().lower()
        update_fields = [name for name in values if name != "email"]

        values["password_hash"] = hash_password(password or default_password)
        if password:
            update_fields.append("password_hash")

        return self._upsert(User, values, ["email"], update_fields)

    @handle_db_errors
    def count(self) -> int:
        return self._count(User)
