"""Confirmed-secret storage.

The lifecycle manager only reads confirmed secrets and asks the store to
persist newly confirmed ones. ``set_confirmed_secret`` must not return
until the secret is durable; any failure must raise.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable
from typing import Protocol

from otpgate.crypto import decrypt, encrypt
from otpgate.db import sync_execute, sync_execute_one

logger = logging.getLogger(__name__)


class UserDataStore(Protocol):
    def get_confirmed_secret(self, user: Hashable) -> str | None: ...

    def set_confirmed_secret(self, user: Hashable, secret: str) -> None: ...


class InMemoryUserStore:
    """Process-local store for tests and single-process embedding."""

    def __init__(self) -> None:
        self._secrets: dict[Hashable, str] = {}
        self._lock = threading.Lock()

    def get_confirmed_secret(self, user: Hashable) -> str | None:
        with self._lock:
            return self._secrets.get(user)

    def set_confirmed_secret(self, user: Hashable, secret: str) -> None:
        with self._lock:
            self._secrets[user] = secret

    def delete_confirmed_secret(self, user: Hashable) -> bool:
        with self._lock:
            return self._secrets.pop(user, None) is not None


SCHEMA = """
CREATE TABLE IF NOT EXISTS totp_secrets (
    user_id      TEXT PRIMARY KEY,
    secret_enc   TEXT NOT NULL,
    confirmed_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""


class PostgresUserStore:
    """Confirmed secrets in PostgreSQL, AES-GCM encrypted and bound to the user id."""

    def ensure_schema(self) -> None:
        sync_execute(SCHEMA)

    def get_confirmed_secret(self, user: Hashable) -> str | None:
        user_id = str(user)
        row = sync_execute_one(
            "SELECT secret_enc FROM totp_secrets WHERE user_id = %s",
            (user_id,),
        )
        if not row:
            return None
        return decrypt(row["secret_enc"], user_id.encode())

    def set_confirmed_secret(self, user: Hashable, secret: str) -> None:
        user_id = str(user)
        sync_execute(
            """INSERT INTO totp_secrets (user_id, secret_enc)
               VALUES (%s, %s)
               ON CONFLICT (user_id)
               DO UPDATE SET secret_enc = EXCLUDED.secret_enc, confirmed_at = now()""",
            (user_id, encrypt(secret, user_id.encode())),
        )
        logger.info("Stored confirmed TOTP secret for user %s", user_id)

    def delete_confirmed_secret(self, user: Hashable) -> bool:
        rows = sync_execute(
            "DELETE FROM totp_secrets WHERE user_id = %s RETURNING user_id",
            (str(user),),
        )
        return bool(rows)
