"""Synchronous PostgreSQL helpers for the confirmed-secret store."""

from __future__ import annotations

from typing import Any

import psycopg
import psycopg.rows

from otpgate.config import settings


def sync_conn() -> psycopg.Connection[dict[str, Any]]:
    """Open a synchronous connection using project settings."""
    return psycopg.connect(settings.database_url, row_factory=psycopg.rows.dict_row)


def sync_execute(query: str, params: tuple[Any, ...] | None = None) -> list[dict[str, Any]]:
    """Execute query synchronously; opens and closes a connection per call."""
    with sync_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(query, params)
            conn.commit()
            if cur.description is None:
                return []
            return cur.fetchall()


def sync_execute_one(query: str, params: tuple[Any, ...] | None = None) -> dict[str, Any] | None:
    """Execute query synchronously and return one row."""
    with sync_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(query, params)
            conn.commit()
            if cur.description is None:
                return None
            return cur.fetchone()
