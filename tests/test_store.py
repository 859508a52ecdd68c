"""Tests for confirmed-secret stores."""

from __future__ import annotations

import base64
import os
from typing import Any

import pytest

from otpgate.config import Settings
from otpgate.store import InMemoryUserStore, PostgresUserStore


def test_in_memory_store():
    store = InMemoryUserStore()
    assert store.get_confirmed_secret("alice") is None
    store.set_confirmed_secret("alice", "JBSWY3DPEHPK3PXP")
    assert store.get_confirmed_secret("alice") == "JBSWY3DPEHPK3PXP"
    assert store.delete_confirmed_secret("alice")
    assert not store.delete_confirmed_secret("alice")
    assert store.get_confirmed_secret("alice") is None


class FakeDB:
    """Just enough of totp_secrets to exercise PostgresUserStore's SQL calls."""

    def __init__(self) -> None:
        self.rows: dict[str, str] = {}
        self.queries: list[str] = []

    def execute(self, query: str, params: tuple[Any, ...] | None = None) -> list[dict[str, Any]]:
        self.queries.append(query)
        q = " ".join(query.split())
        if q.startswith("INSERT INTO totp_secrets"):
            user_id, secret_enc = params
            self.rows[user_id] = secret_enc
            return []
        if q.startswith("DELETE FROM totp_secrets"):
            return [{"user_id": params[0]}] if self.rows.pop(params[0], None) else []
        return []

    def execute_one(self, query: str, params: tuple[Any, ...] | None = None) -> dict[str, Any] | None:
        self.queries.append(query)
        enc = self.rows.get(params[0])
        return {"secret_enc": enc} if enc else None


@pytest.fixture
def fake_db(monkeypatch) -> FakeDB:
    db = FakeDB()
    key = base64.b64encode(os.urandom(32)).decode()
    monkeypatch.setattr("otpgate.crypto.settings", Settings(_env_file=None, otpgate_master_key=key))
    monkeypatch.setattr("otpgate.store.sync_execute", db.execute)
    monkeypatch.setattr("otpgate.store.sync_execute_one", db.execute_one)
    return db


def test_postgres_store_roundtrip(fake_db):
    store = PostgresUserStore()
    store.ensure_schema()
    assert "CREATE TABLE IF NOT EXISTS totp_secrets" in fake_db.queries[0]

    assert store.get_confirmed_secret("alice") is None
    store.set_confirmed_secret("alice", "JBSWY3DPEHPK3PXP")
    # Encrypted at rest
    assert "JBSWY3DPEHPK3PXP" not in fake_db.rows["alice"]
    assert store.get_confirmed_secret("alice") == "JBSWY3DPEHPK3PXP"

    assert store.delete_confirmed_secret("alice")
    assert store.get_confirmed_secret("alice") is None


def test_postgres_store_binds_ciphertext_to_user(fake_db):
    from cryptography.exceptions import InvalidTag

    store = PostgresUserStore()
    store.set_confirmed_secret("alice", "JBSWY3DPEHPK3PXP")
    fake_db.rows["mallory"] = fake_db.rows["alice"]
    with pytest.raises(InvalidTag):
        store.get_confirmed_secret("mallory")


def test_postgres_store_without_master_key(monkeypatch):
    monkeypatch.setattr("otpgate.crypto.settings", Settings(_env_file=None, otpgate_master_key=""))
    monkeypatch.setattr("otpgate.store.sync_execute", lambda *a, **k: [])
    with pytest.raises(RuntimeError):
        PostgresUserStore().set_confirmed_secret("alice", "JBSWY3DPEHPK3PXP")


def test_sync_conn_uses_settings(monkeypatch):
    from otpgate import db

    seen: dict[str, Any] = {}

    def fake_connect(conninfo, **kwargs):
        seen["conninfo"] = conninfo
        seen.update(kwargs)
        return object()

    monkeypatch.setattr(db, "settings", Settings(_env_file=None, database_url="postgresql://u:p@db/otp"))
    monkeypatch.setattr(db.psycopg, "connect", fake_connect)
    db.sync_conn()
    assert seen["conninfo"] == "postgresql://u:p@db/otp"
    assert seen["row_factory"] is db.psycopg.rows.dict_row
