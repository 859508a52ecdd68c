"""Per-user TOTP secret lifecycle: enrollment, confirmation, verification.

Each user is either in ``EnrollmentState.NONE`` or
``EnrollmentState.PENDING_CONFIRMATION`` with an in-memory temporary
secret. The first correct code for a temporary secret promotes it: the
store persists it, then the pending entry is cleared. Pending secrets
live as long as the manager instance.

Replay policy: with ``reject_replay`` on (the default), the last time
step accepted for a user is remembered and a code from that step or an
earlier one is refused, so a code is good for one login only. The record
is tied to the secret that accepted the code, so a fresh enrollment
secret is never refused because of an earlier login.
"""

from __future__ import annotations

import logging
import re
import threading
import weakref
from collections.abc import Hashable

from otpgate.codec import generate_secret, is_valid_secret
from otpgate.config import settings
from otpgate.models import EnrollmentState
from otpgate.store import UserDataStore
from otpgate.verifier import TOTPVerifier

logger = logging.getLogger(__name__)

CODE_FORMAT_RE = re.compile(r"[0-9]{3} ?[0-9]{3}")


class SecretPersistenceError(RuntimeError):
    """The store failed to persist a confirmed secret; enrollment is still pending."""


def is_format(text: str) -> bool:
    """Quick check whether an input line looks like a code ("123456" or "123 456")."""
    return CODE_FORMAT_RE.fullmatch(text) is not None


class SecretLifecycleManager:
    def __init__(
        self,
        store: UserDataStore,
        verifier: TOTPVerifier | None = None,
        *,
        reject_replay: bool | None = None,
    ) -> None:
        self.store = store
        self.verifier = verifier or TOTPVerifier()
        self.reject_replay = settings.totp_reject_replay if reject_replay is None else reject_replay
        self._pending: dict[Hashable, str] = {}
        # user -> (secret, last accepted step)
        self._last_steps: dict[Hashable, tuple[str, int]] = {}
        # Entries vanish once no caller holds the lock
        self._user_locks: weakref.WeakValueDictionary[Hashable, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_lock = threading.Lock()

    def _lock_for(self, user: Hashable) -> threading.Lock:
        with self._locks_lock:
            lock = self._user_locks.get(user)
            if lock is None:
                lock = self._user_locks[user] = threading.Lock()
            return lock

    def state(self, user: Hashable) -> EnrollmentState:
        with self._lock_for(user):
            if user in self._pending:
                return EnrollmentState.PENDING_CONFIRMATION
            return EnrollmentState.NONE

    def has_pending(self, user: Hashable) -> bool:
        return self.state(user) is EnrollmentState.PENDING_CONFIRMATION

    def begin_enrollment(self, user: Hashable) -> str:
        """Start (or restart) enrollment and return the new temporary secret."""
        secret = generate_secret()
        with self._lock_for(user):
            replaced = user in self._pending
            self._pending[user] = secret
        logger.info("Started TOTP enrollment for %s%s", user, " (replaced pending secret)" if replaced else "")
        return secret

    def abandon_enrollment(self, user: Hashable) -> None:
        with self._lock_for(user):
            if self._pending.pop(user, None) is not None:
                logger.info("Abandoned TOTP enrollment for %s", user)

    def _accept(self, user: Hashable, secret: str, step: int | None) -> bool:
        if step is None:
            return False
        if self.reject_replay:
            last = self._last_steps.get(user)
            if last is not None and last[0] == secret and step <= last[1]:
                logger.info("Rejected replayed TOTP code for %s", user)
                return False
        return True

    def authenticate(self, user: Hashable, code: str, now: float | None = None) -> bool:
        """Check ``code`` for ``user``.

        Raises SecretPersistenceError if a correct code confirms a pending
        secret but the store cannot persist it; the user may retry.
        """
        with self._lock_for(user):
            pending = self._pending.get(user)
            if pending is not None:
                step = self.verifier.match_step(pending, code, now)
                if not self._accept(user, pending, step):
                    return False
                try:
                    self.store.set_confirmed_secret(user, pending)
                except Exception as e:
                    logger.error("Failed to persist confirmed TOTP secret for %s", user, exc_info=True)
                    raise SecretPersistenceError(f"Could not persist TOTP secret for {user}") from e
                del self._pending[user]
                self._last_steps[user] = (pending, step)
                logger.info("Confirmed TOTP enrollment for %s", user)
                return True

            confirmed = self.store.get_confirmed_secret(user)
            if confirmed is None:
                return False
            if not is_valid_secret(confirmed):
                logger.error("Stored TOTP secret for %s is not valid base32", user)
                return False
            step = self.verifier.match_step(confirmed, code, now)
            if not self._accept(user, confirmed, step):
                return False
            self._last_steps[user] = (confirmed, step)
            return True
