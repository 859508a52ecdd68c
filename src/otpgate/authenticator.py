"""Host-facing TOTP authenticator.

Hosts call ``init_user`` when a player/user asks to enable 2FA,
``authenticate`` with each submitted code, and ``quit_user`` when the
session ends. The clock check is separate (see ``otpgate.clock``) and
must be started by the host.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable
from typing import Protocol

from otpgate.codec import build_provisioning_uri
from otpgate.config import settings
from otpgate.lifecycle import SecretLifecycleManager, is_format
from otpgate.models import ProvisioningPayload
from otpgate.store import UserDataStore

logger = logging.getLogger(__name__)


class DeliveryChannel(Protocol):
    """Presents a provisioning payload to the user (chat message, QR image, ...)."""

    def deliver(self, user: Hashable, payload: ProvisioningPayload) -> None: ...


class TOTPAuthenticator:
    def __init__(
        self,
        store: UserDataStore | None,
        delivery: DeliveryChannel,
        *,
        issuer: str | None = None,
        manager: SecretLifecycleManager | None = None,
    ) -> None:
        self.issuer = issuer or settings.totp_issuer
        self.delivery = delivery
        if manager is None:
            if store is None:
                raise ValueError("TOTPAuthenticator needs a store or a manager")
            manager = SecretLifecycleManager(store)
        elif store is not None and manager.store is not store:
            raise ValueError("store does not match manager.store")
        self.manager = manager

    def init_user(self, user: Hashable, label: str) -> ProvisioningPayload:
        secret = self.manager.begin_enrollment(user)
        uri = build_provisioning_uri(label, secret, self.issuer)
        if uri is None:
            logger.warning("Delivering raw secret to %s without provisioning URI", user)
        payload = ProvisioningPayload(label=label, issuer=self.issuer, secret=secret, provisioning_uri=uri)
        self.delivery.deliver(user, payload)
        return payload

    def authenticate(self, user: Hashable, code: str, now: float | None = None) -> bool:
        return self.manager.authenticate(user, code, now)

    def quit_user(self, user: Hashable) -> None:
        self.manager.abandon_enrollment(user)

    @staticmethod
    def is_format(text: str) -> bool:
        return is_format(text)
