"""Pydantic models for data handed across the otpgate boundary."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class EnrollmentState(StrEnum):
    NONE = "none"
    PENDING_CONFIRMATION = "pending_confirmation"


class ProvisioningPayload(BaseModel):
    """What a delivery channel receives when a user starts enrollment.

    ``provisioning_uri`` is None when the issuer could not be encoded;
    channels should then present ``secret`` for manual entry.
    """

    label: str
    issuer: str
    secret: str
    provisioning_uri: str | None = None


class DriftReport(BaseModel):
    """Result of comparing the local clock against a reference time source."""

    reference_url: str
    local_time: float
    max_drift_s: int
    checked: bool = False
    reference_time: int | None = None
    drift_s: int | None = None
    error: str | None = None

    @property
    def within_tolerance(self) -> bool | None:
        if self.drift_s is None:
            return None
        return abs(self.drift_s) <= self.max_drift_s
