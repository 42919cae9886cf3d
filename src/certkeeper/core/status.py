"""Lifecycle status derivation for certificates.

Status is never stored as ground truth; callers recompute it on every
read because the answer drifts with wall-clock time.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta

from certkeeper.core.types import CertificateStatus

DEFAULT_SOON_WINDOW_DAYS = 30


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def classify(
    valid_to: datetime,
    now: datetime,
    soon_window_days: int = DEFAULT_SOON_WINDOW_DAYS,
) -> CertificateStatus:
    """Classify a certificate by its ``notAfter`` instant.

    A certificate whose ``valid_to`` equals *now* is already
    ``EXPIRED``.  ``EXPIRING_SOON`` covers the half-open interval
    ``(now, now + soon_window_days)``.

    Raises:
        ValueError: If *soon_window_days* is negative.
    """
    if soon_window_days < 0:
        msg = f"soon_window_days must be >= 0 (got {soon_window_days})"
        raise ValueError(msg)

    end = _as_utc(valid_to)
    current = _as_utc(now)

    if end <= current:
        return CertificateStatus.EXPIRED
    if end < current + timedelta(days=soon_window_days):
        return CertificateStatus.EXPIRING_SOON
    return CertificateStatus.VALID


def days_until_expiry(valid_to: datetime, now: datetime) -> int:
    """Whole days remaining until *valid_to*.

    A partial day left counts as a full day.  Once the certificate has
    expired the result is negative, so a partial day past expiry is -1.
    """
    days = (_as_utc(valid_to) - _as_utc(now)).total_seconds() / 86400
    if days > 0:
        return math.ceil(days)
    return math.floor(days)
