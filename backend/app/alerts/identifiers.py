"""
identifiers.py — Opaque ids, tokens and timestamps for SOS alerts.

    Reporter alert id    id_<9 base36 chars><epoch ms in base36>
    Relay alert id       alert_<epoch ms>_<9 base36 chars>
    Identity token       0x + 40 hex chars   ("blockchain id", never verified)
    Transaction hash     0x + 64 hex chars   (decorative integrity token)

None of these are verified anywhere; they only need to be unique enough
for a demo deployment.
"""

from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, timezone
from typing import Optional

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _random_base36(length: int = 9) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO 8601 UTC with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_reporter_alert_id(now_ms: Optional[int] = None) -> str:
    now_ms = epoch_ms() if now_ms is None else now_ms
    return f"id_{_random_base36()}{_to_base36(now_ms)}"


def new_relay_alert_id(now_ms: Optional[int] = None) -> str:
    now_ms = epoch_ms() if now_ms is None else now_ms
    return f"alert_{now_ms}_{_random_base36()}"


def new_blockchain_id() -> str:
    return "0x" + secrets.token_hex(20)


def new_transaction_hash() -> str:
    return "0x" + secrets.token_hex(32)
