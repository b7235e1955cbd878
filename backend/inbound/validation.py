from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from inbound.time_utils import from_epoch_millis, parse_iso_datetime


MAX_EPC_LENGTH = 255


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level: a tag code, purchase order, item or actor is not registered."""


class ConflictError(ValueError):
    """409-level: a unique-constraint race that survived its retry."""


@dataclass(frozen=True)
class ScanRequest:
    """
    Normalized reader payload.

    value identifies the acting user (numeric id or username); the reader
    metadata (rssi, count, device_id) is informational only.
    """
    epc: str
    value: str
    rssi: str | None = None
    count: int | None = None
    timestamp: datetime | None = None
    device_id: str | None = None


def normalize_code(value: str) -> str:
    """Normalize to uppercase, no spaces."""
    return value.upper().strip().replace(" ", "")


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    raise ValidationError(f"{key} must be an integer")


def _coerce_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("timestamp must be epoch milliseconds or ISO-8601")
    if isinstance(value, (int, float)):
        try:
            return from_epoch_millis(value)
        except (OverflowError, OSError, ValueError):
            raise ValidationError("timestamp is out of range")
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError("timestamp must be epoch milliseconds or ISO-8601")
        return dt
    raise ValidationError("timestamp must be epoch milliseconds or ISO-8601")


def parse_scan_payload(payload: Any) -> ScanRequest:
    """
    Validate a raw scan body: {epc, rssi?, count?, timestamp?, deviceId?, value}.

    Raises ValidationError for a missing epc or value; those are client
    errors and are never retried.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    raw_epc = payload.get("epc")
    if raw_epc is None or not isinstance(raw_epc, (str, int)) or str(raw_epc).strip() == "":
        raise ValidationError("epc is required")
    epc = normalize_code(str(raw_epc))
    if len(epc) > MAX_EPC_LENGTH:
        raise ValidationError(f"epc exceeds max length {MAX_EPC_LENGTH}")

    raw_value = payload.get("value")
    if raw_value is None or isinstance(raw_value, bool) or str(raw_value).strip() == "":
        raise ValidationError("value is required")

    count = payload.get("count")
    if count is not None:
        count = _coerce_int("count", count)

    rssi = payload.get("rssi")
    device_id = payload.get("deviceId")

    return ScanRequest(
        epc=epc,
        value=str(raw_value).strip(),
        rssi=str(rssi) if rssi is not None else None,
        count=count,
        timestamp=_coerce_timestamp(payload.get("timestamp")),
        device_id=str(device_id).strip() if device_id not in (None, "") else None,
    )
