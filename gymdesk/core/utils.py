"""
Shared utility functions for gymdesk.

This module contains common utilities used across the codebase.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with optional prefix.

    Args:
        prefix: Optional prefix (e.g., "stf", "mem", "pay")

    Returns:
        A unique ID like "stf_a1b2c3d4e5f6"
    """
    uid = str(uuid.uuid4())[:12]
    return f"{prefix}_{uid}" if prefix else uid


def generate_uuid() -> str:
    """Generate a full UUID4 string (branch ids are UUID-shaped)."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def normalize_phone(phone: str) -> str:
    """
    Normalize a phone number for lookups.

    Strips everything but digits, then a single leading zero.
    "0 98765-43210" -> "9876543210"
    """
    digits = re.sub(r"\D", "", phone or "")
    return digits[1:] if digits.startswith("0") else digits
