"""
Account service - credential issuance.

Owners log in with email and password, staff with phone and password.
Staff logins are rate limited per account: after max_login_attempts
consecutive failures the account is locked for lockout_minutes. Every
staff attempt is recorded.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from gymdesk.auth.errors import Unauthenticated
from gymdesk.auth.jwt import (
    TokenResponse,
    hash_password,
    issue_owner_token,
    issue_staff_token,
    verify_password,
)
from gymdesk.config import get_settings
from gymdesk.core.models import LoginAttempt, OwnerAccount
from gymdesk.core.utils import normalize_phone, utc_now
from gymdesk.storage.base import Collections, StorageProvider

logger = logging.getLogger(__name__)

INVALID_STAFF_CREDENTIALS = "Invalid phone or password"
INVALID_OWNER_CREDENTIALS = "Invalid email or password"


class AccountService:
    def __init__(self, storage: StorageProvider):
        self.storage = storage

    # =========================================================================
    # Owner
    # =========================================================================

    async def create_owner(self, email: str, name: str, password: str) -> OwnerAccount:
        email = email.strip().lower()
        existing = await self.storage.metadata.query(Collections.OWNERS, {"email": email}, limit=1)
        if existing:
            raise ValueError("An owner with this email already exists")

        owner = OwnerAccount(email=email, name=name, password_hash=hash_password(password))
        await self.storage.metadata.save(Collections.OWNERS, owner.id, owner.model_dump())
        logger.info("Owner account %s created", owner.id)
        return owner

    async def owner_login(self, email: str, password: str) -> TokenResponse:
        rows = await self.storage.metadata.query(
            Collections.OWNERS, {"email": email.strip().lower()}, limit=1
        )
        if not rows or not verify_password(password, rows[0].get("password_hash")):
            raise Unauthenticated(INVALID_OWNER_CREDENTIALS)

        owner = rows[0]
        await self.storage.metadata.update(Collections.OWNERS, owner["id"], {"last_login_at": utc_now()})
        return issue_owner_token(owner["id"])

    # =========================================================================
    # Staff
    # =========================================================================

    async def staff_login(
        self,
        phone: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenResponse:
        """
        Phone + password login with lockout.

        Raises Unauthenticated for unknown phones, wrong passwords,
        locked accounts and deactivated accounts.
        """
        settings = get_settings()
        normalized = normalize_phone(phone)

        async def attempt(success: bool, reason: str | None = None) -> None:
            await self._record_attempt(normalized, success, reason, ip_address, user_agent)

        rows = await self.storage.metadata.query(Collections.STAFF, {"phone": normalized}, limit=1)
        if not rows:
            await attempt(False, "unknown_phone")
            raise Unauthenticated(INVALID_STAFF_CREDENTIALS)

        staff = rows[0]
        now = utc_now()

        locked_until = staff.get("locked_until")
        if locked_until and locked_until > now:
            await attempt(False, "locked")
            minutes = max(1, int((locked_until - now).total_seconds() // 60) + 1)
            raise Unauthenticated(f"Account locked. Try again in {minutes} minute(s)")

        if not verify_password(password, staff.get("password_hash")):
            await self._register_failure(staff, settings.max_login_attempts, settings.lockout_minutes)
            await attempt(False, "invalid_password")
            raise Unauthenticated(INVALID_STAFF_CREDENTIALS)

        if staff.get("is_active") is not True:
            await attempt(False, "inactive")
            raise Unauthenticated(INVALID_STAFF_CREDENTIALS)

        await self.storage.metadata.update(Collections.STAFF, staff["id"], {
            "failed_login_attempts": 0,
            "locked_until": None,
            "last_login_at": now,
        })
        await attempt(True)
        logger.info("Staff %s logged in", staff["id"])

        return issue_staff_token(staff["identity_id"], int(staff.get("session_version") or 1))

    async def _register_failure(self, staff: dict[str, Any], max_attempts: int, lockout_minutes: int) -> None:
        failures = int(staff.get("failed_login_attempts") or 0) + 1
        updates: dict[str, Any] = {"failed_login_attempts": failures}
        if failures >= max_attempts:
            updates["failed_login_attempts"] = 0
            updates["locked_until"] = utc_now() + timedelta(minutes=lockout_minutes)
            logger.warning("Staff %s locked out after %d failed logins", staff["id"], failures)
        await self.storage.metadata.update(Collections.STAFF, staff["id"], updates)

    async def _record_attempt(
        self,
        phone: str,
        success: bool,
        reason: str | None,
        ip_address: str | None,
        user_agent: str | None,
    ) -> None:
        entry = LoginAttempt(
            phone=phone,
            success=success,
            failure_reason=reason,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.storage.metadata.save(Collections.STAFF_LOGIN_ATTEMPTS, entry.id, entry.model_dump())
