"""
FastAPI application for gymdesk.

Every data endpoint is admitted by the authorization gateway through a
`require(...)` dependency and reads or writes only inside the scope the
resulting decision carries.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from gymdesk.auth import (
    Actor,
    AuthorizationDecision,
    AuthorizationError,
    AuthorizationGateway,
    Capability,
    require,
    require_auth,
    require_owner,
    require_scope,
    visible_sections,
)
from gymdesk.auth.routes import router as auth_router
from gymdesk.config import get_settings
from gymdesk.core.models import (
    LedgerEntry,
    LedgerEntryType,
    Member,
    Payment,
    PaymentMethod,
    StaffRole,
)
from gymdesk.services import (
    ActivityLog,
    BranchScopedRecords,
    BranchService,
    BranchSettingsService,
    StaffService,
    analytics_summary,
)
from gymdesk.storage import Collections, RecordNotFound, StorageProvider, create_local_storage

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup app resources."""
    settings = get_settings()
    configure_logging(settings.log_level)

    from gymdesk.integrations.sentry import init_sentry
    if init_sentry():
        logger.info("Sentry error tracking enabled")

    if getattr(app.state, "storage", None) is None:
        attach_storage(app, create_local_storage())

    logger.info("gymdesk API starting in %s mode", settings.environment)

    yield

    logger.info("gymdesk API shutting down")


def attach_storage(app: FastAPI, storage: StorageProvider) -> None:
    """Bind storage and the gateway built on it to the app."""
    app.state.storage = storage
    app.state.gateway = AuthorizationGateway(storage)


# =============================================================================
# Error Handlers
# =============================================================================


async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def not_found_handler(request: Request, exc: RecordNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Not found", "kind": "not_found"})


# =============================================================================
# App Setup
# =============================================================================


def create_app(storage: StorageProvider | None = None) -> FastAPI:
    """
    Build the application.

    Pass a storage provider to run against existing data (tests, demo);
    otherwise in-memory storage is created at startup.
    """
    settings = get_settings()

    app = FastAPI(
        title="gymdesk API",
        description="Multi-branch gym management with branch-isolated staff access",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthorizationError, authorization_error_handler)
    app.add_exception_handler(RecordNotFound, not_found_handler)

    app.include_router(auth_router)
    app.include_router(api_router)

    if storage is not None:
        attach_storage(app, storage)

    return app


# =============================================================================
# Dependencies
# =============================================================================


def get_storage(request: Request) -> StorageProvider:
    return request.app.state.storage


def members_of(storage: StorageProvider) -> BranchScopedRecords:
    return BranchScopedRecords(storage, Collections.MEMBERS, "members", "member")


def payments_of(storage: StorageProvider) -> BranchScopedRecords:
    return BranchScopedRecords(storage, Collections.PAYMENTS, "payments", "payment")


def ledger_of(storage: StorageProvider) -> BranchScopedRecords:
    return BranchScopedRecords(storage, Collections.LEDGER_ENTRIES, "ledger", "ledger_entry")


def target_branch(decision: AuthorizationDecision, branch_id: str | None) -> str:
    """
    Branch a new row is written to.

    Explicit branch_id first, then the single branch the request is scoped
    to, then the staff member's primary branch.
    """
    if branch_id:
        return branch_id
    scope = decision.effective_branch_ids
    if scope != "all" and len(scope) == 1:
        return next(iter(scope))
    if decision.actor and decision.actor.primary_branch_id:
        return decision.actor.primary_branch_id
    raise HTTPException(status_code=400, detail="branch_id is required")


# =============================================================================
# Request Models
# =============================================================================


class CreateBranchRequest(BaseModel):
    name: str = Field(min_length=1)
    address: str | None = None
    phone: str | None = None


class CreateStaffRequest(BaseModel):
    full_name: str = Field(min_length=1)
    phone: str
    role: StaffRole = StaffRole.RECEPTION
    password: str | None = None
    branch_ids: list[str] = []


class UpdateStaffRequest(BaseModel):
    full_name: str | None = Field(default=None, min_length=1)
    phone: str | None = None
    role: StaffRole | None = None


class UpdatePermissionsRequest(BaseModel):
    can_view_members: bool | None = None
    can_manage_members: bool | None = None
    can_access_ledger: bool | None = None
    can_access_payments: bool | None = None
    can_access_analytics: bool | None = None
    can_change_settings: bool | None = None


class AssignBranchesRequest(BaseModel):
    branch_ids: list[str] = Field(min_length=1)


class SetActiveRequest(BaseModel):
    is_active: bool


class SetPasswordRequest(BaseModel):
    password: str = Field(min_length=6)


class CreateMemberRequest(BaseModel):
    name: str = Field(min_length=1)
    phone: str
    email: str | None = None
    branch_id: str | None = None
    subscription_start: date | None = None
    subscription_end: date | None = None


class UpdateMemberRequest(BaseModel):
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    is_active: bool | None = None
    subscription_start: date | None = None
    subscription_end: date | None = None


class CreatePaymentRequest(BaseModel):
    member_id: str
    amount: float = Field(gt=0)
    method: PaymentMethod = PaymentMethod.CASH
    notes: str | None = None


class CreateLedgerEntryRequest(BaseModel):
    entry_type: LedgerEntryType
    amount: float = Field(gt=0)
    category: str = Field(min_length=1)
    description: str | None = None
    entry_date: date | None = None
    branch_id: str | None = None


class UpdateSettingsRequest(BaseModel):
    gym_name: str | None = None
    gym_phone: str | None = None
    gym_address: str | None = None
    whatsapp_enabled: bool | None = None
    extra: dict[str, Any] | None = None


# =============================================================================
# Routes
# =============================================================================

api_router = APIRouter()


@api_router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "gymdesk-api"}


# =============================================================================
# Branches
# =============================================================================


@api_router.get("/branches")
async def list_branches(
    decision: AuthorizationDecision = Depends(require_scope()),
    storage: StorageProvider = Depends(get_storage),
):
    """Branches the caller can work in."""
    branches = await BranchService(storage).list(decision)
    return {"branches": branches, "count": len(branches)}


@api_router.post("/branches")
async def create_branch(
    request: CreateBranchRequest,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    branch = await BranchService(storage).create(
        decision, request.name, address=request.address, phone=request.phone
    )
    return branch.model_dump()


# =============================================================================
# Staff (owner only)
# =============================================================================


@api_router.get("/staff")
async def list_staff(
    branch_id: str | None = None,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    staff = await StaffService(storage).list(branch_id=branch_id)
    return {"staff": staff, "count": len(staff)}


@api_router.post("/staff")
async def create_staff(
    request: CreateStaffRequest,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    try:
        return await StaffService(storage).create(
            decision,
            full_name=request.full_name,
            phone=request.phone,
            role=request.role,
            password=request.password,
            branch_ids=request.branch_ids,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@api_router.get("/staff/{staff_id}")
async def get_staff(
    staff_id: str,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    return await StaffService(storage).describe(staff_id)


@api_router.patch("/staff/{staff_id}")
async def update_staff(
    staff_id: str,
    request: UpdateStaffRequest,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    try:
        return await StaffService(storage).update_profile(
            decision,
            staff_id,
            full_name=request.full_name,
            phone=request.phone,
            role=request.role,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@api_router.delete("/staff/{staff_id}")
async def delete_staff(
    staff_id: str,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    await StaffService(storage).delete(decision, staff_id)
    return {"deleted": staff_id}


@api_router.patch("/staff/{staff_id}/permissions")
async def update_staff_permissions(
    staff_id: str,
    request: UpdatePermissionsRequest,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    """Partial update - omitted flags keep their value."""
    updates = request.model_dump(exclude_none=True)
    permissions = await StaffService(storage).update_permissions(decision, staff_id, updates)
    return {"staff_id": staff_id, "permissions": permissions.model_dump()}


@api_router.post("/staff/{staff_id}/branches")
async def assign_staff_branches(
    staff_id: str,
    request: AssignBranchesRequest,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    assignments = await StaffService(storage).assign_branches(decision, staff_id, request.branch_ids)
    return {"staff_id": staff_id, "assignments": assignments}


@api_router.put("/staff/{staff_id}/branches/{branch_id}/primary")
async def set_staff_primary_branch(
    staff_id: str,
    branch_id: str,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    await StaffService(storage).set_primary_branch(decision, staff_id, branch_id)
    return {"staff_id": staff_id, "primary_branch_id": branch_id}


@api_router.delete("/staff/{staff_id}/branches/{branch_id}")
async def unassign_staff_branch(
    staff_id: str,
    branch_id: str,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    await StaffService(storage).unassign_branch(decision, staff_id, branch_id)
    return {"staff_id": staff_id, "unassigned": branch_id}


@api_router.put("/staff/{staff_id}/active")
async def set_staff_active(
    staff_id: str,
    request: SetActiveRequest,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    await StaffService(storage).set_active(decision, staff_id, request.is_active)
    return {"staff_id": staff_id, "is_active": request.is_active}


@api_router.put("/staff/{staff_id}/password")
async def set_staff_password(
    staff_id: str,
    request: SetPasswordRequest,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    await StaffService(storage).set_password(decision, staff_id, request.password)
    return {"staff_id": staff_id, "password_set": True}


# =============================================================================
# Members
# =============================================================================


@api_router.get("/members")
async def list_members(
    active: bool | None = None,
    decision: AuthorizationDecision = Depends(require(Capability.VIEW_MEMBERS)),
    storage: StorageProvider = Depends(get_storage),
):
    filters = {"is_active": active} if active is not None else None
    members = await members_of(storage).list(decision, filters, limit=1000)
    return {
        "members": members,
        "count": len(members),
        "_permissions": {
            "can_manage": decision.actor.can(Capability.MANAGE_MEMBERS),
        },
    }


@api_router.get("/members/{member_id}")
async def get_member(
    member_id: str,
    decision: AuthorizationDecision = Depends(require(Capability.VIEW_MEMBERS)),
    storage: StorageProvider = Depends(get_storage),
):
    return await members_of(storage).get(decision, member_id)


@api_router.post("/members")
async def create_member(
    request: CreateMemberRequest,
    decision: AuthorizationDecision = Depends(require(Capability.MANAGE_MEMBERS)),
    storage: StorageProvider = Depends(get_storage),
):
    member = Member(
        branch_id=target_branch(decision, request.branch_id),
        **request.model_dump(exclude={"branch_id"}),
    )
    return await members_of(storage).create(decision, member)


@api_router.patch("/members/{member_id}")
async def update_member(
    member_id: str,
    request: UpdateMemberRequest,
    decision: AuthorizationDecision = Depends(require(Capability.MANAGE_MEMBERS)),
    storage: StorageProvider = Depends(get_storage),
):
    return await members_of(storage).update(decision, member_id, request.model_dump(exclude_none=True))


# =============================================================================
# Payments
# =============================================================================


@api_router.get("/payments")
async def list_payments(
    member_id: str | None = None,
    decision: AuthorizationDecision = Depends(require(Capability.ACCESS_PAYMENTS)),
    storage: StorageProvider = Depends(get_storage),
):
    filters = {"member_id": member_id} if member_id else None
    payments = await payments_of(storage).list(decision, filters, limit=1000)
    return {"payments": payments, "count": len(payments)}


@api_router.post("/payments")
async def create_payment(
    request: CreatePaymentRequest,
    decision: AuthorizationDecision = Depends(require(Capability.ACCESS_PAYMENTS)),
    storage: StorageProvider = Depends(get_storage),
):
    """Record a payment. It lands in the member's branch."""
    member = await members_of(storage).get(decision, request.member_id)
    payment = Payment(branch_id=member["branch_id"], **request.model_dump())
    return await payments_of(storage).create(decision, payment)


# =============================================================================
# Ledger
# =============================================================================


@api_router.get("/ledger")
async def list_ledger(
    entry_type: LedgerEntryType | None = None,
    decision: AuthorizationDecision = Depends(require(Capability.ACCESS_LEDGER)),
    storage: StorageProvider = Depends(get_storage),
):
    filters = {"entry_type": entry_type} if entry_type else None
    entries = await ledger_of(storage).list(decision, filters, limit=1000)
    return {"entries": entries, "count": len(entries)}


@api_router.post("/ledger")
async def create_ledger_entry(
    request: CreateLedgerEntryRequest,
    decision: AuthorizationDecision = Depends(require(Capability.ACCESS_LEDGER)),
    storage: StorageProvider = Depends(get_storage),
):
    data = request.model_dump(exclude={"branch_id"}, exclude_none=True)
    entry = LedgerEntry(branch_id=target_branch(decision, request.branch_id), **data)
    return await ledger_of(storage).create(decision, entry)


@api_router.delete("/ledger/{entry_id}")
async def delete_ledger_entry(
    entry_id: str,
    decision: AuthorizationDecision = Depends(require(Capability.ACCESS_LEDGER)),
    storage: StorageProvider = Depends(get_storage),
):
    await ledger_of(storage).delete(decision, entry_id)
    return {"deleted": entry_id}


# =============================================================================
# Branch Settings
# =============================================================================


@api_router.get("/branches/{branch_id}/settings")
async def get_branch_settings(
    branch_id: str,
    decision: AuthorizationDecision = Depends(require(Capability.CHANGE_SETTINGS)),
    storage: StorageProvider = Depends(get_storage),
):
    return await BranchSettingsService(storage).get(decision, branch_id)


@api_router.put("/branches/{branch_id}/settings")
async def update_branch_settings(
    branch_id: str,
    request: UpdateSettingsRequest,
    decision: AuthorizationDecision = Depends(require(Capability.CHANGE_SETTINGS)),
    storage: StorageProvider = Depends(get_storage),
):
    return await BranchSettingsService(storage).update(
        decision, branch_id, request.model_dump(exclude_none=True)
    )


# =============================================================================
# Analytics
# =============================================================================


@api_router.get("/analytics/summary")
async def get_analytics_summary(
    decision: AuthorizationDecision = Depends(require(Capability.ACCESS_ANALYTICS)),
    storage: StorageProvider = Depends(get_storage),
):
    return await analytics_summary(storage, decision)


# =============================================================================
# Activity Logs (owner only)
# =============================================================================


@api_router.get("/logs")
async def list_activity_logs(
    branch_id: str | None = None,
    category: str | None = None,
    limit: int = 100,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    logs = await ActivityLog(storage).list(branch_id=branch_id, category=category, limit=limit)
    return {"logs": logs, "count": len(logs)}


# =============================================================================
# Navigation
# =============================================================================


@api_router.get("/me/navigation")
async def get_navigation(actor: Actor = Depends(require_auth())):
    """Sections to show in the menu. Advisory: every endpoint still checks."""
    return {
        "sections": [
            {"key": s.key, "label": s.label, "path": s.path}
            for s in visible_sections(actor)
        ]
    }


app = create_app()
