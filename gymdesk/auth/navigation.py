"""
Navigation mirror.

Which sections of the dashboard an actor should see. Evaluated through
the same permission evaluator as the gateway, so the menu and the
server-side checks cannot drift. Advisory only: hiding a section never
replaces the gateway check on the endpoints behind it.
"""

from __future__ import annotations

from dataclasses import dataclass

from gymdesk.auth.capabilities import Capability, has_capability
from gymdesk.auth.context import Actor


@dataclass(frozen=True)
class NavSection:
    key: str
    label: str
    path: str
    # Visible when the actor holds any of these
    any_of: tuple[Capability, ...] = ()
    staff_only: bool = False


NAV_SECTIONS: tuple[NavSection, ...] = (
    NavSection("dashboard", "Dashboard", "/dashboard", any_of=(Capability.IS_OWNER,)),
    NavSection("members", "Members", "/members",
               any_of=(Capability.VIEW_MEMBERS, Capability.MANAGE_MEMBERS)),
    NavSection("payments", "Payments", "/payments", any_of=(Capability.ACCESS_PAYMENTS,)),
    NavSection("ledger", "Ledger", "/ledger", any_of=(Capability.ACCESS_LEDGER,)),
    NavSection("analytics", "Analytics", "/analytics", any_of=(Capability.ACCESS_ANALYTICS,)),
    NavSection("qr-code", "QR Code", "/qr-code", any_of=(Capability.CHANGE_SETTINGS,)),
    NavSection("settings", "Settings", "/settings", any_of=(Capability.CHANGE_SETTINGS,)),
    NavSection("staff", "Staff", "/staff", any_of=(Capability.IS_OWNER,)),
    NavSection("trainers", "Trainers", "/trainers", any_of=(Capability.IS_OWNER,)),
    NavSection("logs", "Activity Logs", "/logs", any_of=(Capability.IS_OWNER,)),
    NavSection("staff-dashboard", "My Dashboard", "/staff/dashboard", staff_only=True),
)


def is_visible(actor: Actor, section: NavSection) -> bool:
    if section.staff_only:
        return actor.is_staff
    return any(has_capability(actor, cap) for cap in section.any_of)


def visible_sections(actor: Actor) -> list[NavSection]:
    """Sections to show this actor, in menu order."""
    return [section for section in NAV_SECTIONS if is_visible(actor, section)]
