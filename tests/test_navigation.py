"""
Tests for the navigation mirror.
"""

from gymdesk.auth.context import Actor, ActorKind
from gymdesk.auth.navigation import NAV_SECTIONS, visible_sections
from gymdesk.core.models import PermissionSet, StaffRole


def keys(actor):
    return [s.key for s in visible_sections(actor)]


def staff(role=StaffRole.RECEPTION, **flags):
    return Actor(identity_id="usr_1", kind=ActorKind.STAFF, staff_id="stf_1", role=role,
                 permissions=PermissionSet(**flags))


# =============================================================================
# Navigation
# =============================================================================


class TestVisibleSections:
    def test_owner_sees_everything_but_staff_dashboard(self):
        assert keys(Actor.owner("own_1")) == [s.key for s in NAV_SECTIONS if s.key != "staff-dashboard"]

    def test_staff_without_permissions(self):
        assert keys(staff()) == ["staff-dashboard"]

    def test_manage_alone_shows_members(self):
        assert "members" in keys(staff(can_manage_members=True))

    def test_settings_flag_shows_qr_and_settings(self):
        assert keys(staff(can_change_settings=True)) == ["qr-code", "settings", "staff-dashboard"]

    def test_staff_admin_never_sees_owner_sections(self):
        visible = keys(staff(StaffRole.ADMIN))
        for owner_only in ("dashboard", "staff", "trainers", "logs"):
            assert owner_only not in visible
        assert {"members", "payments", "ledger", "analytics", "settings"} <= set(visible)

