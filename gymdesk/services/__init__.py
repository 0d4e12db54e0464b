"""Services - storage-backed operations behind the API, one concern each."""

from gymdesk.services.accounts import AccountService
from gymdesk.services.activity import ActivityLog
from gymdesk.services.branches import BranchService
from gymdesk.services.records import BranchScopedRecords, BranchSettingsService, analytics_summary
from gymdesk.services.staff import StaffService

__all__ = [
    "AccountService",
    "ActivityLog",
    "BranchService",
    "BranchScopedRecords",
    "BranchSettingsService",
    "StaffService",
    "analytics_summary",
]
