"""
Tests for the error-tracking filters.
"""

from gymdesk.auth.errors import BranchAccessDenied
from gymdesk.integrations.sentry import filter_event, filter_transaction
from gymdesk.storage import RecordNotFound


class TestFilterEvent:
    def test_authorization_errors_not_reported(self):
        exc = BranchAccessDenied()
        assert filter_event({}, {"exc_info": (type(exc), exc, None)}) is None

    def test_not_found_not_reported(self):
        exc = RecordNotFound("members", "mem_missing")
        assert filter_event({}, {"exc_info": (type(exc), exc, None)}) is None

    def test_unexpected_errors_reported_with_scrubbed_headers(self):
        exc = RuntimeError("boom")
        event = {"request": {"headers": {"Authorization": "Bearer abc", "Accept": "*/*"}}}
        result = filter_event(event, {"exc_info": (type(exc), exc, None)})
        assert result["request"]["headers"] == {"Authorization": "[Filtered]", "Accept": "*/*"}


class TestFilterTransaction:
    def test_health_transactions_dropped(self):
        assert filter_transaction({"transaction": "/health"}, {}) is None
        assert filter_transaction({"transaction": "/members"}, {}) is not None
