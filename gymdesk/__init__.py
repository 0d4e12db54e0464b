"""
gymdesk - multi-branch gym management.

The authorization core lives in gymdesk.auth; the HTTP API in
gymdesk.api.app.
"""

__version__ = "0.1.0"
