"""EduVerse — realtime backend for the multi-tenant school dashboard.

Live counters, change-feed subscriptions, tenant resolution and
authorization checks on top of the hosted row-level-security backend.
"""

__version__ = "0.1.0"
