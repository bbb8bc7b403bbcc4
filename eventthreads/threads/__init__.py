"""Thread lifecycle, membership state machine and admin projection."""

from .admin import AdminDashboard, AdminProjection, MemberDetail, ThreadDetail
from .context import UserContext, utc_now
from .engine import CallerRole, MembershipEngine, MembershipStatus
from .locks import ThreadLocks
from .registry import ThreadRegistry

__all__ = [
    "AdminDashboard",
    "AdminProjection",
    "CallerRole",
    "MemberDetail",
    "MembershipEngine",
    "MembershipStatus",
    "ThreadDetail",
    "ThreadLocks",
    "ThreadRegistry",
    "UserContext",
    "utc_now",
]
