"""Comment moderation module.

Every submission passes through the decision engine (honeypot, sanitizer,
blacklist, rate limit, CAPTCHA, spam classifier) before it is stored.
Public comment data and privileged moderation data live in separate records.

Note: Routers are not exported here to avoid circular imports.
Import directly from commentgate.comments.router when needed.
"""

from .admin import AdminModerationService
from .engine import DecisionEngine
from .models import (
    COMMENTS_TABLES_CQL,
    Comment,
    CommentTarget,
    Decision,
    ModerationRecord,
    TargetType,
)
from .service import CommentService
from .store import ModerationStore


__all__ = [
    "COMMENTS_TABLES_CQL",
    "AdminModerationService",
    "Comment",
    "CommentService",
    "CommentTarget",
    "Decision",
    "DecisionEngine",
    "ModerationRecord",
    "ModerationStore",
    "TargetType",
]
