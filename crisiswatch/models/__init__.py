from crisiswatch.models.database import Base, async_engine, get_db, init_db, AsyncSessionLocal
from crisiswatch.models.ticket_category import TicketCategory
from crisiswatch.models.crisis_keyword import (
    CrisisKeyword,
    NotificationRules,
    SEVERITY_LEVELS,
    SEVERITY_WEIGHTS
)

__all__ = [
    "Base",
    "async_engine",
    "get_db",
    "init_db",
    "AsyncSessionLocal",
    "TicketCategory",
    "CrisisKeyword",
    "NotificationRules",
    "SEVERITY_LEVELS",
    "SEVERITY_WEIGHTS"
]
