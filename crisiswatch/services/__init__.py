from crisiswatch.services.category_service import (
    CategoryError,
    create_category,
    list_categories,
    get_category_names
)
from crisiswatch.services.keyword_store import (
    KeywordError,
    KeywordValidationError,
    InvalidSeverityError,
    DuplicateKeywordError,
    KeywordNotFoundError,
    list_active,
    get_keyword,
    list_keywords,
    create_keyword,
    update_keyword,
    toggle_keyword,
    delete_keyword,
    bulk_action,
    get_statistics
)
from crisiswatch.services.matcher import (
    RawMatch,
    match,
    match_keywords,
    check_keyword_match
)
from crisiswatch.services.scoring import (
    DetectionResult,
    MatchedKeyword,
    score
)
from crisiswatch.services.trigger_recorder import (
    record,
    reset_trigger_counts
)
from crisiswatch.services.bulk_manager import (
    PREDEFINED_SETS,
    ImportResult,
    ImportItemError,
    import_predefined_set,
    import_csv,
    export_keywords
)
from crisiswatch.services.notification_service import (
    NotificationError,
    NotificationConfigError,
    NotificationSendError,
    CrisisAlert,
    NotificationDispatcher,
    LoggingNotificationDispatcher,
    WebhookNotificationDispatcher,
    get_notification_dispatcher
)
from crisiswatch.services.detection_service import detect
from crisiswatch.services.seed_service import DEFAULT_KEYWORDS, seed_default_keywords

__all__ = [
    # Category Services
    "CategoryError",
    "create_category",
    "list_categories",
    "get_category_names",

    # Keyword Store
    "KeywordError",
    "KeywordValidationError",
    "InvalidSeverityError",
    "DuplicateKeywordError",
    "KeywordNotFoundError",
    "list_active",
    "get_keyword",
    "list_keywords",
    "create_keyword",
    "update_keyword",
    "toggle_keyword",
    "delete_keyword",
    "bulk_action",
    "get_statistics",

    # Matching & Scoring
    "RawMatch",
    "match",
    "match_keywords",
    "check_keyword_match",
    "DetectionResult",
    "MatchedKeyword",
    "score",

    # Trigger Statistics
    "record",
    "reset_trigger_counts",

    # Bulk Import/Export
    "PREDEFINED_SETS",
    "ImportResult",
    "ImportItemError",
    "import_predefined_set",
    "import_csv",
    "export_keywords",

    # Notification
    "NotificationError",
    "NotificationConfigError",
    "NotificationSendError",
    "CrisisAlert",
    "NotificationDispatcher",
    "LoggingNotificationDispatcher",
    "WebhookNotificationDispatcher",
    "get_notification_dispatcher",

    # Detection
    "detect",
    "DEFAULT_KEYWORDS",
    "seed_default_keywords"
]
