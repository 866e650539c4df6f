"""
Maintenance lifecycle engine.

- cadence: pure evaluators, one per cadence variant
- triggers: turns active vehicle plans into tasks and advances due tasks
- lifecycle: task status transitions and email action handling
- autocomplete / service_log: matching maintenance logs to open tasks
- tokens / email / notifications: batched emails with signed action links
- analytics: enriched task views, the analytics summary, and its cache
- storage: the storage contract and an in-memory implementation
- job: the periodic runner
"""

from .errors import (
    CadenceConfigError,
    MaintenanceError,
    StorageError,
    LookupFailed,
    TaskNotFoundError,
    InvalidTransitionError,
    EmailDeliveryError,
    TaskAccessDenied,
    InvalidActionTokenError,
)
from .storage import Storage, MemoryStore, new_id, resolve_vehicle
from .cadence import TriggerCandidate, VehicleHistory, evaluate
from .triggers import TriggerProcessor, ProcessingSummary
from .lifecycle import TaskLifecycle, ActionOutcome, can_transition
from .autocomplete import (
    AUTO_COMPLETE_THRESHOLD,
    TaskMatch,
    MatchSuggestion,
    match_maintenance_log_to_tasks,
    suggest_best_match,
)
from .service_log import LogRecordResult, record_maintenance_log
from .tokens import ActionClaims, ActionTokenSigner
from .email import EmailMessage, EmailTransport, LoggingEmailTransport, SmtpEmailTransport
from .notifications import NotificationCoordinator, NotificationSummary
from .analytics import (
    AnalyticsCache,
    AnalyticsService,
    MaintenanceAnalytics,
    build_enriched_tasks,
    compute_maintenance_analytics,
    enrich_tasks,
)
from .job import MaintenanceJob, JobResult

__all__ = [
    "CadenceConfigError",
    "MaintenanceError",
    "StorageError",
    "LookupFailed",
    "TaskNotFoundError",
    "InvalidTransitionError",
    "EmailDeliveryError",
    "TaskAccessDenied",
    "InvalidActionTokenError",
    "Storage",
    "MemoryStore",
    "new_id",
    "resolve_vehicle",
    "TriggerCandidate",
    "VehicleHistory",
    "evaluate",
    "TriggerProcessor",
    "ProcessingSummary",
    "TaskLifecycle",
    "ActionOutcome",
    "can_transition",
    "AUTO_COMPLETE_THRESHOLD",
    "TaskMatch",
    "MatchSuggestion",
    "match_maintenance_log_to_tasks",
    "suggest_best_match",
    "LogRecordResult",
    "record_maintenance_log",
    "ActionClaims",
    "ActionTokenSigner",
    "EmailMessage",
    "EmailTransport",
    "LoggingEmailTransport",
    "SmtpEmailTransport",
    "NotificationCoordinator",
    "NotificationSummary",
    "AnalyticsCache",
    "AnalyticsService",
    "MaintenanceAnalytics",
    "build_enriched_tasks",
    "compute_maintenance_analytics",
    "enrich_tasks",
    "MaintenanceJob",
    "JobResult",
]
