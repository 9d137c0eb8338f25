from .gate import is_due, check_due, local_date
from .fetcher import EventWindowFetcher
from .dispatch import DispatchOrchestrator, DispatchOutcome, DispatchStatus, RecipientResult
from .reminders import ReminderScheduler, TickSummary

__all__ = [
    "is_due",
    "check_due",
    "local_date",
    "EventWindowFetcher",
    "DispatchOrchestrator",
    "DispatchOutcome",
    "DispatchStatus",
    "RecipientResult",
    "ReminderScheduler",
    "TickSummary",
]
