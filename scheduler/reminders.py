import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

import config
from utils.errors import ConfigurationError
from utils.events import as_utc
from .dispatch import DispatchOutcome, DispatchStatus
from .gate import check_due, local_date

logger = logging.getLogger(__name__)

FAILED_STATUSES = {
    DispatchStatus.FAILED,
    DispatchStatus.FETCH_FAILED,
    DispatchStatus.REAUTH_REQUIRED,
    DispatchStatus.NOT_CONFIGURED,
}


@dataclass
class TickSummary:
    started_at: datetime
    checked: int = 0
    dispatched: int = 0
    failures: int = 0
    outcomes: Dict[str, DispatchOutcome] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)


class ReminderScheduler:
    """Drives the daily summaries: every tick, dispatch each active account that is due.

    One account failing never stops the others; the failure is logged with the
    account's identity and counted in the tick summary.
    """

    def __init__(
        self,
        store,
        orchestrator,
        join_codes=None,
        interval_minutes: int = config.TICK_INTERVAL_MINUTES,
        max_concurrency: int = config.MAX_CONCURRENT_DISPATCHES,
        clock=None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.join_codes = join_codes
        self.interval_minutes = interval_minutes
        self.max_concurrency = max_concurrency
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def minute_precision(self) -> bool:
        return self.interval_minutes < 60

    def start(self):
        """Start the scheduler with all jobs"""
        # hourly ticks fire at the top of the hour
        if self.interval_minutes == 60:
            trigger = CronTrigger(minute=0)
        else:
            trigger = IntervalTrigger(minutes=self.interval_minutes)

        self.scheduler.add_job(
            self.run_tick,
            trigger,
            id="delivery_tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        if self.join_codes is not None:
            self.scheduler.add_job(
                self.join_codes.sweep_expired,
                IntervalTrigger(minutes=config.JOIN_CODE_SWEEP_MINUTES),
                id="join_code_sweep",
                replace_existing=True,
            )

        self.scheduler.start()
        logger.info(f"Scheduler started, ticking every {self.interval_minutes} minute(s)")

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()

    def next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job("delivery_tick")
        return job.next_run_time if job else None

    async def run_tick(self, now: Optional[datetime] = None) -> TickSummary:
        """Check every active account and dispatch the ones that are due"""
        now = as_utc(now or self.clock())
        summary = TickSummary(started_at=now)

        accounts = await self.store.list_active()
        summary.checked = len(accounts)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def process(account):
            async with semaphore:
                try:
                    outcome = await self._process_account(account, now)
                except Exception as e:
                    logger.exception(f"Error processing account {account.email} ({account.id})")
                    summary.failures += 1
                    summary.errors[account.id] = f"{type(e).__name__}: {e}"
                    return

                if outcome is None:
                    return
                summary.dispatched += 1
                summary.outcomes[account.id] = outcome
                if outcome.status in FAILED_STATUSES:
                    summary.failures += 1

        await asyncio.gather(*(process(account) for account in accounts))

        logger.info(
            f"Tick complete: {summary.checked} checked, "
            f"{summary.dispatched} dispatched, {summary.failures} failed"
        )
        return summary

    async def run_tick_manually(self) -> TickSummary:
        """Run one tick now; the due check and the daily stamp still apply"""
        logger.info("Manual tick triggered")
        return await self.run_tick()

    async def _process_account(self, account, now: datetime) -> Optional[DispatchOutcome]:
        if not check_due(account, now, self.minute_precision):
            return None

        # a single dispatch per account at a time; re-read under the lock so a
        # dispatch that finished meanwhile is seen
        async with self._locks[account.id]:
            fresh = await self.store.get(account.id)
            if fresh is None or not fresh.is_active or not check_due(fresh, now, self.minute_precision):
                logger.info(f"Skipping {account.email} - already sent today")
                return None

            logger.info(f"Sending daily summary to {fresh.email}")
            return await self.orchestrator.dispatch_one(fresh, now)

    async def trigger_manual_dispatch(self, account_id: str) -> DispatchOutcome:
        """Send the summary now regardless of the send time; failures raise"""
        async with self._locks[account_id]:
            account = await self.store.require(account_id)
            outcome = await self.orchestrator.dispatch_one(account, self.clock())
        outcome.raise_for_status()
        return outcome

    async def evaluate_due_now(self, account_id: str) -> bool:
        """Diagnostic view of the gate; raises ConfigurationError for bad settings"""
        account = await self.store.require(account_id)
        return check_due(account, self.clock(), self.minute_precision)

    async def delivery_status(self, account_id: str) -> dict:
        account = await self.store.require(account_id)
        sms_configured = config.is_twilio_configured()
        try:
            served_today = account.last_delivery_date == local_date(account, self.clock())
        except ConfigurationError:
            served_today = False

        return {
            "configured": sms_configured,
            "phone_number_set": bool(account.phone),
            "phone_number": account.phone or None,
            "active_delegates": len(account.active_delegates),
            "last_delivery_date": account.last_delivery_date.isoformat() if account.last_delivery_date else None,
            "served_today": served_today,
            "ready": sms_configured and bool(account.phone or account.active_delegates),
        }
