import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

import config
from database.models import DeliveryRecord
from utils.errors import NotConfigured, ReauthRequired, TransientError, TransportError
from utils.events import as_utc, to_naive_utc
from .gate import local_date

logger = logging.getLogger(__name__)


class DispatchStatus(str, enum.Enum):
    DELIVERED = "delivered"
    PARTIAL = "partial"
    FAILED = "failed"
    FETCH_FAILED = "fetch_failed"
    REAUTH_REQUIRED = "reauth_required"
    NOT_CONFIGURED = "not_configured"


@dataclass
class RecipientResult:
    phone: str
    name: Optional[str] = None  # None for the account owner
    message_sid: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DispatchOutcome:
    account_id: str
    status: DispatchStatus
    primary: Optional[RecipientResult] = None
    delegates: List[RecipientResult] = field(default_factory=list)
    event_count: int = 0
    stamped_date: Optional[date] = None
    error: Optional[str] = None

    @property
    def stamped(self) -> bool:
        return self.stamped_date is not None

    @property
    def results(self) -> List[RecipientResult]:
        return ([self.primary] if self.primary else []) + self.delegates

    def raise_for_status(self):
        """Turn a failed outcome back into an error, for callers that answer synchronously"""
        if self.status == DispatchStatus.NOT_CONFIGURED:
            raise NotConfigured(self.error)
        if self.status == DispatchStatus.REAUTH_REQUIRED:
            raise ReauthRequired(self.error)
        if self.status == DispatchStatus.FETCH_FAILED:
            raise TransientError(self.error)
        if self.status == DispatchStatus.FAILED:
            first = self.results[0]
            raise TransportError(first.phone, first.error)


class DispatchOrchestrator:
    """Runs one account's daily summary: fetch, compose, send to everyone, record.

    Recipients are isolated from each other: a failed send is recorded against
    that recipient and the others still go out. The account is stamped as served
    for the local date once the primary send has been attempted, successful or
    not, so a failing account is retried the next day rather than every tick.
    """

    def __init__(
        self,
        store,
        fetcher,
        composer,
        transport,
        window: timedelta = timedelta(hours=config.DELIVERY_WINDOW_HOURS),
        send_timeout: float = config.SMS_TIMEOUT,
    ):
        self.store = store
        self.fetcher = fetcher
        self.composer = composer
        self.transport = transport
        self.window = window
        self.send_timeout = send_timeout

    async def dispatch_one(self, account, now: Optional[datetime] = None) -> DispatchOutcome:
        now = as_utc(now or datetime.now(timezone.utc))
        today = local_date(account, now)
        delegates = account.active_delegates

        if not account.phone and not delegates:
            logger.warning(f"Account {account.email} has no phone number or active delegates, skipping")
            return DispatchOutcome(
                account_id=account.id,
                status=DispatchStatus.NOT_CONFIGURED,
                error="No phone number or active delegate registered",
            )

        try:
            events = await self.fetcher.get_window(account, self.window, now)
        except ReauthRequired as e:
            logger.warning(f"Account {account.email} needs to re-authenticate: {e}")
            return DispatchOutcome(
                account_id=account.id,
                status=DispatchStatus.REAUTH_REQUIRED,
                error=str(e),
            )
        except TransientError as e:
            logger.error(f"Could not fetch events for {account.email}: {e}")
            failed = RecipientResult(phone=account.phone or delegates[0].phone, error=str(e))
            if not account.phone:
                failed.name = delegates[0].name
            await self._record(account, failed, body="", event_count=0)
            await self.store.update(account.id, last_delivery_date=today)
            return DispatchOutcome(
                account_id=account.id,
                status=DispatchStatus.FETCH_FAILED,
                primary=failed if account.phone else None,
                stamped_date=today,
                error=str(e),
            )

        body = await self.composer.compose(
            events, account.name, account.message_style, tz_name=account.timezone, now=now
        )

        primary = None
        if account.phone:
            primary = await self._send(account.phone, body)
            await self._record(account, primary, body, len(events))

        # the primary attempt has been made; the account is served for today
        await self.store.update(account.id, last_delivery_date=today)

        delegate_bodies = [
            self.composer.personalize(
                body, events, account.name, d.name, tz_name=account.timezone, now=now
            )
            for d in delegates
        ]
        delegate_results = await asyncio.gather(*(
            self._send(d.phone, text, name=d.name)
            for d, text in zip(delegates, delegate_bodies)
        ))
        for result, text in zip(delegate_results, delegate_bodies):
            await self._record(account, result, text, len(events))

        outcome = DispatchOutcome(
            account_id=account.id,
            status=self._status(([primary] if primary else []) + list(delegate_results)),
            primary=primary,
            delegates=list(delegate_results),
            event_count=len(events),
            stamped_date=today,
        )
        logger.info(
            f"Dispatch for {account.email}: {outcome.status.value}, "
            f"{len(events)} event(s), {sum(r.ok for r in outcome.results)}/{len(outcome.results)} sent"
        )
        return outcome

    @staticmethod
    def _status(results: List[RecipientResult]) -> DispatchStatus:
        sent = sum(1 for r in results if r.ok)
        if sent == len(results):
            return DispatchStatus.DELIVERED
        if sent == 0:
            return DispatchStatus.FAILED
        return DispatchStatus.PARTIAL

    async def _send(self, phone: str, body: str, name: Optional[str] = None) -> RecipientResult:
        result = RecipientResult(phone=phone, name=name)
        try:
            result.message_sid = await asyncio.wait_for(
                self.transport.send(phone, body), timeout=self.send_timeout
            )
        except TransportError as e:
            logger.error(f"SMS to {name or 'owner'} ({phone}) failed: {e}")
            result.error = str(e)
        except asyncio.TimeoutError:
            logger.error(f"SMS to {name or 'owner'} ({phone}) timed out")
            result.error = f"Timed out after {self.send_timeout}s"
        except Exception as e:
            logger.exception(f"Unexpected error sending SMS to {name or 'owner'} ({phone})")
            result.error = f"{type(e).__name__}: {e}"
        return result

    async def _record(self, account, result: RecipientResult, body: str, event_count: int):
        record = DeliveryRecord(
            recipient_phone=result.phone,
            recipient_name=result.name,
            message=body,
            event_count=event_count,
            message_style=account.message_style,
            status="sent" if result.ok else "failed",
            message_sid=result.message_sid,
            error=result.error,
            sent_at=to_naive_utc(datetime.now(timezone.utc)),
        )
        await self.store.append_history(account.id, record)
