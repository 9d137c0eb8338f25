import logging
import re
from datetime import datetime
from typing import Optional

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

import config
from utils.errors import AccountNotFound
from utils.events import MessageStyle, load_zone, parse_send_time, to_naive_utc
from .models import Account, Delegate, ManualEvent, DeliveryRecord

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

UPDATABLE_FIELDS = {
    "display_name", "phone", "access_token", "refresh_token", "token_expires_at",
    "timezone", "send_time", "is_active", "message_style", "last_delivery_date",
}
MAX_HISTORY_PAGE = 100


def validate_phone(phone: str) -> str:
    phone = phone.strip()
    if not E164_PATTERN.match(phone):
        raise ValueError(f"Phone number must be in E.164 format, got {phone!r}")
    return phone


class AccountStore:
    """Accounts, their delegates and manual events, and delivery history"""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        history_limit: int = config.DELIVERY_HISTORY_LIMIT,
    ):
        self.sessionmaker = sessionmaker
        self.history_limit = history_limit

    @staticmethod
    def _account_query():
        return select(Account).options(
            selectinload(Account.delegates),
            selectinload(Account.manual_events),
        )

    async def create_account(
        self,
        email: str,
        provider_subject_id: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        token_expires_at: Optional[datetime] = None,
        **preferences,
    ) -> Account:
        """Create an account; tokens are expected to be encrypted already"""
        async with self.sessionmaker() as session:
            account = Account(
                email=email.strip().lower(),
                provider_subject_id=provider_subject_id,
                access_token=access_token,
                refresh_token=refresh_token,
                token_expires_at=to_naive_utc(token_expires_at) if token_expires_at else None,
            )
            for key, value in self._clean_patch(preferences).items():
                setattr(account, key, value)
            session.add(account)
            await session.commit()
            account_id = account.id

        return await self.get(account_id)

    async def list_active(self) -> list[Account]:
        async with self.sessionmaker() as session:
            result = await session.execute(
                self._account_query().where(Account.is_active.is_(True)).order_by(Account.created_at)
            )
            return list(result.scalars().all())

    async def get(self, account_id: str) -> Optional[Account]:
        async with self.sessionmaker() as session:
            result = await session.execute(
                self._account_query().where(Account.id == account_id)
            )
            return result.scalar_one_or_none()

    async def require(self, account_id: str) -> Account:
        account = await self.get(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    async def update(self, account_id: str, **patch) -> Account:
        """Apply a partial update to an account and return the fresh record"""
        values = self._clean_patch(patch)

        async with self.sessionmaker() as session:
            account = await session.get(Account, account_id)
            if account is None:
                raise AccountNotFound(account_id)
            for key, value in values.items():
                setattr(account, key, value)
            await session.commit()

        return await self.require(account_id)

    @staticmethod
    def _clean_patch(patch: dict) -> dict:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {', '.join(sorted(unknown))}")

        values = dict(patch)
        if values.get("phone"):
            values["phone"] = validate_phone(values["phone"])
        if "timezone" in values:
            load_zone(values["timezone"])
        if "send_time" in values:
            parse_send_time(values["send_time"])
        if "message_style" in values:
            values["message_style"] = MessageStyle(values["message_style"])
        if values.get("token_expires_at"):
            values["token_expires_at"] = to_naive_utc(values["token_expires_at"])
        return values

    # delivery history

    async def append_history(self, account_id: str, record: DeliveryRecord) -> DeliveryRecord:
        """Append a delivery record, evicting the oldest beyond the history limit"""
        async with self.sessionmaker() as session:
            record.account_id = account_id
            session.add(record)
            await session.flush()

            count = await session.scalar(
                select(func.count()).select_from(DeliveryRecord).where(DeliveryRecord.account_id == account_id)
            )
            overflow = count - self.history_limit
            if overflow > 0:
                oldest = await session.execute(
                    select(DeliveryRecord.id)
                    .where(DeliveryRecord.account_id == account_id)
                    .order_by(DeliveryRecord.sent_at.asc(), DeliveryRecord.id.asc())
                    .limit(overflow)
                )
                evicted = [row[0] for row in oldest]
                await session.execute(delete(DeliveryRecord).where(DeliveryRecord.id.in_(evicted)))
                logger.debug(f"Evicted {len(evicted)} delivery record(s) for account {account_id}")

            await session.commit()
            return record

    async def get_history(self, account_id: str, limit: int = 50) -> list[DeliveryRecord]:
        """Newest first"""
        limit = max(1, min(limit, MAX_HISTORY_PAGE))
        async with self.sessionmaker() as session:
            result = await session.execute(
                select(DeliveryRecord)
                .where(DeliveryRecord.account_id == account_id)
                .order_by(DeliveryRecord.sent_at.desc(), DeliveryRecord.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # delegates

    @staticmethod
    def _delegate_values(name: str, phone: str) -> dict:
        name = name.strip()
        if not name:
            raise ValueError("Delegate name is required")
        return {"name": name, "phone": validate_phone(phone)}

    @staticmethod
    async def _next_position(session: AsyncSession, account_id: str) -> int:
        return await session.scalar(
            select(func.count()).select_from(Delegate).where(Delegate.account_id == account_id)
        )

    async def add_delegate(self, account_id: str, name: str, phone: str) -> Delegate:
        values = self._delegate_values(name, phone)

        async with self.sessionmaker() as session:
            if await session.get(Account, account_id) is None:
                raise AccountNotFound(account_id)
            delegate = Delegate(
                account_id=account_id,
                position=await self._next_position(session, account_id),
                **values,
            )
            session.add(delegate)
            await session.commit()
            return delegate

    async def register_delegate(
        self,
        account_id: str,
        name: str,
        phone: str,
        manual_event: Optional[dict] = None,
    ) -> tuple[Delegate, Optional[ManualEvent]]:
        """Add a delegate and, optionally, one manual event; both are written or neither is"""
        delegate_values = self._delegate_values(name, phone)
        event_values = self._manual_event_values(**manual_event) if manual_event else None

        async with self.sessionmaker() as session:
            if await session.get(Account, account_id) is None:
                raise AccountNotFound(account_id)
            delegate = Delegate(
                account_id=account_id,
                position=await self._next_position(session, account_id),
                **delegate_values,
            )
            session.add(delegate)

            event = None
            if event_values is not None:
                event = ManualEvent(account_id=account_id, **event_values)
                session.add(event)

            await session.commit()
            return delegate, event

    async def update_delegate(self, account_id: str, delegate_id: str, **patch) -> Delegate:
        """Rename, re-number, or (de)activate a delegate; delegates are never deleted"""
        unknown = set(patch) - {"name", "phone", "is_active"}
        if unknown:
            raise ValueError(f"Unknown delegate fields: {', '.join(sorted(unknown))}")
        if "phone" in patch:
            patch["phone"] = validate_phone(patch["phone"])

        async with self.sessionmaker() as session:
            delegate = await session.get(Delegate, delegate_id)
            if delegate is None or delegate.account_id != account_id:
                raise LookupError(f"Delegate {delegate_id} not found")
            for key, value in patch.items():
                setattr(delegate, key, value)
            await session.commit()
            return delegate

    # manual events

    @staticmethod
    def _manual_event_values(
        title: str,
        start: datetime,
        end: datetime,
        location: Optional[str] = None,
        description: Optional[str] = None,
        is_all_day: bool = False,
    ) -> dict:
        if end < start:
            raise ValueError("Event end must not be before its start")
        return {
            "title": title.strip() or "Untitled",
            "start": to_naive_utc(start),
            "end": to_naive_utc(end),
            "location": location,
            "description": description,
            "is_all_day": is_all_day,
        }

    async def add_manual_event(
        self, account_id: str, title: str, start: datetime, end: datetime, **details
    ) -> ManualEvent:
        values = self._manual_event_values(title, start, end, **details)

        async with self.sessionmaker() as session:
            if await session.get(Account, account_id) is None:
                raise AccountNotFound(account_id)
            event = ManualEvent(account_id=account_id, **values)
            session.add(event)
            await session.commit()
            return event

    async def remove_manual_event(self, account_id: str, event_id: str) -> bool:
        async with self.sessionmaker() as session:
            result = await session.execute(
                delete(ManualEvent).where(
                    ManualEvent.id == event_id,
                    ManualEvent.account_id == account_id,
                )
            )
            await session.commit()
            return result.rowcount > 0
