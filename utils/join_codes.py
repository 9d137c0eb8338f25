import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import config
from utils.errors import InvalidJoinCode

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


@dataclass
class JoinCode:
    code: str
    account_id: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


class JoinCodeRegistry:
    """Single-use invitation codes that let someone register as a delegate.

    Codes live in process memory only and are lost on restart. Swap this for a
    shared store with TTLs if the service ever runs as more than one instance.
    """

    def __init__(self, clock=None):
        self._codes: dict[str, JoinCode] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def __len__(self):
        return len(self._codes)

    def _generate(self) -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))

    def create(self, account_id: str, ttl_minutes: int = config.JOIN_CODE_TTL_MINUTES) -> JoinCode:
        code = self._generate()
        while code in self._codes:
            code = self._generate()

        created_at = self._clock()
        join_code = JoinCode(
            code=code,
            account_id=account_id,
            created_at=created_at,
            expires_at=created_at + timedelta(minutes=ttl_minutes),
        )
        self._codes[code] = join_code
        logger.info(f"Join code created for account {account_id}, expires at {join_code.expires_at.isoformat()}")
        return join_code

    def validate(self, code: str) -> Optional[str]:
        """Return the owning account id, or None for unknown and expired codes"""
        key = code.strip().upper()
        join_code = self._codes.get(key)
        if join_code is None:
            return None

        if join_code.is_expired(self._clock()):
            logger.info(f"Expired join code used: {key}")
            del self._codes[key]
            return None

        return join_code.account_id

    def delete(self, code: str):
        self._codes.pop(code.strip().upper(), None)

    def get_info(self, code: str) -> Optional[JoinCode]:
        return self._codes.get(code.strip().upper())

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [code for code, data in self._codes.items() if data.is_expired(now)]
        for code in expired:
            del self._codes[code]
        if expired:
            logger.info(f"Removed {len(expired)} expired join code(s)")
        return len(expired)

    def _claim(self, code: str) -> Optional[JoinCode]:
        """Take a live code out of the registry so no one else can use it meanwhile"""
        if self.validate(code) is None:
            return None
        return self._codes.pop(code.strip().upper())

    async def redeem(self, store, code: str, name: str, phone: str, manual_event: Optional[dict] = None):
        """Register the code holder as a delegate of the owning account.

        `manual_event` may carry title/start/end (and optionally location,
        description, is_all_day) for one event to add to the owner's calendar
        view. The code is claimed before anything is written, and handed back
        if registration fails while it is still valid.
        """
        join_code = self._claim(code)
        if join_code is None:
            raise InvalidJoinCode("Join code is invalid or has expired")

        try:
            delegate, event = await store.register_delegate(
                join_code.account_id, name, phone, manual_event=manual_event
            )
        except Exception:
            if not join_code.is_expired(self._clock()):
                self._codes[join_code.code] = join_code
            raise

        logger.info(f"Delegate {delegate.name} joined account {join_code.account_id}")
        return delegate, event
