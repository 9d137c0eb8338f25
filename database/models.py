import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Date, Boolean, ForeignKey, Text, Enum
from sqlalchemy.orm import relationship, declarative_base

import config
from utils.events import MessageStyle

Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String, primary_key=True, default=_new_id)
    email = Column(String, nullable=False, unique=True)
    provider_subject_id = Column(String, nullable=False, unique=True)
    display_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)  # E.164, users add it later in settings
    access_token = Column(Text, nullable=False)  # encrypted
    refresh_token = Column(Text, nullable=True)  # encrypted
    token_expires_at = Column(DateTime, nullable=True)  # naive UTC
    timezone = Column(String, nullable=False, default=config.DEFAULT_TIMEZONE)
    send_time = Column(String, nullable=False, default=config.DEFAULT_SEND_TIME)  # HH:MM local
    is_active = Column(Boolean, nullable=False, default=True)
    message_style = Column(Enum(MessageStyle), nullable=False, default=MessageStyle.PROFESSIONAL)
    last_delivery_date = Column(Date, nullable=True)  # local calendar date of the last dispatch
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    delegates = relationship(
        "Delegate", back_populates="account", cascade="all, delete-orphan",
        order_by="Delegate.position",
    )
    manual_events = relationship(
        "ManualEvent", back_populates="account", cascade="all, delete-orphan",
        order_by="ManualEvent.start",
    )
    delivery_records = relationship(
        "DeliveryRecord", back_populates="account", cascade="all, delete-orphan",
    )

    @property
    def name(self) -> str:
        return self.display_name or self.email.split("@")[0]

    @property
    def active_delegates(self) -> list["Delegate"]:
        return [d for d in self.delegates if d.is_active and d.phone]


class Delegate(Base):
    __tablename__ = "delegates"

    id = Column(String, primary_key=True, default=_new_id)
    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)  # E.164
    is_active = Column(Boolean, nullable=False, default=True)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    account = relationship("Account", back_populates="delegates")


class ManualEvent(Base):
    __tablename__ = "manual_events"

    id = Column(String, primary_key=True, default=_new_id)
    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    start = Column(DateTime, nullable=False)  # naive UTC
    end = Column(DateTime, nullable=False)  # naive UTC
    is_all_day = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    account = relationship("Account", back_populates="manual_events")


class DeliveryRecord(Base):
    __tablename__ = "delivery_records"

    id = Column(Integer, primary_key=True, autoincrement=True)  # insertion order breaks sent_at ties
    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    recipient_phone = Column(String, nullable=False)
    recipient_name = Column(String, nullable=True)  # set for delegate sends only
    message = Column(Text, nullable=False)
    event_count = Column(Integer, nullable=False, default=0)
    message_style = Column(Enum(MessageStyle), nullable=False)
    status = Column(String, nullable=False, default="sent")  # 'sent', 'failed'
    message_sid = Column(String, nullable=True)
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime, default=datetime.utcnow)

    account = relationship("Account", back_populates="delivery_records")
