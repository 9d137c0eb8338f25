from .db import init_db, get_engine, get_sessionmaker
from .models import Base, Account, Delegate, ManualEvent, DeliveryRecord
from .store import AccountStore

__all__ = [
    "init_db",
    "get_engine",
    "get_sessionmaker",
    "Base",
    "Account",
    "Delegate",
    "ManualEvent",
    "DeliveryRecord",
    "AccountStore",
]
