from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()

def utc_now_ms() -> datetime:
    """Naive UTC now, truncated to the millisecond precision used by feed cursors"""
    now = datetime.utcnow()
    return now.replace(microsecond=now.microsecond // 1000 * 1000)

class BaseModel(Base):
    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime, default=utc_now_ms, nullable=False)
