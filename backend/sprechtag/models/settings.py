from sqlalchemy import Column, Integer, String, Date, DateTime
from ..core.clock import utcnow
from ..database import Base


class AppSettings(Base):
    """Single row (id=1): fallback event name/date when no event exists."""

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    event_name = Column(String, nullable=False, default="BKSB Elternsprechtag")
    event_date = Column(Date, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
