from sqlalchemy import Column, Integer, Text, DateTime
from ..core.clock import utcnow
from ..database import Base


class Feedback(Base):
    # anonymous on purpose: no teacher reference
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
