import enum

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from ..database import Base


class TeacherSystem(str, enum.Enum):
    DUAL = "dual"            # 16:00 - 18:00
    VOLLZEIT = "vollzeit"    # 17:00 - 19:00


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    salutation = Column(String(16), nullable=True)
    subject = Column(String, nullable=False, default="Sprechstunde")
    system = Column(String(16), nullable=False, default=TeacherSystem.DUAL.value)
    room = Column(String(60), nullable=True)

    slots = relationship("Slot", back_populates="teacher", passive_deletes=True)
