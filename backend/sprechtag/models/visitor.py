import enum

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Column, String, Text

from ..core.errors import ValidationFailed


class VisitorType(str, enum.Enum):
    PARENT = "parent"
    COMPANY = "company"


VISITOR_FIELDS = (
    "visitor_type",
    "parent_name",
    "company_name",
    "student_name",
    "trainee_name",
    "representative_name",
    "class_name",
    "email",
    "message",
)


class VisitorColumns:
    """Visitor snapshot columns shared by ``slots`` and ``booking_requests``."""

    visitor_type = Column(String(16), nullable=True)
    parent_name = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    student_name = Column(String, nullable=True)
    trainee_name = Column(String, nullable=True)
    representative_name = Column(String, nullable=True)
    class_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    message = Column(Text, nullable=True)


class VisitorInfo(BaseModel):
    """Who booked: copied by value from a request onto a slot on assignment.

    The copy is a snapshot taken at the moment of the transition, the two rows
    are not kept in sync afterwards.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    visitor_type: str
    class_name: str
    email: str
    parent_name: str | None = None
    company_name: str | None = None
    student_name: str | None = None
    trainee_name: str | None = None
    representative_name: str | None = None
    message: str | None = None

    @classmethod
    def from_row(cls, row) -> "VisitorInfo":
        return cls.model_validate(row)

    @classmethod
    def from_payload(cls, payload) -> "VisitorInfo":
        """Trim and validate visitor input; raises ``ValidationFailed``.

        Fields that belong to the other visitor type are dropped.
        """
        def clean(name):
            value = getattr(payload, name, None)
            return value.strip() if isinstance(value, str) else ""

        visitor_type = clean("visitor_type")
        class_name = clean("class_name")
        email = clean("email")
        if not visitor_type or not class_name or not email:
            raise ValidationFailed("visitorType, className, email required")

        data = {
            "visitor_type": visitor_type,
            "class_name": class_name,
            "email": email,
            "message": clean("message") or None,
        }
        if visitor_type == VisitorType.PARENT.value:
            parent_name, student_name = clean("parent_name"), clean("student_name")
            if not parent_name or not student_name:
                raise ValidationFailed("parentName and studentName required for parent type")
            data.update(parent_name=parent_name, student_name=student_name)
        elif visitor_type == VisitorType.COMPANY.value:
            company_name = clean("company_name")
            trainee_name = clean("trainee_name")
            representative_name = clean("representative_name")
            if not company_name or not trainee_name or not representative_name:
                raise ValidationFailed(
                    "companyName, traineeName and representativeName required for company type"
                )
            data.update(
                company_name=company_name,
                trainee_name=trainee_name,
                representative_name=representative_name,
            )
        else:
            raise ValidationFailed("visitorType must be parent or company")
        return cls(**data)

    def as_columns(self) -> dict:
        data = self.model_dump()
        data["message"] = data["message"] or None
        return {k: data[k] for k in VISITOR_FIELDS}

    @staticmethod
    def cleared_columns() -> dict:
        return {k: None for k in VISITOR_FIELDS}
