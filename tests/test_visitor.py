import pytest

from sprechtag.core.errors import ValidationFailed
from sprechtag.models.visitor import VisitorInfo
from sprechtag.schemas.booking import VisitorIn

from helpers import PARENT


def test_parent_payload_is_trimmed():
    payload = VisitorIn(**{**PARENT, "parent_name": "  Eva Schmidt ", "message": "   "})
    visitor = VisitorInfo.from_payload(payload)
    assert visitor.parent_name == "Eva Schmidt"
    assert visitor.message is None


def test_fields_of_the_other_type_are_dropped():
    payload = VisitorIn(**PARENT, company_name="ACME GmbH", trainee_name="Tom")
    columns = VisitorInfo.from_payload(payload).as_columns()
    assert columns["company_name"] is None
    assert columns["trainee_name"] is None
    assert columns["student_name"] == "Lena Schmidt"


def test_company_needs_all_three_names():
    payload = VisitorIn(
        visitor_type="company",
        company_name="ACME GmbH",
        trainee_name="Tom Berger",
        class_name="FI21",
        email="ausbildung@acme.de",
    )
    with pytest.raises(ValidationFailed) as exc:
        VisitorInfo.from_payload(payload)
    assert "representativeName" in exc.value.message

    visitor = VisitorInfo.from_payload(payload.model_copy(update={"representative_name": "Frau Acker"}))
    assert visitor.as_columns()["representative_name"] == "Frau Acker"


@pytest.mark.parametrize("missing", ["visitor_type", "class_name", "email"])
def test_common_fields_are_required(missing):
    payload = VisitorIn(**{**PARENT, missing: "  "})
    with pytest.raises(ValidationFailed):
        VisitorInfo.from_payload(payload)


def test_parent_needs_student_name():
    payload = VisitorIn(**{**PARENT, "student_name": None})
    with pytest.raises(ValidationFailed):
        VisitorInfo.from_payload(payload)


def test_unknown_visitor_type():
    payload = VisitorIn(**{**PARENT, "visitor_type": "grandparent"})
    with pytest.raises(ValidationFailed) as exc:
        VisitorInfo.from_payload(payload)
    assert exc.value.code == "VALIDATION"


def test_cleared_columns_null_every_visitor_field():
    cleared = VisitorInfo.cleared_columns()
    assert set(cleared) == set(VisitorInfo.from_payload(VisitorIn(**PARENT)).as_columns())
    assert all(v is None for v in cleared.values())
