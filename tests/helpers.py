"""Small helpers shared by the API and service tests."""
import re

from sprechtag.core.security import create_access_token
from sprechtag.models.user import User

PARENT = {
    "visitor_type": "parent",
    "parent_name": "Eva Schmidt",
    "student_name": "Lena Schmidt",
    "class_name": "10b",
    "email": "eva@example.org",
}

PARENT_JSON = {
    "visitorType": "parent",
    "parentName": "Eva Schmidt",
    "studentName": "Lena Schmidt",
    "className": "10b",
    "email": "eva@example.org",
}

_TOKEN_RE = re.compile(r"token=([0-9a-f]{64})")


def auth_header(user: User) -> dict:
    token = create_access_token(sub=user.username, role=user.role.value, teacher_id=user.teacher_id)
    return {"Authorization": f"Bearer {token}"}


def fresh(db, model, ident):
    """Re-read a row that another session may have changed."""
    return db.get(model, ident, populate_existing=True)


def token_from(mail) -> str:
    """Verification token from a captured ``(to, subject, text, html)`` mail."""
    match = _TOKEN_RE.search(mail[2])
    assert match, mail[2]
    return match.group(1)
