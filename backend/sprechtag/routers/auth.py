import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.user import User
from ..schemas.auth import LoginIn, TokenOut, SessionUser, AuthStatusOut
from ..core.security import verify_password, create_access_token, decode_token
from ..deps import oauth2

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _login(db: Session, username: str, password: str) -> TokenOut:
    if not username or not password:
        raise HTTPException(status_code=400, detail="Username and password required")
    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token(sub=user.username, role=user.role.value, teacher_id=user.teacher_id)
    logger.info("login successful: %s (%s)", user.username, user.role.value)
    return TokenOut(
        token=token,
        access_token=token,
        user=SessionUser(username=user.username, role=user.role, teacher_id=user.teacher_id),
    )


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    return _login(db, payload.username.strip(), payload.password)


@router.post("/logout")
@router.delete("/logout")
def logout():
    # tokens are stateless, the client drops its copy
    return {"success": True, "message": "Logout successful"}


@router.get("/verify", response_model=AuthStatusOut)
def verify(token: str | None = Depends(oauth2)):
    data = decode_token(token) if token else None
    if not data or "sub" not in data:
        return AuthStatusOut(authenticated=False)
    return AuthStatusOut(
        authenticated=True,
        user=SessionUser(username=data["sub"], role=data["role"], teacher_id=data.get("teacherId")),
    )
