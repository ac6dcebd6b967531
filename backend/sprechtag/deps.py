from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from .database import get_db
from .core.security import decode_token
from .models.user import User, Role

oauth2 = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

def get_current_user(token: str | None = Depends(oauth2), db: Session = Depends(get_db)) -> User:
    data = decode_token(token) if token else None
    if not data or "sub" not in data:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    user = db.query(User).filter(User.username == data["sub"]).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user

def require_role(*allowed: Role):
    def dep(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return dep

def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user

def require_teacher(user: User = Depends(require_role(Role.TEACHER, Role.ADMIN))) -> User:
    return user

def current_teacher_id(user: User = Depends(require_teacher)) -> int:
    """Teacher id of the logged-in user; admins need a teacher link."""
    if not user.teacher_id:
        raise HTTPException(status_code=400, detail="Teacher ID not found in token")
    return user.teacher_id
