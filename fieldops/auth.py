from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from fieldops.config import settings
from fieldops.db import get_db
from fieldops.errors import ForbiddenError


class Role(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


ROLE_RANK = {Role.USER: 0, Role.MODERATOR: 1, Role.ADMIN: 2}


@dataclass
class Principal:
    id: int
    username: str
    role: Role
    active: bool


def parse_role(value) -> Role:
    raw = value.value if hasattr(value, "value") else value
    return Role(str(raw).strip().lower())


def authorize(required: Role, actual: Role) -> bool:
    return ROLE_RANK[actual] >= ROLE_RANK[required]


def ensure_authorized(principal: Principal, required: Role) -> None:
    if not principal.active or not authorize(required, principal.role):
        raise ForbiddenError()


def request_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(settings.session_cookie_name)


def get_current_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    from fieldops.security.sessions import load_principal_from_token

    principal = getattr(request.state, "principal", None)
    if principal is None:
        principal = load_principal_from_token(db, request_token(request))
        db.commit()
        request.state.principal = principal
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(minimum: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not authorize(minimum, principal.role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep
