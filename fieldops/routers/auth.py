from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldops.auth import Principal, request_token, get_current_principal
from fieldops.config import settings
from fieldops.db import get_db
from fieldops.dependencies import get_client_ip
from fieldops.models import Principal as PrincipalModel
from fieldops.schemas import LoginIn
from fieldops.security.passwords import verify_password
from fieldops.security.sessions import create_web_session, revoke_web_session
from fieldops.services.audit_service import log_audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/auth', tags=['auth'])


def _reject(db: Session, *, username: str, reason: str, principal_id: int | None, ip: str | None) -> None:
    log_audit(
        db,
        actor_principal_id=principal_id,
        action='auth.login_failed',
        entity_type='principal',
        entity_id=principal_id,
        ip=ip,
        metadata={'username': username, 'reason': reason},
    )
    db.commit()
    logger.info('Login failed for %r: %s', username, reason)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid username or password')


@router.post('/login')
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    username = payload.username.strip()
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    principal = db.execute(select(PrincipalModel).where(PrincipalModel.username == username)).scalar_one_or_none()
    if not principal:
        _reject(db, username=username, reason='UNKNOWN_USERNAME', principal_id=None, ip=ip)
    if not principal.active:
        _reject(db, username=username, reason='INACTIVE_PRINCIPAL', principal_id=principal.id, ip=ip)

    valid, new_hash = verify_password(payload.password, principal.password_hash)
    if not valid:
        _reject(db, username=username, reason='BAD_PASSWORD', principal_id=principal.id, ip=ip)
    if new_hash:
        principal.password_hash = new_hash

    token = create_web_session(db, principal.id, ip=ip, user_agent=user_agent)
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='auth.login',
        entity_type='principal',
        entity_id=principal.id,
        ip=ip,
        metadata={'username': username},
    )
    db.commit()

    response = JSONResponse(
        {
            'token': token,
            'user': {'id': principal.id, 'username': principal.username, 'role': principal.role.value},
        }
    )
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    token = request_token(request)
    if token:
        revoke_web_session(db, token)
    log_audit(db, actor_principal_id=principal.id, action='auth.logout', ip=get_client_ip(request))
    db.commit()

    response = JSONResponse({'success': True})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal)):
    return {'id': principal.id, 'username': principal.username, 'role': principal.role.value}
