from __future__ import annotations

from typing import Iterable

from fastapi import Depends, HTTPException, Request

from fieldtrack.core.time_provider import TimeProvider
from fieldtrack.schemas import Child, Group, User
from fieldtrack.services.domain_store import DomainStore
from fieldtrack.services.identity_store import IdentityStore


SESSION_COOKIE = 'auth_session'


def get_identity_store(request: Request) -> IdentityStore:
    return request.app.state.identity_store


def get_domain_store(request: Request) -> DomainStore:
    return request.app.state.domain_store


def resolve_session_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def require_auth_user(request: Request, identity: IdentityStore = Depends(get_identity_store)) -> User:
    user = identity.validate_session_token(resolve_session_token(request))
    if not user:
        raise HTTPException(status_code=401, detail='Unauthorized')
    return user


def require_role(user: User, allowed_roles: set[str] | Iterable[str]) -> None:
    normalized = {str(role).strip().lower() for role in allowed_roles}
    if user.role not in normalized:
        raise HTTPException(status_code=403, detail='Forbidden')


def require_owned_group(store: DomainStore, user: User, group_id: str) -> Group:
    group = store.get_group_by_id(group_id)
    if not group:
        raise HTTPException(status_code=404, detail='Group not found')
    if group.trainer_id != user.id:
        raise HTTPException(status_code=403, detail='Forbidden')
    return group


def require_visible_child(store: DomainStore, user: User, child_id: str) -> Child:
    """Parents see their own children, trainers the children in their groups."""
    child = store.get_child_by_id(child_id)
    if not child:
        raise HTTPException(status_code=404, detail='Child not found')
    if user.role == 'parent' and child.parent_id != user.id:
        raise HTTPException(status_code=403, detail='Forbidden')
    if user.role == 'trainer' and child.trainer_id != user.id:
        raise HTTPException(status_code=403, detail='Forbidden')
    return child


def get_time_provider(request: Request) -> TimeProvider:
    return request.app.state.time_provider
