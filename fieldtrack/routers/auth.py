from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from fieldtrack.core.router_guard import SESSION_COOKIE, get_identity_store, require_auth_user, resolve_session_token
from fieldtrack.route_logging import EndpointNameRoute
from fieldtrack.schemas import AuthResult, LoginRequest, RegisterRequest, User
from fieldtrack.services.identity_store import IdentityStore


router = APIRouter(prefix='/auth', tags=['Auth'], route_class=EndpointNameRoute)


def _public_user(user: User) -> dict:
    return {'id': user.id, 'name': user.name, 'email': user.email, 'role': user.role}


def _session_cookie_response(result: AuthResult, identity: IdentityStore, email: str) -> JSONResponse:
    if not result.success:
        return JSONResponse(status_code=400, content=result.model_dump(exclude_none=True))
    user = identity.find_user_by_email(email)
    token = identity.issue_session_token(user)
    response = JSONResponse({'success': True, 'user': _public_user(user), 'token': token})
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite='lax',
        secure=False,
        max_age=60 * 60 * 24 * 30,
    )
    return response


@router.post('/register')
def register(payload: RegisterRequest, identity: IdentityStore = Depends(get_identity_store)):
    result = identity.register(payload.name, payload.email, payload.password, payload.role)
    return _session_cookie_response(result, identity, payload.email)


@router.post('/login')
def login(payload: LoginRequest, identity: IdentityStore = Depends(get_identity_store)):
    result = identity.login(payload.email, payload.password)
    return _session_cookie_response(result, identity, payload.email)


@router.post('/logout')
def logout(request: Request, identity: IdentityStore = Depends(get_identity_store)):
    token = resolve_session_token(request)
    user = identity.validate_session_token(token)
    identity.clear_session_token(token)
    current = identity.current_user
    if user and current and current.id == user.id:
        identity.logout()
    response = JSONResponse({'success': True})
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get('/me')
def me(user: User = Depends(require_auth_user)):
    return _public_user(user)
