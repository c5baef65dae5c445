from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import threading

from fieldtrack.config import settings
from fieldtrack.core.ids import UserId, new_id
from fieldtrack.core.time_provider import TimeProvider, default_time_provider
from fieldtrack.schemas import AuthResult, User, UserRole
from fieldtrack.storage import CURRENT_SESSION, USERS, KeyValueStorage, storage_key


logger = logging.getLogger(__name__)

_PBKDF2_ITERATIONS = 120000


def _hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    derived = hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt.encode('utf-8'), _PBKDF2_ITERATIONS)
    return f'pbkdf2_sha256${_PBKDF2_ITERATIONS}${salt}${derived.hex()}'


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, iter_raw, salt, digest_hex = password_hash.split('$', 3)
        if algo != 'pbkdf2_sha256':
            return False
        derived = hashlib.pbkdf2_hmac('sha256', (password or '').encode('utf-8'), salt.encode('utf-8'), int(iter_raw)).hex()
        return hmac.compare_digest(derived, digest_hex)
    except ValueError:
        return False


def _normalize_email(email: str) -> str:
    return (email or '').strip().lower()


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def _b64url_decode(value: str) -> bytes:
    padding = '=' * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode('ascii'))


def _sign(signing_input: bytes) -> bytes:
    return hmac.new(settings.auth_secret.encode('utf-8'), signing_input, hashlib.sha256).digest()


def _encode_jwt(payload: dict) -> str:
    header = {'alg': 'HS256', 'typ': 'JWT'}
    header_part = _b64url_encode(json.dumps(header, separators=(',', ':')).encode('utf-8'))
    payload_part = _b64url_encode(json.dumps(payload, separators=(',', ':')).encode('utf-8'))
    signature_part = _b64url_encode(_sign(f'{header_part}.{payload_part}'.encode('ascii')))
    return f'{header_part}.{payload_part}.{signature_part}'


def _decode_jwt(token: str) -> dict | None:
    try:
        header_part, payload_part, signature_part = token.split('.')
        provided_signature = _b64url_decode(signature_part)
        expected_signature = _sign(f'{header_part}.{payload_part}'.encode('ascii'))
    except ValueError:
        return None
    if not hmac.compare_digest(provided_signature, expected_signature):
        return None

    try:
        payload = json.loads(_b64url_decode(payload_part).decode('utf-8'))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return payload


class IdentityStore:
    """Registered users, the persisted current session and per-client tokens.

    ``current_user`` is the single session kept in storage across restarts.
    HTTP clients authenticate with their own signed token instead, see
    ``issue_session_token`` and ``validate_session_token``.
    """

    def __init__(self, storage: KeyValueStorage, time_provider: TimeProvider = default_time_provider) -> None:
        self._storage = storage
        self._time = time_provider
        self._lock = threading.RLock()
        self._revoked_tokens: set[str] = set()
        raw_users = storage.load(storage_key(USERS)) or []
        self._users: list[User] = [User.model_validate(item) for item in raw_users]
        self._current_user_id: UserId | None = None
        raw_session = storage.load(storage_key(CURRENT_SESSION))
        if isinstance(raw_session, dict) and raw_session.get('userId'):
            session_user_id = UserId(str(raw_session['userId']))
            if self._find_by_id(session_user_id):
                self._current_user_id = session_user_id
            else:
                logger.warning('identity_session_user_missing user_id=%s', session_user_id)

    @property
    def current_user(self) -> User | None:
        if self._current_user_id is None:
            return None
        return self._find_by_id(self._current_user_id)

    def all_users(self) -> list[User]:
        return list(self._users)

    def register(self, name: str, email: str, password: str, role: UserRole) -> AuthResult:
        email_lower = _normalize_email(email)
        with self._lock:
            if self._find_by_email(email_lower):
                return AuthResult(success=False, error='An account with this email already exists.')
            min_length = settings.auth_password_min_length
            if len(password or '') < min_length:
                return AuthResult(success=False, error=f'Password must be at least {min_length} characters.')

            user = User(
                id=UserId(new_id('user')),
                role=role,
                name=(name or '').strip(),
                email=email_lower,
                password_hash=_hash_password(password),
                created_at=self._time.now_iso(),
            )
            self._users = [*self._users, user]
            self._storage.save(storage_key(USERS), [item.to_json() for item in self._users])
            self._start_session(user)
        logger.info('user_registered', extra={'user_id': user.id, 'role': user.role})
        return AuthResult(success=True)

    def login(self, email: str, password: str) -> AuthResult:
        user = self._find_by_email(_normalize_email(email))
        if not user:
            return AuthResult(success=False, error='No account found for this email.')
        if not _verify_password(password, user.password_hash):
            logger.info('login_rejected', extra={'user_id': user.id})
            return AuthResult(success=False, error='Incorrect password.')
        with self._lock:
            self._start_session(user)
        return AuthResult(success=True)

    def logout(self) -> None:
        with self._lock:
            self._current_user_id = None
            self._storage.delete(storage_key(CURRENT_SESSION))

    def find_user_by_email(self, email: str) -> User | None:
        return self._find_by_email(_normalize_email(email))

    def issue_session_token(self, user: User) -> str:
        return _encode_jwt(
            {
                'sub': user.id,
                'role': user.role,
                'iat': int(self._time.now().timestamp()),
                'jti': secrets.token_hex(8),
            }
        )

    def validate_session_token(self, token: str | None) -> User | None:
        if not token:
            return None
        with self._lock:
            if token in self._revoked_tokens:
                return None
        payload = _decode_jwt(token)
        if not payload or not payload.get('sub'):
            return None
        return self._find_by_id(UserId(str(payload['sub'])))

    def clear_session_token(self, token: str | None) -> None:
        if not token:
            return
        with self._lock:
            self._revoked_tokens.add(token)

    def _start_session(self, user: User) -> None:
        self._current_user_id = user.id
        self._storage.save(storage_key(CURRENT_SESSION), {'userId': user.id, 'startedAt': self._time.now_iso()})

    def _find_by_email(self, email_lower: str) -> User | None:
        return next((u for u in self._users if u.email.lower() == email_lower), None)

    def _find_by_id(self, user_id: UserId) -> User | None:
        return next((u for u in self._users if u.id == user_id), None)
