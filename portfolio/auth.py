"""
Admin authentication: credential check, token issuance and verification.

Tokens are HS256 JWTs signed with ``JWT_SECRET`` and carry the username,
role and issue time. There is no server-side session: a client is
authenticated while it holds an unexpired token, and logging out means
discarding it.
"""
from datetime import datetime, timedelta, timezone
from functools import wraps

import psycopg
from flask import current_app, request
from jose import JWTError, jwt
from werkzeug.security import check_password_hash

from . import db
from .errors import AuthError, ValidationError

ALGORITHM = "HS256"
ADMIN_ROLE = "admin"


def issue_token(username, secret, role=ADMIN_ROLE, ttl=timedelta(hours=24), now=None):
    """Create a signed token for ``username``.

    :param username: Identity embedded in the token.
    :type username: str
    :param secret: Signing secret.
    :type secret: str
    :param role: Role embedded in the token.
    :type role: str
    :param ttl: Validity window.
    :type ttl: datetime.timedelta
    :param now: Issue time; defaults to the current UTC time.
    :type now: datetime.datetime or None
    :returns: Encoded JWT.
    :rtype: str
    """
    issued = now or datetime.now(timezone.utc)
    claims = {
        "username": username,
        "role": role,
        "iat": int(issued.timestamp()),
        "exp": int((issued + ttl).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def verify_token(token, secret):
    """Decode a token and return the identity it carries.

    :raises AuthError: If the token is missing, tampered with, signed with another secret or expired.
    :rtype: dict
    """
    if not token:
        raise AuthError("No token provided")
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise AuthError("Invalid token") from exc
    return {"username": claims.get("username"), "role": claims.get("role")}


def check_credentials(username, password):
    """Compare a login attempt with the configured admin account."""
    expected_user = current_app.config["ADMIN_USERNAME"]
    password_hash = current_app.config.get("ADMIN_PASSWORD_HASH")
    if not password_hash:
        current_app.logger.warning("ADMIN_PASSWORD_HASH is not set; admin login is disabled.")
        return False
    if not username or not password or username != expected_user:
        return False
    return check_password_hash(password_hash, password)


def _token_ttl():
    return timedelta(hours=current_app.config["TOKEN_TTL_HOURS"])


def login(payload):
    if not check_credentials(payload.get("username"), payload.get("password")):
        raise AuthError("Invalid credentials")

    username = payload["username"]
    token = issue_token(username, current_app.config["JWT_SECRET"], ttl=_token_ttl())
    try:
        db.record_login(username)
    except psycopg.Error as e:
        current_app.logger.warning("Could not update last login: %s", e)
    return {"token": token, "user": {"username": username, "role": ADMIN_ROLE}}


def verify(payload):
    return {"user": verify_token(payload.get("token"), current_app.config["JWT_SECRET"])}


AUTH_ACTIONS = {
    "login": login,
    "verify": verify,
}


def run_action(payload):
    """Dispatch an auth request body to the handler named by its ``action``."""
    handler = AUTH_ACTIONS.get(payload.get("action"))
    if handler is None:
        raise ValidationError("Invalid action")
    return handler(payload)


def bearer_identity(header):
    """Verify the bearer token in an ``Authorization`` header value."""
    if not header or not header.startswith("Bearer "):
        raise AuthError("No valid authorization header")
    return verify_token(header[len("Bearer "):], current_app.config["JWT_SECRET"])


def require_admin():
    """Raise :class:`AuthError` unless the current request carries a valid token.

    Does nothing while ``ADMIN_AUTH_REQUIRED`` is off (open admin mode).
    """
    if current_app.config["ADMIN_AUTH_REQUIRED"]:
        return bearer_identity(request.headers.get("Authorization"))
    return None


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        require_admin()
        return view(*args, **kwargs)
    return wrapped
