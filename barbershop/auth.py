"""Scoped authorization for bearer tokens issued by the external auth service."""
from __future__ import annotations

from functools import wraps

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, URLSafeTimedSerializer

ROLES = ("admin", "barber")


def _serializer() -> URLSafeTimedSerializer | None:
    secret = current_app.config.get("SECRET_KEY")
    if not secret:
        return None
    return URLSafeTimedSerializer(secret, salt="auth-token")


def build_token(payload: dict[str, object]) -> str:
    serializer = _serializer()
    if serializer is None:
        raise RuntimeError("SECRET_KEY is not configured")
    return serializer.dumps(payload)


def get_current_identity() -> dict[str, object] | None:
    """Extract and validate the identity from the Authorization header.

    Returns a dict with ``user_id``, ``role`` and ``barber_id`` when the token is
    valid, None if it is missing, expired, tampered with or no key is configured.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    serializer = _serializer()
    if serializer is None:
        return None

    try:
        payload = serializer.loads(auth_header[7:], max_age=current_app.config["AUTH_TOKEN_MAX_AGE"])
    except BadSignature:
        return None

    if not isinstance(payload, dict) or payload.get("role") not in ROLES:
        return None
    if payload["role"] == "barber" and payload.get("barber_id") is None:
        return None
    return {
        "user_id": payload.get("user_id"),
        "role": payload["role"],
        "barber_id": payload.get("barber_id"),
    }


def require_role(*roles: str):
    """Reject the request unless the caller holds one of ``roles``.

    The identity is left on ``g.identity`` for the view.
    """

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            identity = get_current_identity()
            if identity is None:
                return jsonify({"error": "unauthorized", "message": "Invalid or missing token"}), 401
            if identity["role"] not in roles:
                current_app.logger.warning(
                    "Role %s denied access to %s", identity["role"], request.path
                )
                return jsonify({"error": "forbidden", "message": "Insufficient permissions"}), 403
            g.identity = identity
            return view(*args, **kwargs)

        return wrapper

    return decorator


def barber_scope() -> int | None:
    """Barber id the authenticated caller is restricted to, or None for admins.

    Only valid inside a view guarded by ``require_role``.
    """
    identity = g.identity
    if identity["role"] == "barber":
        return identity["barber_id"]
    return None
