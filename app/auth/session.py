"""Session resolution and order-level authorization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from app.auth.jwt import decode_jwt
from app.core.config import get_config
from app.core.enums import LineItemStatus, UserType
from app.core.exceptions import Forbidden, Unauthorized


@dataclass(frozen=True)
class SessionUser:
    user_id: int
    user_type: str
    email: str = ""
    account_id: int | None = None

    @property
    def is_internal(self) -> bool:
        return self.user_type == UserType.INTERNAL.value

    @property
    def is_account(self) -> bool:
        return self.user_type == UserType.ACCOUNT.value

    @property
    def is_publisher(self) -> bool:
        return self.user_type == UserType.PUBLISHER.value


def from_claims(claims: dict[str, Any]) -> SessionUser:
    try:
        user_type = str(claims["user_type"]).lower()
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise Unauthorized("Token claims are missing session context.") from exc
    if user_type not in {member.value for member in UserType}:
        raise Unauthorized(f"Unknown user type: {user_type}")

    account_id = claims.get("account_id")
    return SessionUser(
        user_id=user_id,
        user_type=user_type,
        email=str(claims.get("email") or ""),
        account_id=int(account_id) if account_id is not None else None,
    )


def _extract_bearer_token(authorization: str | None) -> str | None:
    if authorization is None or not authorization.strip():
        return None
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized("Authorization header must use Bearer token.")
    return parts[1].strip()


def get_session(authorization: str | None) -> SessionUser | None:
    """Resolve the session for an Authorization header, or None when absent."""
    token = _extract_bearer_token(authorization)
    if token is None:
        return None
    claims = decode_jwt(token=token, secret=get_config().JWT_SECRET)
    return from_claims(claims)


def require_session(authorization: str | None) -> SessionUser:
    session = get_session(authorization)
    if session is None:
        raise Unauthorized("Authentication required.")
    return session


def require_internal(session: SessionUser) -> None:
    if not session.is_internal:
        raise Forbidden("Internal access required.")


def ensure_order_access(session: SessionUser, order: Any, line_items: Iterable[Any] = ()) -> None:
    """Raise Forbidden unless the session may act on the order.

    Internal users may act on any order, account users only on orders they own,
    publishers only on orders holding an active line item attributed to them.
    """
    if session.is_internal:
        return
    if session.is_account:
        if order.account_id != session.user_id:
            raise Forbidden("Order belongs to a different account.")
        return
    if session.is_publisher:
        for item in line_items:
            if item.publisher_id == session.user_id and item.status != LineItemStatus.CANCELLED.value:
                return
        raise Forbidden("Publisher has no placements on this order.")
    raise Forbidden("Unsupported user type.")
