import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from jose import jwt, JWTError
from sqlmodel import Session, select

from chatsync.core.config import settings
from chatsync.core.errors import Unauthenticated, Forbidden
from chatsync.db import models
from chatsync.db.database import get_session

logger = logging.getLogger(__name__)

# Older tokens only carry the external auth provider's user id
LEGACY_ID_CLAIMS = ("externalUserID", "clerkUserID")


@dataclass(frozen=True)
class Identity:
    """A verified caller, reduced to one canonical user id."""

    user_id: str


def verify_token(token: str, secret: Optional[str] = None) -> Optional[dict]:
    """Decode and verify a bearer credential. Returns the claims or None."""
    try:
        return jwt.decode(
            token,
            secret or settings.AUTH_SECRET,
            algorithms=[settings.AUTH_ALGORITHM],
        )
    except JWTError as e:
        logger.debug(f"Rejected bearer credential: {e}")
        return None


def resolve_identity(claims: Optional[dict], session: Optional[Session] = None) -> Optional[Identity]:
    """
    Normalize decoded claims to a single canonical id.

    `sub` wins. A token carrying only a legacy external id is mapped to the
    user row registered with that external id, or kept as-is when no such row
    exists yet.
    """
    if not claims:
        return None

    subject = claims.get("sub")
    if subject:
        return Identity(user_id=str(subject))

    legacy_id = next((claims[c] for c in LEGACY_ID_CLAIMS if claims.get(c)), None)
    if not legacy_id:
        return None

    if session is not None:
        user = session.exec(
            select(models.User).where(models.User.external_auth_id == legacy_id)
        ).first()
        if user:
            return Identity(user_id=user.id)
    return Identity(user_id=str(legacy_id))


def get_identity(
    authorization: Optional[str] = Header(None),
    session: Session = Depends(get_session),
) -> Optional[Identity]:
    """FastAPI dependency. No header means no identity; a wrong scheme is an error."""
    if not authorization:
        return None

    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token:
        raise Unauthenticated("Invalid Authorization header - should start with 'Bearer '")

    return resolve_identity(verify_token(token), session)


def require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise Unauthenticated()
    return identity


def is_owner(identity: Identity, owner_id: Optional[str]) -> bool:
    return owner_id is not None and owner_id == identity.user_id


def require_owner(identity: Identity, owner_id: Optional[str], action: str, role: str = "owner") -> None:
    """Raise Forbidden ("Must be <role> to <action>") unless `identity` is `owner_id`."""
    if not is_owner(identity, owner_id):
        logger.warning(f"Forbidden: {identity.user_id} tried to {action} ({role} {owner_id})")
        raise Forbidden(f"Must be {role} to {action}")
