"""
Bearer token authentication

Tokens are issued by the identity service; this module only verifies them and
turns their claims into an Actor. Claims: sub (id), role (USER | CLEANER |
ADMIN), origin (USER for the customer app, ADMIN for the admin console).
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session

from .config import JWT_ALGORITHM, JWT_SECRET
from .database import get_db
from .errors import NotFound
from .models import UserRole
from .services.dispatch import ensure_worker_bookkeeping_record

logger = logging.getLogger(__name__)

security = HTTPBearer()

ORIGIN_USER = "USER"
ORIGIN_ADMIN = "ADMIN"


@dataclass(frozen=True)
class Actor:
    id: int
    role: str
    origin: str

    @property
    def is_admin(self) -> bool:
        if self.origin == ORIGIN_ADMIN:
            return True
        return self.role in (UserRole.ADMIN.value, UserRole.CLEANER.value)


def decode_token(token: str) -> Actor:
    try:
        claims = jose_jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"⚠️ JWT verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token") from e

    try:
        actor_id = int(claims.get("sub"))
    except (TypeError, ValueError) as e:
        logger.error(f"❌ Token missing numeric sub claim. Available claims: {list(claims.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims") from e

    return Actor(
        id=actor_id,
        role=claims.get("role", UserRole.USER.value),
        origin=claims.get("origin", ORIGIN_USER),
    )


def create_access_token(actor_id: int, role: str, origin: str = ORIGIN_USER) -> str:
    """Used by local tooling and tests; production tokens come from the identity service"""
    return jose_jwt.encode(
        {"sub": str(actor_id), "role": role, "origin": origin}, JWT_SECRET, algorithm=JWT_ALGORITHM
    )


async def get_current_actor(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Actor:
    return decode_token(credentials.credentials)


async def require_customer(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.origin != ORIGIN_USER:
        raise HTTPException(status_code=403, detail="Customer access required")
    return actor


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        logger.warning(f"🚫 Actor {actor.id} ({actor.role}/{actor.origin}) attempted admin access")
        raise HTTPException(status_code=403, detail="Admin access required")
    return actor


def get_admin_worker_id(actor: Actor = Depends(require_admin), db: Session = Depends(get_db)) -> int:
    """
    Worker account id acting on an admin route. Console admins already carry one;
    cleaners signed in through the customer app get theirs resolved or created.
    """
    if actor.origin == ORIGIN_ADMIN:
        return actor.id
    try:
        worker_id = ensure_worker_bookkeeping_record(db, actor.id)
    except NotFound as e:
        raise HTTPException(status_code=401, detail="Unknown user") from e
    db.commit()
    return worker_id
