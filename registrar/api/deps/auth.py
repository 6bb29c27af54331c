# registrar/api/deps/auth.py - Bearer token authentication and role checks
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from uuid import UUID
from typing import Dict, Any, List

from registrar.core.security import decode_token

security = HTTPBearer()

ADMIN_ROLES = ["ADMIN", "SUPER_ADMIN", "REGISTRAR"]
ACCOUNTANT_ROLES = ["ACCOUNTANT"] + ADMIN_ROLES


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Dict[str, Any]:
    """
    Decode JWT and return the acting user.
    Returns: {"actor_id": UUID, "roles": [str], "claims": dict}
    """
    claims = decode_token(credentials.credentials)

    actor_id = claims.get("sub")
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing user ID"
        )

    try:
        actor_uuid = UUID(actor_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID format"
        )

    roles = [str(role).upper() for role in claims.get("roles") or []]
    return {
        "actor_id": actor_uuid,
        "roles": roles,
        "claims": claims,
    }


def has_any_role(ctx: Dict[str, Any], roles: List[str]) -> bool:
    return any(role in ctx["roles"] for role in roles)


def is_admin(ctx: Dict[str, Any]) -> bool:
    return has_any_role(ctx, ADMIN_ROLES)


def require_admin(ctx = Depends(get_current_actor)):
    """Require admin, super admin or registrar role"""
    if not is_admin(ctx):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return ctx


def require_accountant(ctx = Depends(get_current_actor)):
    """Require accountant role or higher"""
    if not has_any_role(ctx, ACCOUNTANT_ROLES):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Accountant access required"
        )
    return ctx
