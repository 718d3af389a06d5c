from typing import Optional

from fastapi import Header, HTTPException

from stockroom.errors import InventoryError, ScopeViolationError
from stockroom.scope import CallerScope


def get_caller_scope(
    x_actor_id: Optional[int] = Header(default=None),
    x_organization_id: Optional[int] = Header(default=None),
    x_super_admin: bool = Header(default=False),
) -> CallerScope:
    """Build the caller scope from request headers; tests override this dependency."""
    return CallerScope(
        actor_id=x_actor_id,
        organization_id=x_organization_id,
        is_super_admin=x_super_admin,
    )


def http_error(exc: InventoryError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())


def organization_filter(scope: CallerScope) -> Optional[int]:
    """Organization to filter list queries by; None lets a super admin see everything."""
    if scope.is_super_admin:
        return scope.organization_id
    if scope.organization_id is None:
        raise http_error(ScopeViolationError("Organization context is required.", actor_id=scope.actor_id))
    return scope.organization_id
