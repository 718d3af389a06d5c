from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from stockroom.errors import NotFoundError, ScopeViolationError
from stockroom.models import InventoryLocation, Product


@dataclass(frozen=True)
class CallerScope:
    actor_id: int | None = None
    organization_id: int | None = None
    is_super_admin: bool = False


SYSTEM_SCOPE = CallerScope(is_super_admin=True)


class ScopeResolver(Protocol):
    def owns_product(self, db: Session, scope: CallerScope, product_id: int) -> bool: ...

    def owns_location(self, db: Session, scope: CallerScope, location_id: int) -> bool: ...


class DatabaseScopeResolver:
    """Ownership checks against the organization columns of products and locations."""

    def owns_product(self, db: Session, scope: CallerScope, product_id: int) -> bool:
        organization_id = db.query(Product.organization_id).filter(Product.id == product_id).scalar()
        if organization_id is None:
            raise NotFoundError("Product", product_id)
        return organization_id == scope.organization_id

    def owns_location(self, db: Session, scope: CallerScope, location_id: int) -> bool:
        organization_id = (
            db.query(InventoryLocation.organization_id).filter(InventoryLocation.id == location_id).scalar()
        )
        if organization_id is None:
            raise NotFoundError("InventoryLocation", location_id)
        return organization_id == scope.organization_id


default_resolver = DatabaseScopeResolver()


def require_organization(scope: CallerScope) -> None:
    if not scope.is_super_admin and scope.organization_id is None:
        raise ScopeViolationError("Organization context is required.", actor_id=scope.actor_id)


def ensure_in_scope(
    db: Session,
    scope: CallerScope,
    *,
    product_id: int,
    location_ids: tuple[int, ...] = (),
    resolver: ScopeResolver | None = None,
) -> None:
    """Verify the product and every location belong to the caller's organization.

    Super-admin scopes skip ownership checks but still get not-found errors
    for ids that do not exist.
    """
    resolver = resolver or default_resolver
    require_organization(scope)
    if scope.is_super_admin:
        if db.get(Product, product_id) is None:
            raise NotFoundError("Product", product_id)
        for location_id in location_ids:
            if db.get(InventoryLocation, location_id) is None:
                raise NotFoundError("InventoryLocation", location_id)
        return

    if not resolver.owns_product(db, scope, product_id):
        raise ScopeViolationError(
            actor_id=scope.actor_id,
            organization_id=scope.organization_id,
            product_id=product_id,
        )
    for location_id in location_ids:
        if not resolver.owns_location(db, scope, location_id):
            raise ScopeViolationError(
                actor_id=scope.actor_id,
                organization_id=scope.organization_id,
                location_id=location_id,
            )
