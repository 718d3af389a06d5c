"""Typed errors raised by the inventory core.

Every error carries a machine-readable ``code``, the HTTP status the API
layer should answer with, and the offending ids as attributes so callers
can react without parsing messages.
"""


class InventoryError(ValueError):
    code = "INVENTORY_ERROR"
    status_code = 400

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.details}


class ScopeViolationError(InventoryError):
    code = "SCOPE_VIOLATION"
    status_code = 403

    def __init__(self, message: str = "Resource is outside the caller's organization.", **details):
        super().__init__(message, **details)


class NotFoundError(InventoryError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} not found.", entity=entity, entity_id=entity_id)


class InsufficientStockError(InventoryError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(
        self,
        *,
        product_id: int,
        variant_id: int | None,
        location_id: int | None,
        requested: int,
        available: int,
        message: str = "Insufficient stock available.",
    ):
        self.product_id = product_id
        self.variant_id = variant_id
        self.location_id = location_id
        self.requested = requested
        self.available = available
        super().__init__(
            message,
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            requested=requested,
            available=available,
        )


class DuplicateBatchNumberError(InventoryError):
    code = "DUPLICATE_BATCH_NUMBER"
    status_code = 409

    def __init__(self, product_id: int, batch_number: str):
        self.product_id = product_id
        self.batch_number = batch_number
        super().__init__(
            f"Batch number {batch_number} already exists for this product.",
            product_id=product_id,
            batch_number=batch_number,
        )


class DuplicateSerialNumberError(InventoryError):
    code = "DUPLICATE_SERIAL_NUMBER"
    status_code = 409

    def __init__(self, serial_numbers: list[str]):
        self.serial_numbers = serial_numbers
        super().__init__(
            f"Serial numbers already exist: {', '.join(serial_numbers)}",
            serial_numbers=serial_numbers,
        )


class InvalidDateRangeError(InventoryError):
    code = "INVALID_DATE_RANGE"
    status_code = 400

    def __init__(self, manufacturing_date, expiration_date):
        self.manufacturing_date = manufacturing_date
        self.expiration_date = expiration_date
        super().__init__(
            "Expiration date must be after manufacturing date.",
            manufacturing_date=str(manufacturing_date),
            expiration_date=str(expiration_date),
        )


class DeleteBlockedError(InventoryError):
    code = "DELETE_BLOCKED"
    status_code = 409


class InvalidQuantityError(InventoryError):
    code = "INVALID_QUANTITY"
    status_code = 400


class InvalidAdjustmentTypeError(InventoryError):
    code = "INVALID_ADJUSTMENT_TYPE"
    status_code = 400

    def __init__(self, adjustment_type: str):
        self.adjustment_type = adjustment_type
        super().__init__(f"Invalid adjustment type: {adjustment_type}", adjustment_type=adjustment_type)


class InvalidMovementTypeError(InventoryError):
    code = "INVALID_MOVEMENT_TYPE"
    status_code = 400
    kind = "movement"

    def __init__(self, movement_type: str):
        self.movement_type = movement_type
        super().__init__(f"Unknown {self.kind} type: {movement_type}", movement_type=movement_type)


class InvalidTransactionTypeError(InvalidMovementTypeError):
    code = "INVALID_TRANSACTION_TYPE"
    kind = "transaction"


class InvalidStateError(InventoryError):
    code = "INVALID_STATE"
    status_code = 409


class ConcurrentStockUpdateError(InventoryError):
    code = "CONCURRENT_UPDATE"
    status_code = 409


class LedgerImmutableError(InventoryError):
    code = "LEDGER_IMMUTABLE"
    status_code = 409

    def __init__(self, transaction_id: int | None, action: str):
        self.transaction_id = transaction_id
        super().__init__(
            f"Inventory transactions are append-only; cannot {action} transaction {transaction_id}.",
            transaction_id=transaction_id,
        )
