from enum import Enum


class MovementType(str, Enum):
    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    SALE = "sale"
    RETURN = "return"
    DAMAGE = "damage"
    EXPIRATION = "expiration"
    INITIAL = "initial"


class LedgerType(str, Enum):
    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"
    TRANSFER = "transfer"
    ADJUSTMENT_DAMAGE = "adjustment_damage"
    SALE = "sale"
    RETURN = "return"
    DAMAGE = "damage"
    EXPIRATION = "expiration"


class AvailabilityRule(str, Enum):
    # available = new on_hand - reserved
    RECONCILE = "reconcile"
    # available = current available - |delta|, on_hand moves independently
    DEDUCT_AVAILABLE = "deduct_available"


# Caller-facing type -> canonical ledger type.
LEDGER_TYPE_BY_MOVEMENT: dict[MovementType, LedgerType] = {
    MovementType.STOCK_IN: LedgerType.STOCK_IN,
    MovementType.STOCK_OUT: LedgerType.STOCK_OUT,
    MovementType.TRANSFER: LedgerType.TRANSFER,
    MovementType.ADJUSTMENT: LedgerType.ADJUSTMENT_DAMAGE,
    MovementType.SALE: LedgerType.SALE,
    MovementType.RETURN: LedgerType.RETURN,
    MovementType.DAMAGE: LedgerType.DAMAGE,
    MovementType.EXPIRATION: LedgerType.EXPIRATION,
    MovementType.INITIAL: LedgerType.STOCK_IN,
}

# Caller-facing type -> type stored on movement records.
MOVEMENT_RECORD_TYPE: dict[MovementType, MovementType] = {
    movement_type: (MovementType.STOCK_IN if movement_type is MovementType.INITIAL else movement_type)
    for movement_type in MovementType
}

AVAILABILITY_RULE_BY_MOVEMENT: dict[MovementType, AvailabilityRule] = {
    MovementType.STOCK_IN: AvailabilityRule.RECONCILE,
    MovementType.STOCK_OUT: AvailabilityRule.RECONCILE,
    MovementType.TRANSFER: AvailabilityRule.RECONCILE,
    MovementType.ADJUSTMENT: AvailabilityRule.RECONCILE,
    MovementType.SALE: AvailabilityRule.DEDUCT_AVAILABLE,
    MovementType.RETURN: AvailabilityRule.RECONCILE,
    MovementType.DAMAGE: AvailabilityRule.RECONCILE,
    MovementType.EXPIRATION: AvailabilityRule.RECONCILE,
    MovementType.INITIAL: AvailabilityRule.RECONCILE,
}

MOVEMENT_TYPES: list[str] = [movement_type.value for movement_type in MovementType]
LEDGER_TYPES: list[str] = [ledger_type.value for ledger_type in LedgerType]

RESERVED_FOR_TYPES: list[str] = ["order", "transfer", "adjustment"]
RESERVATION_STATUSES: list[str] = ["active", "consumed", "expired"]

SERIAL_STATUSES: list[str] = ["in_stock", "reserved", "sold", "returned", "damaged", "expired", "in_transit"]

ADJUSTMENT_TYPES: list[str] = [
    "damage",
    "loss",
    "theft",
    "expiration",
    "count_variance",
    "manual_correction",
]
