"""
Typed Exception Hierarchy for the Costbook Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers must be able to tell "try again" apart from "fix your input" and
from "something is broken, stop".  Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA as attributes (not just a message string)

Example:
    try:
        service.complete_sale(user_id, sale_id)
    except InsufficientStockError as e:
        notify(f"Only {e.available} of {e.requested} on hand")
    except ConflictError:
        retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CostbookError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- InvalidCostError
    |   +-- InvalidYieldError
    |   +-- NoRecipeLinkedError
    |   +-- InvalidSaleTransitionError
    |   +-- SaleLockedError
    |   +-- EntityInUseError
    |   +-- NotFoundError
    |       +-- MaterialNotFoundError
    |       +-- PurchaseEntryNotFoundError
    |       +-- PurchaseOrderNotFoundError
    |       +-- RecipeNotFoundError
    |       +-- ProductNotFoundError
    |       +-- BuildNotFoundError
    |       +-- SaleNotFoundError
    |
    +-- InsufficientStockError
    |
    +-- ConflictError
    |   +-- OptimisticLockError
    |   +-- LockConflictError
    |
    +-- IntegrityError
    |   +-- OrphanedJournalEntryError
    |   +-- BuildIntegrityError
    |   +-- SaleIntegrityError
    |
    +-- StorageUnavailableError
    |
    +-- OperationTimeoutError
    |
    +-- SubscriptionInactiveError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When Raised
--------------|--------------------------|-------------------------------------------
Validation    | INVALID_QUANTITY         | Quantity <= 0
              | INVALID_COST             | Cost < 0
              | INVALID_YIELD            | Recipe yield_quantity <= 0
              | NO_RECIPE_LINKED         | Product has no recipe to build from
              | INVALID_SALE_TRANSITION  | Sale status change not allowed
              | SALE_LOCKED              | Editing a non-Draft sale
              | ENTITY_IN_USE            | Deleting a referenced material/product
              | *_NOT_FOUND              | Entity missing or owned by another user
--------------|--------------------------|-------------------------------------------
Stock         | INSUFFICIENT_STOCK       | Operation would drive stock negative
--------------|--------------------------|-------------------------------------------
Concurrency   | OPTIMISTIC_LOCK_CONFLICT | Concurrent modification; retry whole op
              | LOCK_CONFLICT            | Deadlock or lock timeout; retry whole op
--------------|--------------------------|-------------------------------------------
Integrity     | ORPHANED_JOURNAL_ENTRY   | Entry points at a vanished order
              | BUILD_INTEGRITY          | Build snapshot cannot be replayed
              | SALE_INTEGRITY           | Completed sale item lost its product
--------------|--------------------------|-------------------------------------------
Storage       | STORAGE_UNAVAILABLE      | Database failure (cause is logged only)
              | OPERATION_TIMEOUT        | Caller-supplied timeout aborted the op
Access        | SUBSCRIPTION_INACTIVE    | Caller's subscription is not active

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Every validation error is raised BEFORE the first mutation of an
   operation, so a rejected call never leaves partial state behind.

2. IntegrityError is fatal and non-retryable.  It names this package's
   category, not sqlalchemy.exc.IntegrityError; modules that need both
   import the SQLAlchemy one under an alias.

3. ConflictError is the only category a caller should retry.
"""


class CostbookError(Exception):
    """
    Base exception for all costbook kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "COSTBOOK_ERROR"


# Validation errors


class ValidationError(CostbookError):
    """Base exception for rejected input.  Raised before any mutation."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """A quantity that must be strictly positive was not."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = str(value)
        super().__init__(f"{field} must be greater than zero, got {value}")


class InvalidCostError(ValidationError):
    """A cost was negative."""

    code: str = "INVALID_COST"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = str(value)
        super().__init__(f"{field} must not be negative, got {value}")


class InvalidYieldError(ValidationError):
    """Recipe yield quantity is not positive, so no per-unit scale exists."""

    code: str = "INVALID_YIELD"

    def __init__(self, recipe_id: str, yield_quantity: object):
        self.recipe_id = recipe_id
        self.yield_quantity = str(yield_quantity)
        super().__init__(
            f"Recipe {recipe_id} has non-positive yield quantity {yield_quantity}"
        )


class NoRecipeLinkedError(ValidationError):
    """Product cannot be built because it has no (existing) recipe."""

    code: str = "NO_RECIPE_LINKED"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} has no linked recipe")


class InvalidSaleTransitionError(ValidationError):
    """Sale status change is not an edge of the sale workflow."""

    code: str = "INVALID_SALE_TRANSITION"

    def __init__(self, sale_id: str, from_status: str, to_status: str):
        self.sale_id = sale_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Sale {sale_id} cannot move from {from_status} to {to_status}"
        )


class SaleLockedError(ValidationError):
    """Line items of a non-Draft sale cannot be edited or the sale deleted."""

    code: str = "SALE_LOCKED"

    def __init__(self, sale_id: str, status: str, action: str):
        self.sale_id = sale_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} sale {sale_id} while it is {status}")


class EntityInUseError(ValidationError):
    """Entity is still referenced and cannot be deleted."""

    code: str = "ENTITY_IN_USE"

    def __init__(self, entity_type: str, entity_id: str, referenced_by: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.referenced_by = referenced_by
        super().__init__(
            f"{entity_type} {entity_id} is still referenced by {referenced_by}"
        )


class NotFoundError(ValidationError):
    """Base exception for missing entities (or entities owned by someone else)."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class MaterialNotFoundError(NotFoundError):
    code: str = "MATERIAL_NOT_FOUND"
    entity_type: str = "Material"


class PurchaseEntryNotFoundError(NotFoundError):
    code: str = "PURCHASE_ENTRY_NOT_FOUND"
    entity_type: str = "Purchase entry"


class PurchaseOrderNotFoundError(NotFoundError):
    code: str = "PURCHASE_ORDER_NOT_FOUND"
    entity_type: str = "Purchase order"


class RecipeNotFoundError(NotFoundError):
    code: str = "RECIPE_NOT_FOUND"
    entity_type: str = "Recipe"


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type: str = "Product"


class BuildNotFoundError(NotFoundError):
    code: str = "BUILD_NOT_FOUND"
    entity_type: str = "Build"


class SaleNotFoundError(NotFoundError):
    code: str = "SALE_NOT_FOUND"
    entity_type: str = "Sale"


# Stock errors


class InsufficientStockError(CostbookError):
    """
    Operation would drive stock below zero.

    Raised for product stock on sale completion and build reversal, and for
    material stock when the negative-stock policy is ``reject``.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        requested: object,
        available: object,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.requested = str(requested)
        self.available = str(available)
        super().__init__(
            f"Insufficient stock for {entity_type} {entity_id}: "
            f"requested {requested}, available {available}"
        )


# Concurrency errors


class ConflictError(CostbookError):
    """Base exception for concurrency conflicts.  Retry the whole operation."""

    code: str = "CONFLICT"


class OptimisticLockError(ConflictError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class LockConflictError(ConflictError):
    """Row lock could not be acquired (deadlock victim or lock timeout)."""

    code: str = "LOCK_CONFLICT"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Lock conflict during {operation}; retry the operation")


# Integrity errors


class IntegrityError(CostbookError):
    """Base exception for fatal, non-retryable consistency violations."""

    code: str = "INTEGRITY_ERROR"


class OrphanedJournalEntryError(IntegrityError):
    """A purchase journal entry references a purchase order that is gone."""

    code: str = "ORPHANED_JOURNAL_ENTRY"

    def __init__(self, entry_id: str, purchase_id: str):
        self.entry_id = entry_id
        self.purchase_id = purchase_id
        super().__init__(
            f"Purchase entry {entry_id} references missing purchase order {purchase_id}"
        )


class BuildIntegrityError(IntegrityError):
    """A build's consumption snapshot cannot be replayed."""

    code: str = "BUILD_INTEGRITY"

    def __init__(self, build_id: str, reason: str):
        self.build_id = build_id
        self.reason = reason
        super().__init__(f"Build {build_id} cannot be reversed: {reason}")


class SaleIntegrityError(IntegrityError):
    """A sale's stock effect cannot be replayed."""

    code: str = "SALE_INTEGRITY"

    def __init__(self, sale_id: str, reason: str):
        self.sale_id = sale_id
        self.reason = reason
        super().__init__(f"Sale {sale_id} stock cannot be restored: {reason}")


# Infrastructure / access errors


class StorageUnavailableError(CostbookError):
    """The store failed; the cause is logged, never surfaced."""

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Storage unavailable during {operation}")


class OperationTimeoutError(CostbookError):
    """The caller-supplied timeout aborted the transaction.  Nothing persisted."""

    code: str = "OPERATION_TIMEOUT"

    def __init__(self, operation: str, timeout_ms: int | None):
        self.operation = operation
        self.timeout_ms = timeout_ms
        super().__init__(f"{operation} exceeded its timeout of {timeout_ms} ms")


class SubscriptionInactiveError(CostbookError):
    """Caller's subscription is not active."""

    code: str = "SUBSCRIPTION_INACTIVE"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Subscription inactive for user {user_id}")
