"""Services — settlement workflows composed from the leaf components.

Invariants:
    - Leaf components (InventoryLedger, DiscountValidator) flush but never commit
    - Workflows (SettlementCoordinator, RefundWorkflow, DiscountAdmin) own their transactions
"""
