"""Domain layer: prospects, conversions and the reconciliation state machine."""
