"""Domain layer: rich models and their invariants."""
