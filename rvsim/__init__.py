"""Cycle-level RV32I processor simulator built from clocked hardware modules."""

__version__ = "0.1.0"

__all__ = ["alu", "cli", "control", "hardware", "memory", "pipeline"]