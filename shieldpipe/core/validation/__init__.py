from .invariants import InvariantValidator

__all__ = ["InvariantValidator"]
