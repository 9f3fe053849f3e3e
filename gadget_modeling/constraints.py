"""Preconditions collected while emulating a gadget, and their satisfiability check."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

import z3

from .symbolic import SymbolicValue, Value, to_z3

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawConstraint:
    """A boolean relation over the entry state, e.g. stack alignment."""

    relation: str
    expr: Optional[z3.BoolRef] = field(default=None, compare=False)

    def __str__(self):
        return self.relation


@dataclass(frozen=True)
class WritableConstraint:
    """The gadget writes through ``address``, so it must point to writable memory."""

    address: Value
    bits: int = field(default=64, compare=False)

    @property
    def expr(self) -> z3.BoolRef:
        # NULL is never mapped
        return to_z3(self.address, self.bits) != 0

    def __str__(self):
        return f"writable: {self.address}"


Constraint = Union[RawConstraint, WritableConstraint]


def alignment_constraint(sp: str, bits: int, offset: int) -> RawConstraint:
    """``sp + offset`` must be 16-byte aligned, expressed on the entry stack pointer."""
    value = (0x10 - offset) & 0xF
    expr = to_z3(SymbolicValue(sp), bits) & 0xF == value
    return RawConstraint(f"{sp} & 0xf == {value}", expr)


class ConstraintSolver:
    def __init__(self):
        self.solver = z3.Solver()

    def reset(self):
        """Reset the solver state"""
        self.solver.reset()

    def add(self, constraint: Constraint):
        """Add a constraint to the solver, skipping relations z3 cannot express"""
        expr = constraint.expr
        if expr is not None:
            self.solver.add(expr)

    def check_sat(self, constraints: Iterable[Constraint]) -> bool:
        """
        Check if constraints are satisfiable

        Args:
            constraints: Constraints collected by an emulator run

        Returns:
            bool: True if satisfiable, False otherwise
        """
        self.reset()
        for constraint in constraints:
            self.add(constraint)
        result = self.solver.check()
        LOGGER.debug("constraint check: %s", result)
        return result == z3.sat

    def get_model(self):
        """Get model if constraints are satisfiable"""
        if self.solver.check() == z3.sat:
            return self.solver.model()
        return None
