"""Exception hierarchy for the gadget emulator."""
from __future__ import annotations


class GadgetModelingError(Exception):
    """Base class of every error raised while modeling a gadget."""


class UnsupportedInstructionError(GadgetModelingError):
    """Raised when an opcode or operand shape is not modeled."""


class UnsupportedInstructionArgumentError(UnsupportedInstructionError):
    """Raised when an operand is recognised but its form is not handled."""


class InstructionArgumentError(UnsupportedInstructionError):
    """Raised when operands do not fit the instruction (count, register expected)."""


class CorruptedStateError(GadgetModelingError):
    """Raised when the symbolic state breaks a runtime invariant."""


class EvaluationError(CorruptedStateError):
    """Raised when a value that must be concrete cannot be evaluated."""


class UnsupportedArchitectureError(GadgetModelingError):
    """Raised when the binary architecture is not currently supported."""
