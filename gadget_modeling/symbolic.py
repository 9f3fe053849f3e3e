"""
Symbolic values for the gadget emulator.

A value is a plain ``int`` when it is concrete, otherwise a ``SymbolicValue``:
an expression ``[...[base + displacement]...]`` with a counted number of
pending dereferences.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Dict, Mapping, Optional, Union

import z3

from .errors import EvaluationError, InstructionArgumentError, UnsupportedInstructionArgumentError

_INTEGER = re.compile(r"^-?(?:0x[0-9a-f]+|\d+)$", re.IGNORECASE)
_SIZE_PREFIX = re.compile(r"^(?:byte|word|dword|qword|tbyte|xmmword|ymmword|oword)\s+ptr\s+", re.IGNORECASE)
_MEMORY = re.compile(
    r"^\[\s*(?P<base>[a-z_][\w]*|-?0x[0-9a-f]+|\d+)\s*(?:(?P<sign>[+-])\s*(?P<disp>0x[0-9a-f]+|\d+))?\s*\]$",
    re.IGNORECASE,
)
_NAME = re.compile(r"^[a-z_][\w]*$", re.IGNORECASE)


def is_integer(text: str) -> bool:
    return bool(_INTEGER.match(text.strip()))


def parse_integer(text: str) -> int:
    return int(text.strip(), 0)


def hex_str(value: int, psign: bool = False) -> str:
    """Format ``value`` as hex, optionally with an explicit ``+`` sign."""
    if value < 0:
        return f"-{-value:#x}"
    return f"+{value:#x}" if psign else f"{value:#x}"


@dataclass(frozen=True)
class SymbolicValue:
    obj: Union[str, "SymbolicValue", None]
    immi: int = 0
    deref_count: int = 0

    def __add__(self, other):
        if not isinstance(other, int) or isinstance(other, bool):
            raise UnsupportedInstructionArgumentError(f"Expect other ({other}) to be an integer")
        if self.deref_count > 0:
            # The displacement applies to the loaded value, not the address.
            return SymbolicValue(self, other)
        return replace(self, immi=self.immi + other)

    def __sub__(self, other):
        if not isinstance(other, int) or isinstance(other, bool):
            raise UnsupportedInstructionArgumentError(f"Expect other ({other}) to be an integer")
        return self + (-other)

    def deref(self) -> "SymbolicValue":
        return replace(self, deref_count=self.deref_count + 1)

    def ref(self) -> "SymbolicValue":
        if self.deref_count <= 0:
            raise InstructionArgumentError(f"Cannot reference {self} anymore")
        return replace(self, deref_count=self.deref_count - 1)

    def evaluate(self, context: Mapping[str, int]) -> int:
        if self.deref_count > 0:
            raise EvaluationError(f"Can't evaluate {self}: pending dereference")
        if self.obj is None:
            return self.immi
        if isinstance(self.obj, SymbolicValue):
            return self.obj.evaluate(context) + self.immi
        if self.obj not in context:
            raise EvaluationError(f"Can't evaluate {self}: {self.obj} is unknown")
        return context[self.obj] + self.immi

    def to_z3(self, bits: int, memory=None):
        """Render as a z3 bit-vector term; loads read from the ``mem`` array."""
        if memory is None:
            memory = z3.Array("mem", z3.BitVecSort(bits), z3.BitVecSort(bits))
        if self.obj is None:
            term = z3.BitVecVal(0, bits)
        elif isinstance(self.obj, SymbolicValue):
            term = self.obj.to_z3(bits, memory)
        else:
            term = z3.BitVec(self.obj, bits)
        if self.immi:
            term = term + z3.BitVecVal(self.immi, bits)
        for _ in range(self.deref_count):
            term = z3.Select(memory, term)
        return term

    def __str__(self):
        if self.obj is None:
            inner = hex_str(self.immi)
        else:
            inner = str(self.obj)
            if self.immi:
                inner += hex_str(self.immi, psign=True)
        return "[" * self.deref_count + inner + "]" * self.deref_count

    @classmethod
    def parse(cls, argument: str, predefined: Optional[Mapping[str, object]] = None):
        """
        Parse an operand into a value.

        Args:
            argument: Operand text such as ``rax``, ``0x10`` or ``qword ptr [rsp+0x8]``
            predefined: Current values of named symbols (usually the registers)

        Returns:
            ``int`` for immediates, a ``SymbolicValue`` otherwise
        """
        predefined = {} if predefined is None else predefined
        arg = _SIZE_PREFIX.sub("", argument.strip())
        if is_integer(arg):
            return parse_integer(arg)

        if arg.startswith("["):
            match = _MEMORY.match(arg)
            if match is None:
                raise UnsupportedInstructionArgumentError(f"Unsupported memory operand: {argument}")
            base = match.group("base")
            if is_integer(base):
                value = parse_integer(base)
            else:
                value = _lookup(base, predefined)
            disp = parse_integer(match.group("disp")) if match.group("disp") else 0
            if match.group("sign") == "-":
                disp = -disp
            if isinstance(value, int):
                return SymbolicValue(None, value + disp).deref()
            if not isinstance(value, SymbolicValue):
                raise UnsupportedInstructionArgumentError(f"Can't address memory through {base}")
            return (value + disp).deref()

        if _NAME.match(arg):
            return _lookup(arg, predefined)
        raise UnsupportedInstructionArgumentError(f"Unsupported operand: {argument}")


Value = Union[int, SymbolicValue]


def memory_base(argument: str) -> Optional[str]:
    """Base of a memory operand such as ``qword ptr [rsp+0x8]``, ``None`` otherwise."""
    match = _MEMORY.match(_SIZE_PREFIX.sub("", argument.strip()))
    if match is None:
        return None
    return match.group("base")


def _lookup(name: str, predefined: Mapping[str, object]):
    if name in predefined:
        return predefined[name]
    return SymbolicValue(name)


def evaluate(value: Value, context: Dict[str, int]) -> int:
    """Evaluate a concrete or symbolic value against ``context``."""
    if isinstance(value, int):
        return value
    if isinstance(value, SymbolicValue):
        return value.evaluate(context)
    raise EvaluationError(f"Can't evaluate {value!r}")


def to_z3(value: Value, bits: int, memory=None):
    if isinstance(value, int):
        return z3.BitVecVal(value, bits)
    return value.to_z3(bits, memory)
