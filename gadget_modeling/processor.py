"""
Register and stack container shared by the x86 emulators
"""
from __future__ import annotations

import abc
import enum
import logging
import re
from typing import Callable, Dict, Iterable, List

from .constraints import Constraint
from .errors import InstructionArgumentError
from .symbolic import SymbolicValue, Value

LOGGER = logging.getLogger(__name__)

_VECTOR = re.compile(r"^xmm\d+$")


class RegisterClass(enum.Enum):
    GENERAL = "general"
    STACK_POINTER = "stack-pointer"
    PROGRAM_COUNTER = "program-counter"
    VECTOR = "vector"


class RegisterSet(dict):
    """Name-keyed register values; unwritten registers materialize on first read."""

    def __init__(self, names: Iterable[str], materialize: Callable[[str], object]):
        super().__init__()
        self.names = frozenset(names)
        self._materialize = materialize

    def __missing__(self, name):
        value = self._materialize(name)
        self[name] = value
        return value

    def __contains__(self, name):
        return name in self.names or dict.__contains__(self, name)


class Stack(dict):
    """Address-keyed stack cells, addresses relative to the initial stack pointer."""

    def __init__(self, sp: str):
        super().__init__()
        self.sp = sp

    def __missing__(self, address: int):
        # Unwritten cells hold whatever was on the stack at gadget entry.
        return (SymbolicValue(self.sp) + address).deref()


class Processor(abc.ABC):
    """
    Symbolic machine state of one candidate evaluation

    Subclasses set ``bits`` and the calling convention through ``argument``.
    """

    bits = 64

    def __init__(self, registers: Iterable[str], sp: str, pc: str):
        self.sp = sp
        self.pc = pc
        self.registers = RegisterSet(registers, self.to_lambda)
        self.stack = Stack(sp)
        self.constraints: List[Constraint] = []
        # The stack pointer at gadget entry is the origin of every stack address.
        self.eval_dict: Dict[str, int] = {sp: 0}

    @property
    def size_t(self) -> int:
        return self.bits // 8

    def register(self, name: str) -> bool:
        return name in self.registers.names

    def classify(self, name: str):
        """Return the ``RegisterClass`` of ``name``, ``None`` if it is not a register."""
        if not self.register(name):
            return None
        if name == self.sp:
            return RegisterClass.STACK_POINTER
        if name == self.pc:
            return RegisterClass.PROGRAM_COUNTER
        if _VECTOR.match(name):
            return RegisterClass.VECTOR
        return RegisterClass.GENERAL

    def check_register(self, name: str) -> None:
        if not self.register(name):
            raise InstructionArgumentError(f"{name} is not a valid register")

    def to_lambda(self, reg: str):
        return SymbolicValue(reg)

    def arg_to_lambda(self, arg: str):
        """Value of an operand under the current register state."""
        arg = arg.strip()
        if self.register(arg):
            return self.registers[arg]
        return SymbolicValue.parse(arg, self.registers)

    @abc.abstractmethod
    def argument(self, idx: int) -> Value:
        """Value of the ``idx``-th call argument under the calling convention."""

    def global_var(self, value: Value) -> bool:
        """Whether ``value`` is a pc-relative address such as ``rip+0x3c1d50``."""
        return isinstance(value, SymbolicValue) and value.deref_count == 0 and value.obj == self.pc

    def zero(self, value: Value) -> bool:
        return isinstance(value, int) and value == 0

    def check_argument(self, idx: int, check: Callable[[Value], bool]) -> bool:
        value = self.argument(idx)
        result = check(value)
        LOGGER.debug("argument %d = %s, %s: %s", idx, value, check.__name__, result)
        return result

    def get_state_str(self) -> str:
        """Get a string representation of the current state"""
        result = "Registers:\n"
        for reg in sorted(dict.keys(self.registers)):
            value = self.registers[reg]
            if isinstance(value, list):
                value = ", ".join(str(lane) for lane in value)
            result += f"  {reg}: {value}\n"

        if self.stack:
            result += "\nStack:\n"
            for addr in sorted(self.stack):
                result += f"  [{self.sp}{addr:+#x}]: {self.stack[addr]}\n"

        if self.constraints:
            result += "\nConstraints:\n"
            for constraint in self.constraints:
                result += f"  {constraint}\n"
        return result
