"""amd64 and i386 emulators and the lookup by architecture name."""
from __future__ import annotations

from typing import Dict, Type

from .errors import UnsupportedArchitectureError
from .symbolic import SymbolicValue, evaluate
from .x86 import X86

# 32-bit registers and the 64-bit register they are the low half of
REG32_PARENT = {
    "eax": "rax", "ebx": "rbx", "ecx": "rcx", "edx": "rdx",
    "esi": "rsi", "edi": "rdi", "ebp": "rbp", "esp": "rsp",
    "r8d": "r8", "r9d": "r9", "r10d": "r10", "r11d": "r11",
    "r12d": "r12", "r13d": "r13", "r14d": "r14", "r15d": "r15",
}


class Amd64(X86):
    bits = 64
    aliases = REG32_PARENT

    # System V calling convention
    ARGUMENT_REGISTERS = ("rdi", "rsi", "rdx", "rcx", "r8", "r9")

    def __init__(self):
        super().__init__(self.registers_list(), "rsp", "rip")

    @staticmethod
    def registers_list():
        return (
            ["rax", "rbx", "rcx", "rdx", "rdi", "rsi", "rbp", "rsp", "rip"]
            + [f"r{i}" for i in range(8, 16)]
            + list(REG32_PARENT)
            + [f"xmm{i}" for i in range(16)]
        )

    def argument(self, idx):
        return self.registers[self.ARGUMENT_REGISTERS[idx]]


class I386(X86):
    bits = 32

    # PIC code keeps the GOT address in ebx and reaches globals relative to it
    GOT_BASE = "ebx"

    def __init__(self):
        super().__init__(self.registers_list(), "esp", "eip")

    @staticmethod
    def registers_list():
        return ["eax", "ebx", "ecx", "edx", "edi", "esi", "ebp", "esp", "eip"] + [f"xmm{i}" for i in range(8)]

    def argument(self, idx):
        # cdecl: arguments sit right above the stack pointer before the call pushes
        cur_top = evaluate(self.registers[self.sp], self.eval_dict)
        return self.stack[cur_top + idx * self.size_t]

    def global_var(self, value):
        """Whether ``value`` is an address relative to the GOT base, e.g. ``ebx-0x1234``."""
        return isinstance(value, SymbolicValue) and value.deref_count == 0 and value.obj == self.GOT_BASE


ARCHITECTURES: Dict[str, Type[X86]] = {
    "amd64": Amd64,
    "x86_64": Amd64,
    "i386": I386,
    "x86": I386,
}


def get_emulator(arch: str) -> X86:
    """Create a fresh emulator for one candidate evaluation."""
    try:
        emulator_cls = ARCHITECTURES[arch.lower()]
    except KeyError as exc:
        raise UnsupportedArchitectureError(f"Unsupported architecture: {arch}") from exc
    return emulator_cls()
