"""Instruction catalog and the text front end that validates lines against it."""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .errors import InstructionArgumentError, UnsupportedInstructionError

VARIADIC = -1

_ADDRESS = re.compile(r"^\s*(?:0x)?(?P<addr>[0-9a-f]+):\s*", re.IGNORECASE)
# CET prefixes in front of branches carry no semantics here
_IGNORED_PREFIXES = ("bnd", "notrack")


class Opcode(str, enum.Enum):
    ADD = "add"
    CALL = "call"
    JMP = "jmp"
    LEA = "lea"
    MOV = "mov"
    NOP = "nop"
    PUSH = "push"
    SUB = "sub"
    XOR = "xor"
    MOVQ = "movq"
    MOVAPS = "movaps"
    MOVHPS = "movhps"
    PUNPCKLQDQ = "punpcklqdq"


@dataclass(frozen=True)
class InstructionSpec:
    opcode: Opcode
    argc: int

    def fetch_args(self, operands: Sequence[str]) -> List[str]:
        args = [arg for arg in operands if arg]
        if self.argc != VARIADIC and len(args) != self.argc:
            raise InstructionArgumentError(
                f"Incorrect argument number in {self.opcode.value}, expect: {self.argc}, got: {len(args)}"
            )
        return args


INSTRUCTIONS = (
    InstructionSpec(Opcode.ADD, 2),
    InstructionSpec(Opcode.CALL, 1),
    InstructionSpec(Opcode.JMP, 1),
    InstructionSpec(Opcode.LEA, 2),
    InstructionSpec(Opcode.MOV, 2),
    InstructionSpec(Opcode.NOP, VARIADIC),
    InstructionSpec(Opcode.PUSH, 1),
    InstructionSpec(Opcode.SUB, 2),
    InstructionSpec(Opcode.XOR, 2),
    InstructionSpec(Opcode.MOVQ, 2),
    InstructionSpec(Opcode.MOVAPS, 2),
    InstructionSpec(Opcode.MOVHPS, 2),
    InstructionSpec(Opcode.PUNPCKLQDQ, 2),
)


@dataclass
class Instruction:
    spec: InstructionSpec
    operands: List[str] = field(default_factory=list)
    address: Optional[int] = None

    @property
    def opcode(self) -> Opcode:
        return self.spec.opcode

    def __str__(self):
        text = self.opcode.value
        if self.operands:
            text += f" {', '.join(self.operands)}"
        if self.address is None:
            return text
        return f"{self.address:#x}: {text}"


def find_spec(mnemonic: str, instructions: Sequence[InstructionSpec] = INSTRUCTIONS) -> Optional[InstructionSpec]:
    for spec in instructions:
        if spec.opcode.value == mnemonic:
            return spec
    return None


def split_operands(text: str) -> List[str]:
    """Split on commas that are outside ``[...]`` and ``<...>``."""
    operands = []
    depth = 0
    current = ""
    for char in text:
        if char in "[<":
            depth += 1
        elif char in "]>":
            depth -= 1
        if char == "," and depth == 0:
            operands.append(current.strip())
            current = ""
            continue
        current += char
    if current.strip():
        operands.append(current.strip())
    return operands


def parse_line(line: str, instructions: Sequence[InstructionSpec] = INSTRUCTIONS) -> Instruction:
    """
    Parse one line of disassembly

    Accepted forms:
    mov rax, qword ptr [rsp + 0x8]
    0x42394c: mov r15, r10
    4f2c5:	48 8d 3d 4e 9f 16 00 	lea    rdi,[rip+0x169f4e]        # 1b9214

    Returns:
        Instruction: the matched catalog entry with its operands
    """
    text = line.split("#", 1)[0].split(";", 1)[0]
    address = None
    match = _ADDRESS.match(text)
    if match:
        address = int(match.group("addr"), 16)
        text = text[match.end():]
    if "\t" in text.strip():
        # objdump puts the raw bytes before the mnemonic
        text = text.strip().split("\t")[-1]
    text = text.strip()
    if not text:
        raise UnsupportedInstructionError(f"No instruction in {line!r}")

    parts = text.split(None, 1)
    while parts[0].lower() in _IGNORED_PREFIXES and len(parts) > 1:
        parts = parts[1].split(None, 1)
    mnemonic = parts[0].lower()
    spec = find_spec(mnemonic, instructions)
    if spec is None:
        raise UnsupportedInstructionError(f"Not implemented instruction in {line.strip()!r}")
    operands = split_operands(parts[1]) if len(parts) > 1 else []
    return Instruction(spec, spec.fetch_args(operands), address)


def read_trace_lines(filename) -> List[str]:
    """Non-empty, non-comment lines of a trace file."""
    lines = []
    with open(filename, "r") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            lines.append(line)
    return lines

