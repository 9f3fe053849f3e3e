"""Decode gadget candidates out of x86 ELF shared libraries."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from capstone import CS_ARCH_X86, CS_MODE_32, CS_MODE_64, Cs
from elftools.elf.elffile import ELFFile
from elftools.elf.sections import SymbolTableSection

from .calls import TERMINAL_CALLS
from .errors import UnsupportedArchitectureError
from .symbolic import is_integer, parse_integer

LOGGER = logging.getLogger(__name__)

# ELF flag for executable section contents
SHF_EXECINSTR = 0x4

MACHINE_BITS = {"EM_X86_64": 64, "EM_386": 32}

# Bytes read past the offset; gadgets are a handful of instructions.
DEFAULT_WINDOW = 0x100


@dataclass
class GadgetCode:
    path: str
    offset: int
    bits: int
    lines: List[str] = field(default_factory=list)

    @property
    def arch(self) -> str:
        return "amd64" if self.bits == 64 else "i386"


def detect_bits(elf: ELFFile) -> int:
    machine = elf.header["e_machine"]
    if machine not in MACHINE_BITS:
        raise UnsupportedArchitectureError(f"Unsupported architecture: {machine}")
    return MACHINE_BITS[machine]


def load_symbols(elf: ELFFile) -> Dict[int, str]:
    """Map function addresses to names from ``.dynsym`` and ``.symtab``."""
    symbols: Dict[int, str] = {}
    for section in elf.iter_sections():
        if not isinstance(section, SymbolTableSection):
            continue
        for symbol in section.iter_symbols():
            if symbol["st_info"]["type"] != "STT_FUNC" or not symbol.name:
                continue
            addr = symbol["st_value"]
            if addr:
                symbols.setdefault(addr, symbol.name)
    return symbols


def disassemble(
    code: bytes,
    address: int,
    bits: int,
    symbols: Optional[Dict[int, str]] = None,
    max_instructions: Optional[int] = None,
) -> List[str]:
    """
    Decode ``code`` into Intel-syntax lines

    Stops after a terminal call, a ``ret``, or ``max_instructions``. Direct
    calls to known symbols are annotated as ``call 0xe4e30 <execve>``.
    """
    symbols = symbols or {}
    cs = Cs(CS_ARCH_X86, CS_MODE_64 if bits == 64 else CS_MODE_32)
    lines: List[str] = []
    for insn in cs.disasm(code, address):
        text = f"{insn.mnemonic} {insn.op_str}".strip()
        if insn.mnemonic == "call" and is_integer(insn.op_str):
            name = symbols.get(parse_integer(insn.op_str))
            if name:
                text = f"call {insn.op_str} <{name}>"
        lines.append(text)
        if insn.mnemonic == "ret":
            break
        if insn.mnemonic == "call" and any(name in text for name in TERMINAL_CALLS):
            break
        if max_instructions is not None and len(lines) >= max_instructions:
            break
    LOGGER.debug("decoded %d instructions at %#x", len(lines), address)
    return lines


def read_gadget(
    path,
    offset: int,
    max_instructions: Optional[int] = None,
    window: int = DEFAULT_WINDOW,
) -> GadgetCode:
    """Decode the instructions found at file ``offset`` of an ELF library."""
    path = Path(path)
    with path.open("rb") as f:
        elf = ELFFile(f)
        bits = detect_bits(elf)
        symbols = load_symbols(elf)
        for section in elf.iter_sections():
            if not (section["sh_flags"] & SHF_EXECINSTR):
                continue
            start = section["sh_offset"]
            if not start <= offset < start + section["sh_size"]:
                continue
            rel = offset - start
            code = section.data()[rel:rel + window]
            lines = disassemble(code, section["sh_addr"] + rel, bits, symbols, max_instructions)
            return GadgetCode(str(path), offset, bits, lines)
    raise ValueError(f"Offset {offset:#x} is not inside an executable section of {path}")
