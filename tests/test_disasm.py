import platform
import sys
import types

import pytest
from elftools.elf.elffile import ELFFile

from gadget_modeling import get_emulator
from gadget_modeling.disasm import detect_bits, disassemble, load_symbols, read_gadget
from gadget_modeling.errors import UnsupportedArchitectureError
from gadget_modeling.symbolic import SymbolicValue

ON_X86_64_LINUX = sys.platform.startswith("linux") and platform.machine() == "x86_64"


def test_disassemble_annotates_terminal_call():
    code = b"\x48\x31\xc0" + b"\xe8\xf8\x0f\x00\x00" + b"\xc3"
    lines = disassemble(code, 0x1000, 64, symbols={0x2000: "execve"})
    assert lines == ["xor rax, rax", "call 0x2000 <execve>"]


def test_disassemble_stops_at_ret():
    assert disassemble(b"\x31\xc0\xc3\x90", 0x8048000, 32) == ["xor eax, eax", "ret"]


def test_disassemble_bound():
    assert disassemble(b"\x90" * 10, 0, 64, max_instructions=4) == ["nop"] * 4


def test_decoded_gadget_runs():
    code = (
        b"\x48\x8d\x3d\x10\x00\x00\x00"  # lea rdi, [rip + 0x10]
        b"\x48\x89\x44\x24\x08"  # mov qword ptr [rsp + 8], rax
        b"\x31\xf6"  # xor esi, esi
        b"\xe8\xed\x0f\x00\x00"  # call 0x2000
    )
    lines = disassemble(code, 0x1000, 64, symbols={0x2000: "execve"})
    assert lines[0] == "lea rdi, [rip + 0x10]"

    emulator = get_emulator("amd64")
    result = emulator.run(lines)
    assert result.ok
    assert result.target == "0x2000 <execve>"
    assert emulator.registers["rdi"] == SymbolicValue("rip", 0x10)
    assert emulator.registers["rsi"] == 0
    assert emulator.stack[8] == SymbolicValue("rax")


def test_detect_bits_rejects_other_machines():
    with pytest.raises(UnsupportedArchitectureError):
        detect_bits(types.SimpleNamespace(header={"e_machine": "EM_ARM"}))


@pytest.mark.skipif(not ON_X86_64_LINUX, reason="needs an x86-64 ELF interpreter binary")
def test_read_gadget_from_elf():
    with open(sys.executable, "rb") as f:
        elf = ELFFile(f)
        assert detect_bits(elf) == 64
        assert isinstance(load_symbols(elf), dict)
        text = elf.get_section_by_name(".text")
        if text is None:
            pytest.skip("interpreter has no .text section")
        offset = text["sh_offset"]

    gadget = read_gadget(sys.executable, offset, max_instructions=5)
    assert gadget.arch == "amd64"
    assert 0 < len(gadget.lines) <= 5


@pytest.mark.skipif(not ON_X86_64_LINUX, reason="needs an x86-64 ELF interpreter binary")
def test_read_gadget_outside_code():
    with pytest.raises(ValueError):
        read_gadget(sys.executable, 0)
