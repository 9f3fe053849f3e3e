import pytest

from gadget_modeling.constraints import RawConstraint
from gadget_modeling.errors import UnsupportedInstructionError
from gadget_modeling.symbolic import SymbolicValue


def test_vector_register_materializes_lanes(amd64, i386):
    assert amd64.registers["xmm0"] == [SymbolicValue("(u64)xmm0"), SymbolicValue("(u64)(xmm0 >> 64)")]
    assert [str(lane) for lane in i386.registers["xmm1"]] == [
        "(u32)xmm1",
        "(u32)(xmm1 >> 32)",
        "(u32)(xmm1 >> 64)",
        "(u32)(xmm1 >> 96)",
    ]
    assert amd64.registers["xmm0"] is amd64.registers["xmm0"]


def test_movaps_amd64_writes_two_cells(amd64):
    assert amd64.process_line("movaps xmmword ptr [rsp + 0x10], xmm0").ok
    assert len(amd64.constraints) == 1
    assert isinstance(amd64.constraints[0], RawConstraint)
    assert str(amd64.constraints[0]) == "rsp & 0xf == 0"
    assert sorted(amd64.stack) == [0x10, 0x18]
    assert amd64.stack[0x18] == SymbolicValue("(u64)(xmm0 >> 64)")


def test_movaps_i386_writes_four_cells(i386):
    assert i386.process_line("movaps [esp+0x10], xmm0").ok
    assert [str(c) for c in i386.constraints] == ["esp & 0xf == 0"]
    assert sorted(i386.stack) == [0x10, 0x14, 0x18, 0x1C]


def test_movaps_alignment_follows_stack_pointer(amd64):
    amd64.process_line("push rbx")
    amd64.process_line("movaps [rsp+0x10], xmm1")
    assert str(amd64.constraints[0]) == "rsp & 0xf == 8"


def test_movaps_other_shapes_unsupported(amd64):
    with pytest.raises(UnsupportedInstructionError, match="movaps"):
        amd64.process_line("movaps xmm0, xmm1")
    with pytest.raises(UnsupportedInstructionError):
        amd64.process_line("movaps [rax], xmm1")


def test_movq_from_general_register(amd64):
    amd64.process_line("movq xmm0, rax")
    assert amd64.registers["xmm0"] == [SymbolicValue("rax"), SymbolicValue("(u64)(xmm0 >> 64)")]


def test_movq_from_stack_fills_low_half(amd64, i386):
    amd64.process_line("movq xmm1, qword ptr [rsp + 0x20]")
    assert amd64.registers["xmm1"][0] == SymbolicValue("rsp", 0x20, 1)

    i386.process_line("movq xmm1, qword ptr [esp + 0x20]")
    lanes = [str(lane) for lane in i386.registers["xmm1"]]
    assert lanes == ["[esp+0x20]", "[esp+0x24]", "(u32)(xmm1 >> 64)", "(u32)(xmm1 >> 96)"]


def test_movq_general_register_needs_64_bit_target(i386):
    with pytest.raises(UnsupportedInstructionError):
        i386.process_line("movq xmm0, eax")


def test_movhps_fills_upper_half(amd64, i386):
    amd64.process_line("mov qword ptr [rsp+0x8], rdi")
    amd64.process_line("movhps xmm0, qword ptr [rsp + 8]")
    assert amd64.registers["xmm0"][1] == SymbolicValue("rdi")

    i386.process_line("movhps xmm0, [esp+0x8]")
    lanes = [str(lane) for lane in i386.registers["xmm0"]]
    assert lanes == ["(u32)xmm0", "(u32)(xmm0 >> 32)", "[esp+0x8]", "[esp+0xc]"]


def test_movhps_requires_stack_source(amd64):
    with pytest.raises(UnsupportedInstructionError):
        amd64.process_line("movhps xmm0, [rax]")


def test_punpcklqdq_copies_low_half_to_upper_half(amd64, i386):
    amd64.process_line("movq xmm1, rsi")
    amd64.process_line("punpcklqdq xmm0, xmm1")
    assert amd64.registers["xmm0"][1] == SymbolicValue("rsi")

    i386.process_line("punpcklqdq xmm0, xmm1")
    lanes = [str(lane) for lane in i386.registers["xmm0"]]
    assert lanes == ["(u32)xmm0", "(u32)(xmm0 >> 32)", "(u32)xmm1", "(u32)(xmm1 >> 32)"]


def test_punpcklqdq_requires_vector_registers(amd64):
    with pytest.raises(UnsupportedInstructionError):
        amd64.process_line("punpcklqdq xmm0, [rsp]")


def test_execve_argv_built_with_simd(amd64):
    lines = [
        "lea rax, [rip+0x15ab2e]",
        "movq xmm0, rax",
        "lea rdi, [rip+0x15ab2e]",
        "movhps xmm0, qword ptr [rsp + 8]",
        "movaps xmmword ptr [rsp + 0x40], xmm0",
        "lea rsi, [rsp + 0x40]",
        "call 0xe4e30 <execve>",
    ]
    result = amd64.run(lines)
    assert result.ok
    assert result.target == "0xe4e30 <execve>"
    assert amd64.stack[0x40] == SymbolicValue("rip", 0x15AB2E)
    assert amd64.stack[0x48] == SymbolicValue("rsp", 8, 1)
