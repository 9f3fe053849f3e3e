import z3

from gadget_modeling.constraints import ConstraintSolver, WritableConstraint, alignment_constraint
from gadget_modeling.symbolic import SymbolicValue


def test_alignment_constraint_text():
    assert str(alignment_constraint("rsp", 64, 0x10)) == "rsp & 0xf == 0"
    assert str(alignment_constraint("rsp", 64, 0x38)) == "rsp & 0xf == 8"
    assert str(alignment_constraint("esp", 32, -4)) == "esp & 0xf == 4"


def test_solver_finds_aligned_stack_pointer():
    solver = ConstraintSolver()
    constraint = alignment_constraint("rsp", 64, 0x38)
    assert solver.check_sat([constraint, WritableConstraint(SymbolicValue("rax"))])
    model = solver.get_model()
    assert (model.eval(z3.BitVec("rsp", 64)).as_long() + 0x38) % 16 == 0


def test_solver_detects_conflict():
    solver = ConstraintSolver()
    constraints = [alignment_constraint("rsp", 64, 0), alignment_constraint("rsp", 64, 8)]
    assert not solver.check_sat(constraints)
    assert solver.get_model() is None


def test_writable_constraint_text():
    assert str(WritableConstraint(SymbolicValue("rax", 8))) == "writable: rax+0x8"


def test_writable_address_cannot_be_null():
    solver = ConstraintSolver()
    assert not solver.check_sat([WritableConstraint(SymbolicValue(None, 0))])
    assert solver.check_sat([WritableConstraint(SymbolicValue("rax", 8, 1))])
