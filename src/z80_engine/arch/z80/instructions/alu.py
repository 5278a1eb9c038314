"""
Z80 算術・論理演算命令の実装。
"""
from z80_engine.arch.z80 import alu
from z80_engine.common.numbers import dec_word, inc_word
from .base import get_p, get_y, get_z, operand_address, read_operand, write_operand

# @intent:responsibility ADD/ADC/SUB/SBC/AND/XOR/OR/CP A,r および A,(HL) を実行します。
def execute_alu_r(executor, opcode: int) -> int:
    src = get_z(opcode)
    address = operand_address(executor, src)
    executor.fetch_finished()
    alu.alu8(executor.regs, get_y(opcode), read_operand(executor, src, address))
    return 4 if address is None else 7

# @intent:responsibility ADD/ADC/SUB/SBC/AND/XOR/OR/CP A,n を実行します。
def execute_alu_n(executor, opcode: int) -> int:
    n = executor.fetch_byte()
    executor.fetch_finished()
    alu.alu8(executor.regs, get_y(opcode), n)
    return 7

# @intent:responsibility INC r / DEC r / INC (HL) / DEC (HL) を実行します。
def execute_inc_dec8(executor, opcode: int) -> int:
    code = get_y(opcode)
    is_inc = (opcode & 1) == 0
    address = operand_address(executor, code)
    executor.fetch_finished()
    value = read_operand(executor, code, address)
    result = alu.inc8(executor.regs, value) if is_inc else alu.dec8(executor.regs, value)
    write_operand(executor, code, address, result)
    return 4 if address is None else 11

# @intent:responsibility INC ss / DEC ss を実行します。フラグは変化しません。
def execute_inc_dec16(executor, opcode: int) -> int:
    executor.fetch_finished()
    name = executor.ss_name(get_p(opcode))
    value = getattr(executor.regs, name)
    setattr(executor.regs, name, dec_word(value) if opcode & 0x08 else inc_word(value))
    return 6

def execute_add_hl_ss(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    name = executor.hl_name
    setattr(regs, name, alu.add16(regs, getattr(regs, name), getattr(regs, executor.ss_name(get_p(opcode)))))
    return 11

def execute_rotate_a(executor, opcode: int) -> int:
    """RLCA / RRCA / RLA / RRA"""
    executor.fetch_finished()
    alu.rotate_a(executor.regs, get_y(opcode))
    return 4

def execute_daa(executor, opcode: int) -> int:
    executor.fetch_finished()
    alu.daa(executor.regs)
    return 4

def execute_cpl(executor, opcode: int) -> int:
    executor.fetch_finished()
    alu.cpl(executor.regs)
    return 4

def execute_scf(executor, opcode: int) -> int:
    executor.fetch_finished()
    alu.scf(executor.regs)
    return 4

def execute_ccf(executor, opcode: int) -> int:
    executor.fetch_finished()
    alu.ccf(executor.regs)
    return 4

# --- ED prefixed ---

def execute_neg(executor, opcode: int) -> int:
    executor.fetch_finished()
    alu.neg(executor.regs)
    return 8

# @intent:responsibility ED 4A/5A/6A/7A: ADC HL,ss と ED 42/52/62/72: SBC HL,ss を実行します。
def execute_adc_sbc_hl_ss(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    value = getattr(regs, ("bc", "de", "hl", "sp")[get_p(opcode)])
    regs.hl = alu.adc_sbc16(regs, regs.hl, value, is_subtract=(opcode & 0x08) == 0)
    return 15

# @intent:responsibility ED 6F: RLD と ED 67: RRD を実行します。
def execute_rld_rrd(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    address = regs.hl
    new_a, new_memory = alu.rotate_digit(regs, executor.read_byte(address), is_left=opcode == 0x6F)
    executor.write_byte(address, new_memory)
    regs.a = new_a
    return 18
