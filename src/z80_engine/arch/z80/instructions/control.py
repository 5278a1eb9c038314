"""
Z80 制御命令（分岐、サブルーチン、ビット操作、I/O、システム制御）の実装。
"""
from z80_engine.arch.z80 import alu
from z80_engine.common.numbers import add_signed_byte
from .base import MEMORY_OPERAND, get_y, get_z, operand_address, read_operand, write_operand

# --- System control ---

def execute_nop(executor, opcode: int) -> int:
    executor.fetch_finished()
    return 4

# @intent:responsibility HALT を実行します。停止状態の管理はプロセッサが行います。
def execute_halt(executor, opcode: int) -> int:
    executor.fetch_finished(is_halt=True)
    return 4

def execute_di(executor, opcode: int) -> int:
    executor.fetch_finished(is_ei_or_di=True)
    executor.regs.iff1 = False
    executor.regs.iff2 = False
    return 4

def execute_ei(executor, opcode: int) -> int:
    executor.fetch_finished(is_ei_or_di=True)
    executor.regs.iff1 = True
    executor.regs.iff2 = True
    return 4

# @intent:responsibility ED 46/56/5E（およびミラー）: IM 0/1/2 を実行します。
def execute_im(executor, opcode: int) -> int:
    executor.fetch_finished()
    mode = (0, 0, 1, 2)[get_y(opcode) & 0b11]
    executor.processor_agent.set_interrupt_mode(mode)
    return 8

# --- Jumps ---

def execute_jp_nn(executor, opcode: int) -> int:
    nn = executor.fetch_word()
    executor.fetch_finished()
    executor.regs.pc = nn
    return 10

def execute_jp_cc_nn(executor, opcode: int) -> int:
    nn = executor.fetch_word()
    executor.fetch_finished()
    if executor.condition(get_y(opcode)):
        executor.regs.pc = nn
    return 10

def execute_jp_hl(executor, opcode: int) -> int:
    """JP (HL) / JP (IX) / JP (IY)"""
    executor.fetch_finished()
    regs = executor.regs
    regs.pc = getattr(regs, executor.hl_name)
    return 4

def execute_jr_e(executor, opcode: int) -> int:
    offset = executor.fetch_byte()
    executor.fetch_finished()
    regs = executor.regs
    regs.pc = add_signed_byte(regs.pc, offset)
    return 12

# @intent:responsibility JR NZ/Z/NC/C,e を実行します。条件は NZ, Z, NC, C の4種類のみです。
def execute_jr_cc_e(executor, opcode: int) -> int:
    offset = executor.fetch_byte()
    executor.fetch_finished()
    if not executor.condition(get_y(opcode) - 4):
        return 7
    regs = executor.regs
    regs.pc = add_signed_byte(regs.pc, offset)
    return 12

def execute_djnz(executor, opcode: int) -> int:
    offset = executor.fetch_byte()
    executor.fetch_finished()
    regs = executor.regs
    regs.b = (regs.b - 1) & 0xFF
    if regs.b == 0:
        return 8
    regs.pc = add_signed_byte(regs.pc, offset)
    return 13

# --- Subroutines ---

def execute_call_nn(executor, opcode: int) -> int:
    nn = executor.fetch_word()
    executor.fetch_finished()
    regs = executor.regs
    executor.push(regs.pc)
    regs.pc = nn
    return 17

def execute_call_cc_nn(executor, opcode: int) -> int:
    nn = executor.fetch_word()
    executor.fetch_finished()
    if not executor.condition(get_y(opcode)):
        return 10
    regs = executor.regs
    executor.push(regs.pc)
    regs.pc = nn
    return 17

def execute_ret(executor, opcode: int) -> int:
    executor.fetch_finished(is_ret=True)
    executor.regs.pc = executor.pop()
    return 10

# @intent:responsibility RET cc を実行します。条件が成立した場合のみRET命令として通知します。
def execute_ret_cc(executor, opcode: int) -> int:
    taken = executor.condition(get_y(opcode))
    executor.fetch_finished(is_ret=taken)
    if not taken:
        return 5
    executor.regs.pc = executor.pop()
    return 11

# @intent:responsibility ED 4D: RETI と ED 45（およびミラー）: RETN を実行します。IFF2の値がIFF1に戻ります。
def execute_reti_retn(executor, opcode: int) -> int:
    executor.fetch_finished(is_ret=True)
    regs = executor.regs
    regs.pc = executor.pop()
    regs.iff1 = regs.iff2
    return 14

def execute_rst(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    executor.push(regs.pc)
    regs.pc = opcode & 0x38
    return 11

# --- I/O ---

# @intent:responsibility IN A,(n) を実行します。ポート番号の上位バイトにはAの値が出力されます。
def execute_in_a_n(executor, opcode: int) -> int:
    n = executor.fetch_byte()
    executor.fetch_finished()
    regs = executor.regs
    regs.a = executor.processor_agent.read_from_port(n, regs.a)
    return 11

def execute_out_n_a(executor, opcode: int) -> int:
    n = executor.fetch_byte()
    executor.fetch_finished()
    regs = executor.regs
    executor.processor_agent.write_to_port(n, regs.a, regs.a)
    return 11

# @intent:responsibility ED 40-78: IN r,(C) を実行します。ED 70 はフラグのみを更新します。
def execute_in_r_c(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    value = executor.processor_agent.read_from_port(regs.c, regs.b)
    alu.update_flags_in(regs, value)
    code = get_y(opcode)
    if code != MEMORY_OPERAND:
        executor.set_reg8(code, value)
    return 12

# @intent:responsibility ED 41-79: OUT (C),r を実行します。ED 71 は0を出力します。
def execute_out_c_r(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    code = get_y(opcode)
    value = 0 if code == MEMORY_OPERAND else executor.get_reg8(code)
    executor.processor_agent.write_to_port(regs.c, value, regs.b)
    return 12

# --- Bit operations (CB prefix) ---

# @intent:responsibility CBプレフィックス命令（回転/シフト、BIT、RES、SET）を実行します。
def execute_cb(executor, opcode: int) -> int:
    code = get_z(opcode)
    bit = get_y(opcode)
    group = opcode >> 6
    address = operand_address(executor, code)
    executor.fetch_finished()
    regs = executor.regs
    value = read_operand(executor, code, address)

    if group == 1:
        alu.bit_test(regs, bit, value)
        return 8 if address is None else 12

    if group == 0:
        result = alu.rotate_shift8(regs, bit, value)
    elif group == 2:
        result = value & ~(1 << bit) & 0xFF
    else:
        result = value | (1 << bit)
    write_operand(executor, code, address, result)
    return 8 if address is None else 15

# @intent:responsibility DD CB d op / FD CB d op を実行します。
# @intent:rationale ディスプレースメントと最後のオペコードバイトはM1サイクルではないため、Rレジスタは進みません。
def execute_index_cb(executor) -> int:
    """
    (IX+d)/(IY+d) に対するビット操作。レジスタフィールドが(HL)以外の場合（非公式命令）、
    結果はメモリに加えてそのレジスタにもコピーされます。
    """
    regs = executor.regs
    address = add_signed_byte(getattr(regs, executor.index), executor.fetch_byte())
    opcode = executor.fetch_byte()
    executor.fetch_finished()

    code = get_z(opcode)
    bit = get_y(opcode)
    group = opcode >> 6
    value = executor.read_byte(address)

    if group == 1:
        alu.bit_test(regs, bit, value)
        return 20

    if group == 0:
        result = alu.rotate_shift8(regs, bit, value)
    elif group == 2:
        result = value & ~(1 << bit) & 0xFF
    else:
        result = value | (1 << bit)
    executor.write_byte(address, result)
    if code != MEMORY_OPERAND:
        executor.set_reg8(code, result, has_memory_operand=True)
    return 23
