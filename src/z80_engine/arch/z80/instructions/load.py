"""
Z80 データ転送命令（8/16ビットロード、スタック操作、交換、ブロック転送/比較）の実装。
"""
from z80_engine.arch.z80.alu import update_flags_sub8
from z80_engine.common.numbers import dec_word, inc_word
from .base import MEMORY_OPERAND, get_p, get_y, get_z, operand_address, read_operand, write_operand

# --- 8-bit loads ---

# @intent:responsibility LD r,r' / LD r,(HL) / LD (HL),r を実行します。
def execute_ld_r_r(executor, opcode: int) -> int:
    dst, src = get_y(opcode), get_z(opcode)
    address = operand_address(executor, dst, src)
    executor.fetch_finished()
    value = read_operand(executor, src, address)
    write_operand(executor, dst, address, value)
    return 4 if address is None else 7

# @intent:responsibility LD r,n / LD (HL),n を実行します。
# @intent:rationale (IX+d),n ではディスプレースメントが即値より先に並びます。
def execute_ld_r_n(executor, opcode: int) -> int:
    dst = get_y(opcode)
    address = operand_address(executor, dst)
    n = executor.fetch_byte()
    executor.fetch_finished()
    write_operand(executor, dst, address, n)
    if dst != MEMORY_OPERAND:
        return 7
    # LD (IX+d),n は19Tステート（インデックス加算分を差し引く）
    return 10 if executor.index is None else 7

def execute_ld_indirect_a(executor, opcode: int) -> int:
    """LD (BC),A / LD (DE),A"""
    executor.fetch_finished()
    regs = executor.regs
    executor.write_byte(regs.bc if opcode == 0x02 else regs.de, regs.a)
    return 7

def execute_ld_a_indirect(executor, opcode: int) -> int:
    """LD A,(BC) / LD A,(DE)"""
    executor.fetch_finished()
    regs = executor.regs
    regs.a = executor.read_byte(regs.bc if opcode == 0x0A else regs.de)
    return 7

def execute_ld_nn_a(executor, opcode: int) -> int:
    nn = executor.fetch_word()
    executor.fetch_finished()
    executor.write_byte(nn, executor.regs.a)
    return 13

def execute_ld_a_nn(executor, opcode: int) -> int:
    nn = executor.fetch_word()
    executor.fetch_finished()
    executor.regs.a = executor.read_byte(nn)
    return 13

# --- 16-bit loads ---

# @intent:responsibility LD ss,nn を実行します。LD SP,nn はスタック開始位置の追跡対象です。
def execute_ld_ss_nn(executor, opcode: int) -> int:
    code = get_p(opcode)
    nn = executor.fetch_word()
    executor.fetch_finished(is_ld_sp=code == 3)
    setattr(executor.regs, executor.ss_name(code), nn)
    return 10

def execute_ld_nn_hl(executor, opcode: int) -> int:
    nn = executor.fetch_word()
    executor.fetch_finished()
    executor.write_word(nn, getattr(executor.regs, executor.hl_name))
    return 16

def execute_ld_hl_nn_indirect(executor, opcode: int) -> int:
    nn = executor.fetch_word()
    executor.fetch_finished()
    setattr(executor.regs, executor.hl_name, executor.read_word(nn))
    return 16

def execute_ld_sp_hl(executor, opcode: int) -> int:
    executor.fetch_finished(is_ld_sp=True)
    regs = executor.regs
    regs.sp = getattr(regs, executor.hl_name)
    return 6

# @intent:responsibility ED 43/53/63/73: LD (nn),rr を実行します。
def execute_ld_nn_rr(executor, opcode: int) -> int:
    nn = executor.fetch_word()
    executor.fetch_finished()
    executor.write_word(nn, getattr(executor.regs, ("bc", "de", "hl", "sp")[get_p(opcode)]))
    return 20

# @intent:responsibility ED 4B/5B/6B/7B: LD rr,(nn) を実行します。
def execute_ld_rr_nn_indirect(executor, opcode: int) -> int:
    code = get_p(opcode)
    nn = executor.fetch_word()
    executor.fetch_finished(is_ld_sp=code == 3)
    setattr(executor.regs, ("bc", "de", "hl", "sp")[code], executor.read_word(nn))
    return 20

# --- Stack ---

def execute_push(executor, opcode: int) -> int:
    executor.fetch_finished()
    executor.push(getattr(executor.regs, executor.qq_name(get_p(opcode))))
    return 11

def execute_pop(executor, opcode: int) -> int:
    executor.fetch_finished()
    setattr(executor.regs, executor.qq_name(get_p(opcode)), executor.pop())
    return 10

# --- Exchange ---

def execute_ex_af_af(executor, opcode: int) -> int:
    executor.fetch_finished()
    executor.regs.exchange_af()
    return 4

def execute_exx(executor, opcode: int) -> int:
    executor.fetch_finished()
    executor.regs.exchange_bc_de_hl()
    return 4

# @intent:responsibility EX DE,HL を実行します。DD/FDプレフィックスの影響を受けません。
def execute_ex_de_hl(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    regs.de, regs.hl = regs.hl, regs.de
    return 4

def execute_ex_sp_hl(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    name = executor.hl_name
    value = executor.read_word(regs.sp)
    executor.write_word(regs.sp, getattr(regs, name))
    setattr(regs, name, value)
    return 19

# --- Special registers ---

def execute_ld_i_a(executor, opcode: int) -> int:
    executor.fetch_finished()
    executor.regs.i = executor.regs.a
    return 9

def execute_ld_r_a(executor, opcode: int) -> int:
    executor.fetch_finished()
    executor.regs.r = executor.regs.a
    return 9

# @intent:responsibility LD A,I / LD A,R を実行します。P/VフラグにはIFF2が入ります。
def execute_ld_a_i_r(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    value = regs.i if opcode == 0x57 else regs.r
    regs.a = value
    regs.flag_s = (value & 0x80) != 0
    regs.flag_z = value == 0
    regs.flag_h = False
    regs.flag_pv = regs.iff2
    regs.flag_n = False
    return 9

# --- Block transfer and search ---

# @intent:responsibility LDI/LDD/LDIR/LDDR を実行します。
# @intent:rationale 繰り返し命令はPCを命令の先頭に戻すことで、次の反復で再び実行されるようにします（割り込みを受け付けられるように）。
def execute_block_ld(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    is_decrement = opcode & 0x08 != 0
    is_repeat = opcode & 0x10 != 0

    value = executor.read_byte(regs.hl)
    executor.write_byte(regs.de, value)
    step = dec_word if is_decrement else inc_word
    regs.hl = step(regs.hl)
    regs.de = step(regs.de)
    regs.bc = dec_word(regs.bc)

    regs.flag_h = False
    regs.flag_n = False
    regs.flag_pv = regs.bc != 0

    if is_repeat and regs.bc != 0:
        regs.pc = (regs.pc - 2) & 0xFFFF
        return 21
    return 16

# @intent:responsibility CPI/CPD/CPIR/CPDR を実行します。Cフラグは保持されます。
def execute_block_cp(executor, opcode: int) -> int:
    executor.fetch_finished()
    regs = executor.regs
    is_decrement = opcode & 0x08 != 0
    is_repeat = opcode & 0x10 != 0

    value = executor.read_byte(regs.hl)
    carry = regs.flag_c
    update_flags_sub8(regs, regs.a, value, regs.a - value)
    regs.flag_c = carry
    regs.hl = dec_word(regs.hl) if is_decrement else inc_word(regs.hl)
    regs.bc = dec_word(regs.bc)
    regs.flag_pv = regs.bc != 0

    if is_repeat and regs.bc != 0 and not regs.flag_z:
        regs.pc = (regs.pc - 2) & 0xFFFF
        return 21
    return 16
