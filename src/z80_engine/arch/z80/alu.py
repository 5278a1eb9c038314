"""
Z80 ALU (算術論理演算ユニット) およびフラグ操作ユーティリティ。

演算結果に基づいた正確なフラグ（S, Z, H, P/V, N, C）の計算と更新を担当します。
演算関数は結果の値を返し、レジスタへの格納は呼び出し側が行います。
"""
from z80_engine.arch.z80.state import Z80Registers

# @intent:responsibility 指定されたバイト値のパリティ（ビット1の数が偶数ならTrue）を計算します。
def calculate_parity(val: int) -> bool:
    """8ビット値のパリティ（偶数ならTrue）を計算します。"""
    val &= 0xFF
    val ^= val >> 4
    val ^= val >> 2
    val ^= val >> 1
    return (val & 1) == 0

def _update_sz(regs: Z80Registers, res8: int) -> None:
    regs.flag_s = (res8 & 0x80) != 0
    regs.flag_z = res8 == 0

# @intent:responsibility 8ビット加算の結果に基づいて全フラグを更新します。
def update_flags_add8(regs: Z80Registers, val1: int, val2: int, result: int, carry_in: int = 0) -> None:
    """ADD/ADC命令のフラグを更新します。"""
    res8 = result & 0xFF
    _update_sz(regs, res8)
    regs.flag_h = ((val1 & 0x0F) + (val2 & 0x0F) + carry_in) > 0x0F
    # Overflow: 同符号の加算で結果の符号が変わった場合
    regs.flag_pv = ((val1 ^ res8) & (val2 ^ res8) & 0x80) != 0
    regs.flag_n = False
    regs.flag_c = result > 0xFF

# @intent:responsibility 8ビット減算の結果に基づいて全フラグを更新します。
def update_flags_sub8(regs: Z80Registers, val1: int, val2: int, result: int, borrow_in: int = 0) -> None:
    """SUB/SBC/CP命令のフラグを更新します。"""
    res8 = result & 0xFF
    _update_sz(regs, res8)
    regs.flag_h = ((val1 & 0x0F) - (val2 & 0x0F) - borrow_in) < 0
    # Overflow: 異符号の減算で結果の符号が第一オペランドと異なる場合
    regs.flag_pv = ((val1 ^ val2) & (val1 ^ res8) & 0x80) != 0
    regs.flag_n = True
    regs.flag_c = result < 0

# @intent:responsibility 8ビット論理演算の結果に基づいてフラグを更新します。
def update_flags_logic8(regs: Z80Registers, result: int, h_flag: bool = False) -> None:
    """AND/OR/XOR命令のフラグを更新します。"""
    res8 = result & 0xFF
    _update_sz(regs, res8)
    regs.flag_h = h_flag # ANDならTrue, OR/XORならFalse
    regs.flag_pv = calculate_parity(res8)
    regs.flag_n = False
    regs.flag_c = False

# @intent:responsibility インクリメント/デクリメント命令のフラグを更新します（Cフラグは変化しません）。
def update_flags_inc_dec8(regs: Z80Registers, val: int, result: int, is_inc: bool) -> None:
    res8 = result & 0xFF
    _update_sz(regs, res8)
    if is_inc:
        regs.flag_h = (val & 0x0F) == 0x0F
        regs.flag_pv = val == 0x7F # 127 -> -128
        regs.flag_n = False
    else:
        regs.flag_h = (val & 0x0F) == 0x00
        regs.flag_pv = val == 0x80 # -128 -> 127
        regs.flag_n = True

# @intent:responsibility 16ビット加算の結果に基づいてフラグ（H, N, C）を更新します。
# @intent:rationale Z, S, P/Vフラグは影響を受けないことに注意してください。
def update_flags_add16(regs: Z80Registers, val1: int, val2: int, result: int) -> None:
    """ADD HL,ss命令のフラグを更新します。"""
    regs.flag_h = ((val1 & 0x0FFF) + (val2 & 0x0FFF)) > 0x0FFF
    regs.flag_n = False
    regs.flag_c = result > 0xFFFF

# --- 8-bit arithmetic ---

# @intent:responsibility ALU演算番号（ADD/ADC/SUB/SBC/AND/XOR/OR/CP）に従ってAとの演算を行います。
def alu8(regs: Z80Registers, operation: int, value: int) -> None:
    """
    operation はオペコードのビット5-3（0:ADD 1:ADC 2:SUB 3:SBC 4:AND 5:XOR 6:OR 7:CP）です。
    CP以外は結果をAに格納します。
    """
    a = regs.a
    if operation in (0, 1):
        carry = 1 if operation == 1 and regs.flag_c else 0
        result = a + value + carry
        update_flags_add8(regs, a, value, result, carry_in=carry)
        regs.a = result & 0xFF
    elif operation in (2, 3, 7):
        borrow = 1 if operation == 3 and regs.flag_c else 0
        result = a - value - borrow
        update_flags_sub8(regs, a, value, result, borrow_in=borrow)
        if operation != 7:
            regs.a = result & 0xFF
    elif operation == 4:
        regs.a = a & value
        update_flags_logic8(regs, regs.a, h_flag=True)
    elif operation == 5:
        regs.a = a ^ value
        update_flags_logic8(regs, regs.a)
    else:
        regs.a = a | value
        update_flags_logic8(regs, regs.a)

def inc8(regs: Z80Registers, value: int) -> int:
    result = (value + 1) & 0xFF
    update_flags_inc_dec8(regs, value, result, True)
    return result

def dec8(regs: Z80Registers, value: int) -> int:
    result = (value - 1) & 0xFF
    update_flags_inc_dec8(regs, value, result, False)
    return result

def neg(regs: Z80Registers) -> None:
    value = regs.a
    result = 0 - value
    update_flags_sub8(regs, 0, value, result)
    regs.a = result & 0xFF

# @intent:responsibility 直前の加減算の結果に基づいてAを10進補正します。
def daa(regs: Z80Registers) -> None:
    a = regs.a
    correction = 0
    carry = regs.flag_c
    if regs.flag_h or (a & 0x0F) > 9:
        correction |= 0x06
    if carry or a > 0x99:
        correction |= 0x60
        carry = True

    if regs.flag_n:
        regs.flag_h = regs.flag_h and (a & 0x0F) < 6
        result = (a - correction) & 0xFF
    else:
        regs.flag_h = (a & 0x0F) > 9
        result = (a + correction) & 0xFF

    regs.a = result
    _update_sz(regs, result)
    regs.flag_pv = calculate_parity(result)
    regs.flag_c = carry

def cpl(regs: Z80Registers) -> None:
    regs.a = ~regs.a & 0xFF
    regs.flag_h = True
    regs.flag_n = True

def scf(regs: Z80Registers) -> None:
    regs.flag_h = False
    regs.flag_n = False
    regs.flag_c = True

def ccf(regs: Z80Registers) -> None:
    regs.flag_h = regs.flag_c
    regs.flag_n = False
    regs.flag_c = not regs.flag_c

# --- 16-bit arithmetic ---

def add16(regs: Z80Registers, val1: int, val2: int) -> int:
    result = val1 + val2
    update_flags_add16(regs, val1, val2, result)
    return result & 0xFFFF

# @intent:responsibility ADC HL,ss / SBC HL,ss を行います。16ビット演算ですが全フラグが変化します。
def adc_sbc16(regs: Z80Registers, val1: int, val2: int, is_subtract: bool) -> int:
    carry = 1 if regs.flag_c else 0
    if is_subtract:
        result = val1 - val2 - carry
        regs.flag_h = ((val1 & 0x0FFF) - (val2 & 0x0FFF) - carry) < 0
        regs.flag_pv = ((val1 ^ val2) & (val1 ^ result) & 0x8000) != 0
        regs.flag_c = result < 0
    else:
        result = val1 + val2 + carry
        regs.flag_h = ((val1 & 0x0FFF) + (val2 & 0x0FFF) + carry) > 0x0FFF
        regs.flag_pv = ((val1 ^ result) & (val2 ^ result) & 0x8000) != 0
        regs.flag_c = result > 0xFFFF
    res16 = result & 0xFFFF
    regs.flag_s = (res16 & 0x8000) != 0
    regs.flag_z = res16 == 0
    regs.flag_n = is_subtract
    return res16

# --- Rotates and shifts ---

# @intent:responsibility Aレジスタ専用の高速回転命令（RLCA/RRCA/RLA/RRA）を実行します。S, Z, P/Vは変化しません。
def rotate_a(regs: Z80Registers, operation: int) -> None:
    """operation はオペコードのビット5-3（0:RLCA 1:RRCA 2:RLA 3:RRA）です。"""
    a = regs.a
    if operation == 0:
        carry = (a >> 7) & 1
        result = ((a << 1) | carry) & 0xFF
    elif operation == 1:
        carry = a & 1
        result = (a >> 1) | (carry << 7)
    elif operation == 2:
        carry = (a >> 7) & 1
        result = ((a << 1) | (1 if regs.flag_c else 0)) & 0xFF
    else:
        carry = a & 1
        result = (a >> 1) | (0x80 if regs.flag_c else 0)
    regs.a = result
    regs.flag_h = False
    regs.flag_n = False
    regs.flag_c = carry == 1

# @intent:responsibility CBプレフィックスの回転/シフト命令（RLC/RRC/RL/RR/SLA/SRA/SLL/SRL）を実行し、結果を返します。
def rotate_shift8(regs: Z80Registers, operation: int, value: int) -> int:
    """operation はCBオペコードのビット5-3です。SLL（6）は非公式命令で、ビット0に1が入ります。"""
    carry_in = 1 if regs.flag_c else 0
    if operation == 0:    # RLC
        carry = (value >> 7) & 1
        result = (value << 1) | carry
    elif operation == 1:  # RRC
        carry = value & 1
        result = (value >> 1) | (carry << 7)
    elif operation == 2:  # RL
        carry = (value >> 7) & 1
        result = (value << 1) | carry_in
    elif operation == 3:  # RR
        carry = value & 1
        result = (value >> 1) | (carry_in << 7)
    elif operation == 4:  # SLA
        carry = (value >> 7) & 1
        result = value << 1
    elif operation == 5:  # SRA
        carry = value & 1
        result = (value >> 1) | (value & 0x80)
    elif operation == 6:  # SLL
        carry = (value >> 7) & 1
        result = (value << 1) | 1
    else:                 # SRL
        carry = value & 1
        result = value >> 1

    result &= 0xFF
    _update_sz(regs, result)
    regs.flag_h = False
    regs.flag_pv = calculate_parity(result)
    regs.flag_n = False
    regs.flag_c = carry == 1
    return result

# @intent:responsibility BIT b,r のフラグを更新します。Cフラグは変化しません。
def bit_test(regs: Z80Registers, bit: int, value: int) -> None:
    is_zero = (value >> bit) & 1 == 0
    regs.flag_z = is_zero
    regs.flag_pv = is_zero
    regs.flag_s = bit == 7 and not is_zero
    regs.flag_h = True
    regs.flag_n = False

# @intent:responsibility RLD/RRD の結果を（新しいA, 新しい(HL)）として返し、フラグを更新します。
def rotate_digit(regs: Z80Registers, memory_value: int, is_left: bool) -> tuple:
    a = regs.a
    if is_left:
        new_memory = ((memory_value << 4) | (a & 0x0F)) & 0xFF
        new_a = (a & 0xF0) | (memory_value >> 4)
    else:
        new_memory = ((a & 0x0F) << 4) | (memory_value >> 4)
        new_a = (a & 0xF0) | (memory_value & 0x0F)
    _update_sz(regs, new_a)
    regs.flag_h = False
    regs.flag_pv = calculate_parity(new_a)
    regs.flag_n = False
    return new_a, new_memory

# @intent:responsibility IN r,(C) および LD A,I / LD A,R のような読み込み系命令のフラグを更新します（Cは変化しません）。
def update_flags_in(regs: Z80Registers, value: int) -> None:
    _update_sz(regs, value & 0xFF)
    regs.flag_h = False
    regs.flag_pv = calculate_parity(value)
    regs.flag_n = False
