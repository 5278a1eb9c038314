# z80_engine/arch/z80/state.py
"""
Z80のレジスタセット定義。

このモジュールは、Z80のメインレジスタ、裏レジスタ、インデックスレジスタ、
特殊レジスタ、および割り込みフリップフロップを保持するデータ構造を定義します。
プロセッサはこれを単なる値の保管場所として扱います。
"""
from dataclasses import dataclass

# Z80フラグビットマスク
# @intent:constant Z80フラグレジスタ内の各フラグビットの位置を定義します。
S_FLAG = 0b10000000  # Sign (符号)
Z_FLAG = 0b01000000  # Zero (ゼロ)
# 0b00100000 # 未使用
H_FLAG = 0b00010000  # Half Carry (ハーフキャリー)
# 0b00001000 # 未使用
PV_FLAG = 0b00000100 # Parity/Overflow (パリティ/オーバーフロー)
N_FLAG = 0b00000010  # Add/Subtract (加減算)
C_FLAG = 0b00000001  # Carry (キャリー)

# @intent:utility_function 8ビットレジスタペアを読み書きするプロパティを生成します。
def _register_pair(high: str, low: str) -> property:
    def getter(self) -> int:
        return (getattr(self, high) << 8) | getattr(self, low)

    def setter(self, value: int) -> None:
        setattr(self, high, (value >> 8) & 0xFF)
        setattr(self, low, value & 0xFF)

    return property(getter, setter)

# @intent:utility_function 16ビットレジスタの上位/下位バイトを読み書きするプロパティを生成します。
def _register_half(name: str, is_high: bool) -> property:
    shift = 8 if is_high else 0
    mask = 0x00FF if is_high else 0xFF00

    def getter(self) -> int:
        return (getattr(self, name) >> shift) & 0xFF

    def setter(self, value: int) -> None:
        setattr(self, name, (getattr(self, name) & mask) | ((value & 0xFF) << shift))

    return property(getter, setter)

# @intent:utility_function Fレジスタの1ビットを読み書きするプロパティを生成します。
def _flag(mask: int) -> property:
    def getter(self) -> bool:
        return (self.f & mask) != 0

    def setter(self, value: bool) -> None:
        if value:
            self.f |= mask
        else:
            self.f &= ~mask & 0xFF

    return property(getter, setter)

# @intent:responsibility Z80の全てのレジスタと割り込みフリップフロップの状態を保持します。
@dataclass
class Z80Registers:
    """
    Z80のレジスタ状態を保持するデータクラス。
    16ビットのレジスタペア（AF, BC, DE, HL とその裏レジスタ）は8ビットレジスタから合成されます。
    """
    # Main registers
    a: int = 0x00
    f: int = 0x00
    b: int = 0x00
    c: int = 0x00
    d: int = 0x00
    e: int = 0x00
    h: int = 0x00
    l: int = 0x00

    # Alternate registers
    a_: int = 0x00
    f_: int = 0x00
    b_: int = 0x00
    c_: int = 0x00
    d_: int = 0x00
    e_: int = 0x00
    h_: int = 0x00
    l_: int = 0x00

    # Index and pointer registers
    ix: int = 0x0000
    iy: int = 0x0000
    pc: int = 0x0000
    sp: int = 0x0000

    # Special purpose registers
    i: int = 0x00  # Interrupt Vector
    r: int = 0x00  # Memory Refresh

    iff1: bool = False
    iff2: bool = False

    af = _register_pair("a", "f")
    bc = _register_pair("b", "c")
    de = _register_pair("d", "e")
    hl = _register_pair("h", "l")
    af_ = _register_pair("a_", "f_")
    bc_ = _register_pair("b_", "c_")
    de_ = _register_pair("d_", "e_")
    hl_ = _register_pair("h_", "l_")

    ixh = _register_half("ix", True)
    ixl = _register_half("ix", False)
    iyh = _register_half("iy", True)
    iyl = _register_half("iy", False)

    # @intent:accessor フラグを直接ビット操作する代わりに、名前付きのプロパティとして提供します。
    flag_s = _flag(S_FLAG)
    flag_z = _flag(Z_FLAG)
    flag_h = _flag(H_FLAG)
    flag_pv = _flag(PV_FLAG)
    flag_n = _flag(N_FLAG)
    flag_c = _flag(C_FLAG)

    # @intent:responsibility EX AF,AF' を実行します。
    def exchange_af(self) -> None:
        self.a, self.a_ = self.a_, self.a
        self.f, self.f_ = self.f_, self.f

    # @intent:responsibility EXX を実行します（BC, DE, HL とその裏レジスタを交換）。
    def exchange_bc_de_hl(self) -> None:
        self.b, self.b_ = self.b_, self.b
        self.c, self.c_ = self.c_, self.c
        self.d, self.d_ = self.d_, self.d
        self.e, self.e_ = self.e_, self.e
        self.h, self.h_ = self.h_, self.h
        self.l, self.l_ = self.l_, self.l
