"""
8ビット/16ビットの数値ユーティリティ。

全ての演算は単純な剰余演算（ラップアラウンド）として扱い、例外は発生させません。
"""
from typing import Iterable

def get_low_byte(value: int) -> int:
    return value & 0xFF

def get_high_byte(value: int) -> int:
    return (value >> 8) & 0xFF

# @intent:utility_function 下位・上位バイトから16ビット値を生成します。
def create_word(low_byte: int, high_byte: int) -> int:
    return ((high_byte & 0xFF) << 8) | (low_byte & 0xFF)

# @intent:utility_function 8ビット値を符号付き整数（-128〜127）として解釈します。
def to_signed_byte(value: int) -> int:
    value &= 0xFF
    return value - 0x100 if value >= 0x80 else value

# @intent:utility_function 16ビットのアドレスに符号付き8ビットのオフセットを加算します。
def add_signed_byte(address: int, offset: int) -> int:
    return (address + to_signed_byte(offset)) & 0xFFFF

def inc_word(value: int) -> int:
    return (value + 1) & 0xFFFF

def dec_word(value: int) -> int:
    return (value - 1) & 0xFFFF

# @intent:utility_function バイト列を "3E 07" のような16進文字列に整形します（例外メッセージ用）。
def format_bytes(data: Iterable[int]) -> str:
    return " ".join(f"{b:02X}" for b in data)
