"""
Z80命令セット実装のための共通ヘルパー関数と定数。
"""
from typing import Optional

# オペコードのレジスタフィールドで (HL) を表すコード
MEMORY_OPERAND = 0b110

# @intent:utility_function オペコードのビット5-3（転送先レジスタ、演算番号など）を返します。
def get_y(opcode: int) -> int:
    return (opcode >> 3) & 0b111

# @intent:utility_function オペコードのビット2-0（転送元レジスタ）を返します。
def get_z(opcode: int) -> int:
    return opcode & 0b111

# @intent:utility_function オペコードのビット5-4（レジスタペア）を返します。
def get_p(opcode: int) -> int:
    return (opcode >> 4) & 0b11

# @intent:utility_function オペランドにメモリ参照が含まれる場合、そのアドレスを求めます。
# @intent:pre-condition fetch_finished() より前に呼ぶ必要があります（(IX+d)のディスプレースメントを読み込むため）。
def operand_address(executor, *codes: int) -> Optional[int]:
    if MEMORY_OPERAND in codes:
        return executor.memory_operand_address()
    return None

# @intent:utility_function レジスタコード（または(HL)）に基づいて現在の値を取得します。
def read_operand(executor, code: int, address: Optional[int]) -> int:
    if code == MEMORY_OPERAND:
        return executor.read_byte(address)
    return executor.get_reg8(code, address is not None)

# @intent:utility_function レジスタコード（または(HL)）に値を設定します。
def write_operand(executor, code: int, address: Optional[int], value: int) -> None:
    if code == MEMORY_OPERAND:
        executor.write_byte(address, value)
    else:
        executor.set_reg8(code, value, address is not None)
