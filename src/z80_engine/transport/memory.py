# z80_engine/transport/memory.py
"""
Transport Layer (フラットストレージ)

プロセッサのメモリ空間とポート空間の背後にある、単純なバイト配列ストレージを定義します。
アクセスモードやウェイトステートの管理は行わず、それらはアクセス仲介層が担当します。
"""
from abc import ABC, abstractmethod
from typing import Iterable

# @intent:responsibility バイト単位で読み書きできるストレージの抽象インターフェースを定義します。
class Memory(ABC):
    """
    プロセッサのメモリ空間またはポート空間として接続されるストレージの抽象基底クラス。
    """
    # @intent:pre-condition アドレスはストレージの有効範囲内である必要があります。
    @abstractmethod
    def read(self, address: int) -> int:
        pass

    # @intent:pre-condition アドレスは有効範囲内であり、値は8bit値である必要があります。
    @abstractmethod
    def write(self, address: int, value: int) -> None:
        pass

    @abstractmethod
    def get_size(self) -> int:
        pass

# @intent:responsibility bytearrayに基づく平坦なRAMストレージを提供します。
class PlainMemory(Memory):
    """
    テストおよび既定の構成で使用される平坦なストレージ。
    """
    # @intent:pre-condition sizeは正の整数である必要があります。
    def __init__(self, size: int):
        if not isinstance(size, int) or size <= 0:
            raise ValueError("Memory size must be a positive integer.")
        self._memory = bytearray(size)
        self._size = size

    def read(self, address: int) -> int:
        if not 0 <= address < self._size:
            raise IndexError(f"Address {address} out of bounds for memory of size {self._size}.")
        return self._memory[address]

    def write(self, address: int, value: int) -> None:
        if not 0 <= address < self._size:
            raise IndexError(f"Address {address} out of bounds for memory of size {self._size}.")
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Data {value} is not an 8-bit value.")
        self._memory[address] = value

    def get_size(self) -> int:
        return self._size

    # @intent:responsibility プログラムやデータをストレージに一括で書き込みます（イベントを発火しないバックドア）。
    def set_contents(self, start_address: int, data: Iterable[int]) -> None:
        data = bytes(data)
        if start_address < 0 or start_address + len(data) > self._size:
            raise IndexError(
                f"Range {start_address}..{start_address + len(data) - 1} out of bounds for memory of size {self._size}."
            )
        self._memory[start_address:start_address + len(data)] = data

    # @intent:responsibility 指定範囲の内容をコピーとして返します。
    def get_contents(self, start_address: int, length: int) -> bytes:
        if length < 0:
            raise ValueError("Length must not be negative.")
        if start_address < 0 or start_address + length > self._size:
            raise IndexError(
                f"Range {start_address}..{start_address + length - 1} out of bounds for memory of size {self._size}."
            )
        return bytes(self._memory[start_address:start_address + length])
