# z80_engine/core/access.py
"""
Core Layer (メモリ/ポートアクセス仲介)

プロセッサから見た全てのメモリ/ポートアクセスを一箇所で仲介します。

- アドレス/ポート単位のアクセスモード（読み書き可否、未接続）の適用
- M1サイクル、非M1サイクル、ポートアクセスのウェイトステートの加算
- アクセス前後の通知イベント（リスナーによる値の上書き、アクセスの取り消し）
"""
from typing import List, Optional

from z80_engine.common.types import MemoryAccessEventType, MemoryAccessMode
from z80_engine.core.context import InstructionExecutionContext
from z80_engine.core.events import EventHandler, MemoryAccessEventArgs
from z80_engine.transport.memory import Memory

MEMORY_SPACE_SIZE = 65536
PORTS_SPACE_SIZE = 256
EXTENDED_PORTS_SPACE_SIZE = 65536

# @intent:utility_function 範囲指定（開始位置と長さ）が空間内に収まるかを検証します。
def _validate_range(start: int, length: int, space_size: int) -> None:
    if length < 0:
        raise ValueError(f"Length must not be negative, got {length}.")
    if start < 0 or start + length > space_size:
        raise ValueError(
            f"Range start {start:#x} with length {length} exceeds space size {space_size:#x}."
        )

# @intent:utility_function ウェイトステート値が1バイトに収まるかを検証します。
def _validate_wait_states(value: int) -> None:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"Wait states must be between 0 and 255, got {value}.")

# @intent:responsibility メモリ/ポートアクセスの規則（アクセスモード、ウェイトステート、通知）を適用します。
class AccessMediator:
    """
    メモリ空間とポート空間へのアクセスを仲介するオブジェクト。

    読み込み:
      1. BEFORE_*_READ を値0xFF、取り消しFalseで発火する。
      2. 取り消されておらず、アクセスモードが読み込みを許可していれば、ストレージから読み込む。
         そうでなければリスナーが与えた値をそのまま使う。
      3. ウェイトステートをコンテキストに加算する。
      4. AFTER_*_READ を発火し、リスナーによって上書きされた可能性のある値を返す。

    書き込みも同様に、BEFORE_*_WRITE で上書きされた値がストレージに書き込まれます。
    """
    def __init__(self, sender, memory: Memory, ports_space: Memory):
        self._sender = sender
        self.memory_access = EventHandler()
        self._use_extended_ports_space = False

        self._memory: Memory = None
        self._ports_space: Memory = None
        self.memory = memory
        self.ports_space = ports_space

        self._memory_access_modes: List[MemoryAccessMode] = [MemoryAccessMode.READ_AND_WRITE] * MEMORY_SPACE_SIZE
        self._memory_wait_states_m1 = bytearray(MEMORY_SPACE_SIZE)
        self._memory_wait_states_non_m1 = bytearray(MEMORY_SPACE_SIZE)
        self._port_access_modes: List[MemoryAccessMode] = [MemoryAccessMode.READ_AND_WRITE] * PORTS_SPACE_SIZE
        self._port_wait_states = bytearray(PORTS_SPACE_SIZE)

    # --- Collaborators ---

    @property
    def memory(self) -> Memory:
        return self._memory

    @memory.setter
    def memory(self, value: Memory) -> None:
        if value is None:
            raise TypeError("Memory must not be None.")
        self._memory = value

    @property
    def ports_space(self) -> Memory:
        return self._ports_space

    @ports_space.setter
    def ports_space(self, value: Memory) -> None:
        if value is None:
            raise TypeError("Ports space must not be None.")
        if self._use_extended_ports_space and value.get_size() < EXTENDED_PORTS_SPACE_SIZE:
            raise ValueError(
                f"Ports space must have a size of at least {EXTENDED_PORTS_SPACE_SIZE} "
                "when the extended ports space is in use."
            )
        self._ports_space = value

    @property
    def ports_space_size(self) -> int:
        return EXTENDED_PORTS_SPACE_SIZE if self._use_extended_ports_space else PORTS_SPACE_SIZE

    @property
    def use_extended_ports_space(self) -> bool:
        return self._use_extended_ports_space

    # @intent:responsibility ポート空間を8ビット（256ポート）と16ビット（65536ポート）の間で切り替えます。
    # @intent:rationale 切り替え時、先頭256ポートのアクセスモードとウェイトステートは保持されます。
    @use_extended_ports_space.setter
    def use_extended_ports_space(self, value: bool) -> None:
        if value == self._use_extended_ports_space:
            return
        if value and self._ports_space.get_size() < EXTENDED_PORTS_SPACE_SIZE:
            raise ValueError(
                f"Ports space must have a size of at least {EXTENDED_PORTS_SPACE_SIZE} "
                "to enable the extended ports space."
            )

        new_size = EXTENDED_PORTS_SPACE_SIZE if value else PORTS_SPACE_SIZE
        preserved = min(len(self._port_access_modes), new_size)
        access_modes = [MemoryAccessMode.READ_AND_WRITE] * new_size
        access_modes[:preserved] = self._port_access_modes[:preserved]
        wait_states = bytearray(new_size)
        wait_states[:preserved] = self._port_wait_states[:preserved]

        self._port_access_modes = access_modes
        self._port_wait_states = wait_states
        self._use_extended_ports_space = value

    # --- Configuration ---

    def set_memory_access_mode(self, start_address: int, length: int, mode: MemoryAccessMode) -> None:
        _validate_range(start_address, length, MEMORY_SPACE_SIZE)
        self._memory_access_modes[start_address:start_address + length] = [mode] * length

    def get_memory_access_mode(self, address: int) -> MemoryAccessMode:
        return self._memory_access_modes[address & 0xFFFF]

    def set_port_access_mode(self, start_port: int, length: int, mode: MemoryAccessMode) -> None:
        _validate_range(start_port, length, self.ports_space_size)
        self._port_access_modes[start_port:start_port + length] = [mode] * length

    def get_port_access_mode(self, port_number: int) -> MemoryAccessMode:
        return self._port_access_modes[port_number % self.ports_space_size]

    def set_memory_wait_states_for_m1(self, start_address: int, length: int, wait_states: int) -> None:
        _validate_range(start_address, length, MEMORY_SPACE_SIZE)
        _validate_wait_states(wait_states)
        self._memory_wait_states_m1[start_address:start_address + length] = bytes([wait_states]) * length

    def get_memory_wait_states_for_m1(self, address: int) -> int:
        return self._memory_wait_states_m1[address & 0xFFFF]

    def set_memory_wait_states_for_non_m1(self, start_address: int, length: int, wait_states: int) -> None:
        _validate_range(start_address, length, MEMORY_SPACE_SIZE)
        _validate_wait_states(wait_states)
        self._memory_wait_states_non_m1[start_address:start_address + length] = bytes([wait_states]) * length

    def get_memory_wait_states_for_non_m1(self, address: int) -> int:
        return self._memory_wait_states_non_m1[address & 0xFFFF]

    def set_port_wait_states(self, start_port: int, length: int, wait_states: int) -> None:
        _validate_range(start_port, length, self.ports_space_size)
        _validate_wait_states(wait_states)
        self._port_wait_states[start_port:start_port + length] = bytes([wait_states]) * length

    def get_port_wait_states(self, port_number: int) -> int:
        return self._port_wait_states[port_number % self.ports_space_size]

    # --- Access pipeline ---

    # @intent:responsibility M1サイクル（オペコードフェッチ）としてメモリを読み込みます。
    def fetch_opcode(self, address: int, context: Optional[InstructionExecutionContext]) -> int:
        address &= 0xFFFF
        return self._read(
            self._memory, self._memory_access_modes[address], address,
            self._memory_wait_states_m1[address], False, context
        )

    # @intent:responsibility ウェイトステートを加算せずにオペコードを先読みします。通知は通常通り発火します。
    def peek_opcode(self, address: int, context: Optional[InstructionExecutionContext]) -> int:
        address &= 0xFFFF
        return self._read(self._memory, self._memory_access_modes[address], address, 0, False, context)

    def read_memory(self, address: int, context: Optional[InstructionExecutionContext]) -> int:
        address &= 0xFFFF
        return self._read(
            self._memory, self._memory_access_modes[address], address,
            self._memory_wait_states_non_m1[address], False, context
        )

    def write_memory(self, address: int, value: int, context: Optional[InstructionExecutionContext]) -> None:
        address &= 0xFFFF
        self._write(
            self._memory, self._memory_access_modes[address], address, value & 0xFF,
            self._memory_wait_states_non_m1[address], False, context
        )

    def read_port(self, port_number: int, context: Optional[InstructionExecutionContext]) -> int:
        port_number %= self.ports_space_size
        return self._read(
            self._ports_space, self._port_access_modes[port_number], port_number,
            self._port_wait_states[port_number], True, context
        )

    def write_port(self, port_number: int, value: int, context: Optional[InstructionExecutionContext]) -> None:
        port_number %= self.ports_space_size
        self._write(
            self._ports_space, self._port_access_modes[port_number], port_number, value & 0xFF,
            self._port_wait_states[port_number], True, context
        )

    def _read(
        self,
        store: Memory,
        access_mode: MemoryAccessMode,
        address: int,
        wait_states: int,
        is_port: bool,
        context: Optional[InstructionExecutionContext],
    ) -> int:
        before_type = MemoryAccessEventType.BEFORE_PORT_READ if is_port else MemoryAccessEventType.BEFORE_MEMORY_READ
        after_type = MemoryAccessEventType.AFTER_PORT_READ if is_port else MemoryAccessEventType.AFTER_MEMORY_READ

        before_args = MemoryAccessEventArgs(before_type, address, 0xFF)
        self.memory_access.fire(self._sender, before_args)

        value = before_args.value
        if not before_args.cancel_memory_access and access_mode.can_read:
            value = store.read(address)

        if context is not None:
            context.accumulated_wait_states += wait_states

        after_args = MemoryAccessEventArgs(
            after_type, address, value & 0xFF,
            local_user_state=before_args.local_user_state,
            cancel_memory_access=before_args.cancel_memory_access,
        )
        self.memory_access.fire(self._sender, after_args)
        return after_args.value & 0xFF

    def _write(
        self,
        store: Memory,
        access_mode: MemoryAccessMode,
        address: int,
        value: int,
        wait_states: int,
        is_port: bool,
        context: Optional[InstructionExecutionContext],
    ) -> None:
        before_type = MemoryAccessEventType.BEFORE_PORT_WRITE if is_port else MemoryAccessEventType.BEFORE_MEMORY_WRITE
        after_type = MemoryAccessEventType.AFTER_PORT_WRITE if is_port else MemoryAccessEventType.AFTER_MEMORY_WRITE

        before_args = MemoryAccessEventArgs(before_type, address, value)
        self.memory_access.fire(self._sender, before_args)

        value = before_args.value & 0xFF
        if not before_args.cancel_memory_access and access_mode.can_write:
            store.write(address, value)

        if context is not None:
            context.accumulated_wait_states += wait_states

        after_args = MemoryAccessEventArgs(
            after_type, address, value,
            local_user_state=before_args.local_user_state,
            cancel_memory_access=before_args.cancel_memory_access,
        )
        self.memory_access.fire(self._sender, after_args)
