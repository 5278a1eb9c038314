from dataclasses import dataclass, field
from typing import List

from z80_engine.common.types import MemoryAccessMode

@dataclass
class ClockConfig:
    frequency_mhz: float = 4.0
    speed_factor: float = 1.0
    synchronize: bool = True  # Falseの場合、クロック同期を行わず全速で実行する

@dataclass
class AutoStopConfig:
    di_plus_halt: bool = True
    ret_with_stack_empty: bool = False

@dataclass
class MemoryRegion:
    start: int
    end: int  # 終端アドレス（この番地を含む）
    access: MemoryAccessMode = MemoryAccessMode.READ_AND_WRITE
    label: str = ""
    wait_states_m1: int = 0
    wait_states_non_m1: int = 0

    @property
    def length(self) -> int:
        return self.end - self.start + 1

@dataclass
class IoRegion:
    start: int
    end: int
    access: MemoryAccessMode = MemoryAccessMode.READ_AND_WRITE
    label: str = ""
    wait_states: int = 0

    @property
    def length(self) -> int:
        return self.end - self.start + 1

@dataclass
class CpuInitialState:
    pc: int = 0x0000
    sp: int = 0xFFFF
    registers: dict = field(default_factory=dict)

@dataclass
class SystemConfig:
    clock: ClockConfig = field(default_factory=ClockConfig)
    auto_stop: AutoStopConfig = field(default_factory=AutoStopConfig)
    use_extended_ports_space: bool = False
    memory_map: List[MemoryRegion] = field(default_factory=list)
    io_map: List[IoRegion] = field(default_factory=list)
    initial_state: CpuInitialState = field(default_factory=CpuInitialState)
