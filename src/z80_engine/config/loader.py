import logging
from typing import Any, Dict

import yaml

from z80_engine.common.types import MemoryAccessMode
from .models import AutoStopConfig, ClockConfig, CpuInitialState, IoRegion, MemoryRegion, SystemConfig

logger = logging.getLogger(__name__)

# @intent:responsibility YAML形式のシステム構成記述を読み込み、SystemConfigに変換します。
class ConfigLoader:
    def load_from_file(self, path: str) -> SystemConfig:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        logger.debug(f"Loaded system configuration from {path}.")
        return self.parse(data)

    def load_from_string(self, text: str) -> SystemConfig:
        return self.parse(yaml.safe_load(text))

    # @intent:responsibility 辞書形式の構成データを検証し、SystemConfigに変換します。
    # @intent:pre-condition dataはNone（空のドキュメント）またはマッピングである必要があります。
    def parse(self, data: Dict[str, Any]) -> SystemConfig:
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"System configuration must be a mapping, got {type(data).__name__}.")

        clock_data = data.get("clock", {}) or {}
        clock = ClockConfig(
            frequency_mhz=float(clock_data.get("frequency_mhz", 4.0)),
            speed_factor=float(clock_data.get("speed_factor", 1.0)),
            synchronize=bool(clock_data.get("synchronize", True)),
        )

        auto_stop_data = data.get("auto_stop", {}) or {}
        auto_stop = AutoStopConfig(
            di_plus_halt=bool(auto_stop_data.get("di_plus_halt", True)),
            ret_with_stack_empty=bool(auto_stop_data.get("ret_with_stack_empty", False)),
        )

        # Parse Memory Map
        memory_map = []
        for region_data in data.get("memory_map", []) or []:
            memory_map.append(MemoryRegion(
                start=self._parse_int(region_data.get("start")),
                end=self._parse_int(region_data.get("end")),
                access=self._parse_access_mode(region_data.get("access", "READ_AND_WRITE")),
                label=region_data.get("label", ""),
                wait_states_m1=self._parse_int(region_data.get("wait_states_m1", 0)),
                wait_states_non_m1=self._parse_int(region_data.get("wait_states_non_m1", 0)),
            ))

        # Parse I/O Map
        io_map = []
        for region_data in data.get("io_map", []) or []:
            io_map.append(IoRegion(
                start=self._parse_int(region_data.get("start")),
                end=self._parse_int(region_data.get("end")),
                access=self._parse_access_mode(region_data.get("access", "READ_AND_WRITE")),
                label=region_data.get("label", ""),
                wait_states=self._parse_int(region_data.get("wait_states", 0)),
            ))

        # Parse Initial State
        initial_state_data = data.get("initial_state", {}) or {}
        initial_state = CpuInitialState(
            pc=self._parse_int(initial_state_data.get("pc", 0)),
            sp=self._parse_int(initial_state_data.get("sp", 0xFFFF)),
            registers={
                name: self._parse_int(value)
                for name, value in (initial_state_data.get("registers", {}) or {}).items()
            },
        )

        return SystemConfig(
            clock=clock,
            auto_stop=auto_stop,
            use_extended_ports_space=bool(data.get("use_extended_ports_space", False)),
            memory_map=memory_map,
            io_map=io_map,
            initial_state=initial_state,
        )

    def _parse_int(self, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError(f"Invalid integer format: {value}")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            if value.lower().startswith("0x"):
                return int(value, 16)
            return int(value)
        raise ValueError(f"Invalid integer format: {value}")

    def _parse_access_mode(self, value: Any) -> MemoryAccessMode:
        if isinstance(value, MemoryAccessMode):
            return value
        try:
            return MemoryAccessMode[str(value).upper()]
        except KeyError:
            raise ValueError(f"Unknown access mode: {value}") from None
