# tests/config/test_config.py
"""
z80_engine.configパッケージ（ローダーとビルダー）の単体テスト。
"""
import textwrap

import pytest

from z80_engine.common.types import MemoryAccessMode, StopReason
from z80_engine.config.builder import SystemBuilder
from z80_engine.config.loader import ConfigLoader
from z80_engine.config.models import SystemConfig
from z80_engine.core.clock import DefaultClockSynchronizer

# @intent:test_suite YAMLのシステム構成記述の解析と、それに基づくプロセッサの構築を検証します。

SAMPLE_CONFIG = textwrap.dedent("""
    clock:
      frequency_mhz: 3.5
      speed_factor: 2.0
    auto_stop:
      di_plus_halt: true
      ret_with_stack_empty: true
    memory_map:
      - start: 0x0000
        end: 0x3FFF
        access: READ_ONLY
        label: ROM
        wait_states_m1: 1
      - start: "0xC000"
        end: "0xFFFF"
        access: read_and_write
        wait_states_non_m1: 2
    io_map:
      - start: 0x98
        end: 0x9B
        access: NOT_CONNECTED
        wait_states: 1
    initial_state:
      pc: 0x0100
      sp: "0xF000"
      registers:
        a: 0x12
        hl: 0x8000
""")

class TestConfigLoader:
    """
    ConfigLoaderの単体テスト。
    """
    # @intent:test_case_parse YAMLの全セクションが対応するデータクラスに変換されることを検証します。
    def test_load_from_string(self):
        config = ConfigLoader().load_from_string(SAMPLE_CONFIG)

        assert config.clock.frequency_mhz == 3.5
        assert config.clock.speed_factor == 2.0
        assert config.clock.synchronize is True
        assert config.auto_stop.ret_with_stack_empty is True

        rom, ram = config.memory_map
        assert (rom.start, rom.end, rom.length) == (0x0000, 0x3FFF, 0x4000)
        assert rom.access == MemoryAccessMode.READ_ONLY
        assert rom.label == "ROM"
        assert rom.wait_states_m1 == 1
        assert ram.start == 0xC000
        assert ram.access == MemoryAccessMode.READ_AND_WRITE
        assert ram.wait_states_non_m1 == 2

        assert config.io_map[0].access == MemoryAccessMode.NOT_CONNECTED
        assert config.io_map[0].length == 4

        assert config.initial_state.pc == 0x0100
        assert config.initial_state.sp == 0xF000
        assert config.initial_state.registers == {"a": 0x12, "hl": 0x8000}

    # @intent:test_case_defaults 空のドキュメントはプロセッサの既定値と同じ構成になることを検証します。
    def test_empty_document_gives_defaults(self):
        config = ConfigLoader().load_from_string("")
        assert config == SystemConfig()
        assert config.clock.frequency_mhz == 4.0
        assert config.auto_stop.di_plus_halt is True
        assert config.auto_stop.ret_with_stack_empty is False

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "system.yaml"
        path.write_text(SAMPLE_CONFIG)
        config = ConfigLoader().load_from_file(str(path))
        assert config.initial_state.pc == 0x0100

    # @intent:test_case_error 不正な構成がValueErrorとして報告されることを検証します。
    def test_invalid_documents(self):
        loader = ConfigLoader()
        with pytest.raises(ValueError, match="mapping"):
            loader.load_from_string("- just\n- a list\n")
        with pytest.raises(ValueError, match="Unknown access mode"):
            loader.load_from_string("memory_map:\n  - {start: 0, end: 1, access: EXECUTE_ONLY}\n")
        with pytest.raises(ValueError, match="Invalid integer format"):
            loader.load_from_string("initial_state:\n  pc: true\n")

class TestSystemBuilder:
    """
    SystemBuilderの単体テスト。
    """
    @pytest.fixture
    def processor(self):
        config = ConfigLoader().load_from_string(SAMPLE_CONFIG)
        return SystemBuilder().build_processor(config)

    # @intent:test_case_build クロックと自動停止の設定がプロセッサに適用されることを検証します。
    def test_clock_and_auto_stop(self, processor):
        assert processor.clock_frequency_in_mhz == 3.5
        assert processor.effective_clock_frequency_in_mhz == 7.0
        assert isinstance(processor.clock_synchronizer, DefaultClockSynchronizer)
        assert processor.clock_synchronizer.effective_clock_frequency_in_mhz == 7.0
        assert processor.auto_stop_on_ret_with_stack_empty is True

    # @intent:test_case_build メモリマップとI/Oマップのアクセスモードとウェイトステートが適用されることを検証します。
    def test_memory_and_io_maps(self, processor):
        assert processor.get_memory_access_mode(0x3FFF) == MemoryAccessMode.READ_ONLY
        assert processor.get_memory_access_mode(0x4000) == MemoryAccessMode.READ_AND_WRITE
        assert processor.get_memory_wait_states_for_m1(0x0000) == 1
        assert processor.get_memory_wait_states_for_non_m1(0xFFFF) == 2
        assert processor.get_port_access_mode(0x9B) == MemoryAccessMode.NOT_CONNECTED
        assert processor.get_port_wait_states(0x98) == 1

    # @intent:test_case_initial_state リセット後に初期状態が適用され、設定されたSPがスタック開始位置になることを検証します。
    def test_initial_state(self, processor):
        regs = processor.registers
        assert regs.pc == 0x0100
        assert regs.sp == 0xF000
        assert regs.a == 0x12
        assert regs.hl == 0x8000
        assert processor.start_of_stack == 0xF000

    # @intent:test_case_run 構築したプロセッサで continue_ による実行ができることを検証します。
    def test_run_built_processor(self):
        config = ConfigLoader().load_from_string(textwrap.dedent("""
            clock:
              synchronize: false
            auto_stop:
              ret_with_stack_empty: true
            initial_state:
              pc: 0x0100
              sp: 0x8000
        """))
        processor = SystemBuilder().build_processor(config)
        processor.memory.set_contents(0x0100, [0x3E, 0x07, 0xC6, 0x04, 0x3C, 0xC9])

        processor.continue_()

        assert processor.clock_synchronizer is None
        assert processor.registers.a == 12
        assert processor.stop_reason == StopReason.RET_WITH_STACK_EMPTY
        assert processor.t_states_elapsed_since_reset == 28

    # @intent:test_case_build 周波数単体では範囲外でも、速度係数との積が範囲内であれば受け付けられることを検証します。
    @pytest.mark.parametrize("frequency_mhz, speed_factor, effective", [
        (200, 0.1, 20.0),
        (0.0005, 10, 0.005),
    ])
    def test_clock_validated_as_effective_frequency(self, frequency_mhz, speed_factor, effective):
        config = ConfigLoader().load_from_string(
            f"clock:\n  frequency_mhz: {frequency_mhz}\n  speed_factor: {speed_factor}\n"
        )
        processor = SystemBuilder().build_processor(config)

        assert processor.clock_frequency_in_mhz == frequency_mhz
        assert processor.clock_speed_factor == speed_factor
        assert processor.effective_clock_frequency_in_mhz == pytest.approx(effective)

    def test_clock_out_of_range_is_rejected(self):
        config = ConfigLoader().load_from_string("clock:\n  frequency_mhz: 200\n  speed_factor: 1.0\n")
        with pytest.raises(ValueError, match="Effective clock frequency"):
            SystemBuilder().build_processor(config)

    # @intent:test_case_ports 拡張ポート空間を指定すると65536ポートのストレージが接続されることを検証します。
    def test_extended_ports_space(self):
        config = ConfigLoader().load_from_string(
            "use_extended_ports_space: true\nio_map:\n  - {start: 0x1000, end: 0x10FF, access: READ_ONLY}\n"
        )
        processor = SystemBuilder().build_processor(config)

        assert processor.use_extended_ports_space is True
        assert processor.ports_space.get_size() == 0x10000
        assert processor.get_port_access_mode(0x1080) == MemoryAccessMode.READ_ONLY

    # @intent:test_case_initial_state 未知のレジスタ名は警告を出して無視されることを検証します。
    def test_unknown_register_is_ignored(self, caplog):
        config = ConfigLoader().load_from_string("initial_state:\n  registers:\n    zz: 1\n")
        with caplog.at_level("WARNING"):
            processor = SystemBuilder().build_processor(config)
        assert "Unknown register 'zz'" in caplog.text
        assert not hasattr(processor.registers, "zz")
