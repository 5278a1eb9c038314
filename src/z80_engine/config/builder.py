import logging

from z80_engine.core.clock import DefaultClockSynchronizer
from z80_engine.core.access import EXTENDED_PORTS_SPACE_SIZE
from z80_engine.core.processor import Z80Processor
from z80_engine.transport.memory import PlainMemory
from .models import CpuInitialState, SystemConfig

logger = logging.getLogger(__name__)

# @intent:responsibility システム構成（Config）に基づいてプロセッサを生成・設定し、初期状態を適用します。
class SystemBuilder:
    def build_processor(self, config: SystemConfig) -> Z80Processor:
        processor = Z80Processor()

        # クロック同期の有無を先に決めてから周波数を設定する
        processor.clock_synchronizer = DefaultClockSynchronizer() if config.clock.synchronize else None
        # 個別のsetterでは途中の積が範囲外になり得るため、実効周波数として一度だけ検証する
        processor.configure_clock(config.clock.frequency_mhz, config.clock.speed_factor)

        processor.auto_stop_on_di_plus_halt = config.auto_stop.di_plus_halt
        processor.auto_stop_on_ret_with_stack_empty = config.auto_stop.ret_with_stack_empty

        if config.use_extended_ports_space:
            processor.ports_space = PlainMemory(EXTENDED_PORTS_SPACE_SIZE)
            processor.use_extended_ports_space = True

        for region in config.memory_map:
            processor.set_memory_access_mode(region.start, region.length, region.access)
            processor.set_memory_wait_states_for_m1(region.start, region.length, region.wait_states_m1)
            processor.set_memory_wait_states_for_non_m1(region.start, region.length, region.wait_states_non_m1)
            logger.debug(
                f"Memory region {region.label or '(unnamed)'} {region.start:04X}-{region.end:04X}: "
                f"{region.access.value}, wait states M1={region.wait_states_m1} non-M1={region.wait_states_non_m1}."
            )

        for region in config.io_map:
            processor.set_ports_space_access_mode(region.start, region.length, region.access)
            processor.set_port_wait_states(region.start, region.length, region.wait_states)
            logger.debug(
                f"I/O region {region.label or '(unnamed)'} {region.start:04X}-{region.end:04X}: "
                f"{region.access.value}, wait states={region.wait_states}."
            )

        # 初期状態の適用
        self.apply_initial_state(processor, config.initial_state)

        return processor

    # @intent:responsibility Configで定義された初期状態をプロセッサに適用します。
    # @intent:rationale reset()の後に適用するため、実行には start() ではなく continue_() または execute_next_instruction() を使用します。
    def apply_initial_state(self, processor: Z80Processor, config_state: CpuInitialState) -> None:
        """
        プロセッサをリセットし、Configから指定された初期値を適用します。
        SPを設定した場合、スタック開始位置もその値になります。
        """
        processor.reset()

        regs = processor.registers
        regs.pc = config_state.pc & 0xFFFF
        regs.sp = config_state.sp & 0xFFFF
        for reg_name, value in config_state.registers.items():
            if hasattr(regs, reg_name):
                setattr(regs, reg_name, value)
            else:
                logger.warning(f"Unknown register '{reg_name}' in initial state, ignoring.")

        # resetの時点のSPではなく、設定されたSPを空のスタックとみなす
        processor.start_of_stack = regs.sp
