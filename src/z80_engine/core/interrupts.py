# z80_engine/core/interrupts.py
"""
Core Layer (割り込みサブシステム)

登録された割り込み源を管理し、各命令の実行後に保留中の割り込みを受け付けます。

- NMI はエッジ（パルス）として通知され、スレッド安全なラッチに保持されます。
- マスカブル割り込みはレベル（INTライン）として、登録順に最初のアクティブな割り込み源が採用されます。
- 受付処理は割り込みモード 0/1/2 に従います。
"""
import logging
import threading
from typing import List, Optional

from z80_engine.common.numbers import create_word, inc_word
from z80_engine.common.types import InterruptType
from z80_engine.core.access import AccessMediator
from z80_engine.core.context import InstructionExecutionContext
from z80_engine.core.events import EventHandler, InterruptServicingEventArgs
from z80_engine.core.exceptions import ProcessorProtocolError
from z80_engine.core.interfaces import InterruptSource

logger = logging.getLogger(__name__)

NMI_SERVICE_ROUTINE = 0x0066
RST_38H_OPCODE = 0xFF
NMI_T_STATES = 11
IM0_T_STATES = 13
IM1_T_STATES = 13
IM2_T_STATES = 19

# @intent:responsibility 任意のスレッドからセットされ、実行ループで一度だけ消費されるNMI保留フラグです。
class NmiLatch:
    def __init__(self):
        self._lock = threading.Lock()
        self._pending = False

    def signal(self) -> None:
        with self._lock:
            self._pending = True

    # @intent:responsibility 保留中であればフラグをクリアしてTrueを返します。
    def consume(self) -> bool:
        with self._lock:
            pending = self._pending
            self._pending = False
            return pending

    def clear(self) -> None:
        with self._lock:
            self._pending = False

    @property
    def is_pending(self) -> bool:
        with self._lock:
            return self._pending

# @intent:responsibility ホストやテストから直接操作できる、汎用の割り込み源を提供します。
class BasicInterruptSource(InterruptSource):
    """
    trigger_nmi() でNMIパルスを発生させ、set_int_line() でINTラインとデータバスの値を設定します。
    INTラインの状態は別スレッドから変更される可能性があるため、ロックで保護されます。
    """
    def __init__(self):
        self._nmi_interrupt_pulse = EventHandler()
        self._lock = threading.Lock()
        self._int_line_is_active = False
        self._value_on_data_bus: Optional[int] = None

    @property
    def nmi_interrupt_pulse(self) -> EventHandler:
        return self._nmi_interrupt_pulse

    @property
    def int_line_is_active(self) -> bool:
        with self._lock:
            return self._int_line_is_active

    @property
    def value_on_data_bus(self) -> Optional[int]:
        with self._lock:
            return self._value_on_data_bus

    def set_int_line(self, active: bool, value_on_data_bus: Optional[int] = None) -> None:
        with self._lock:
            self._int_line_is_active = active
            self._value_on_data_bus = None if value_on_data_bus is None else value_on_data_bus & 0xFF

    def trigger_nmi(self) -> None:
        self._nmi_interrupt_pulse.fire(self)

# @intent:responsibility 割り込み源の登録と、命令実行後の割り込み受付の判定・実行を担当します。
class InterruptSubsystem:
    def __init__(self, sender, mediator: AccessMediator):
        self._sender = sender
        self._mediator = mediator
        self._sources: List[InterruptSource] = []
        self._nmi_latch = NmiLatch()

        self.maskable_interrupt_servicing_start = EventHandler()
        self.non_maskable_interrupt_servicing_start = EventHandler()

    # --- Registration ---

    # @intent:responsibility 割り込み源を登録します。同じ割り込み源の二重登録は無視されます。
    def register_interrupt_source(self, source: InterruptSource) -> None:
        if source in self._sources:
            logger.debug(f"Interrupt source {source!r} is already registered, ignoring.")
            return
        self._sources.append(source)
        source.nmi_interrupt_pulse.add_listener(self._on_nmi_pulse)

    # @intent:responsibility 全ての割り込み源の登録を解除します。受付前のNMIパルスも破棄されます。
    def unregister_all_interrupt_sources(self) -> None:
        for source in self._sources:
            source.nmi_interrupt_pulse.remove_listener(self._on_nmi_pulse)
        self._sources.clear()
        self._nmi_latch.clear()

    @property
    def registered_interrupt_sources(self) -> List[InterruptSource]:
        return list(self._sources)

    def _on_nmi_pulse(self, sender, args) -> None:
        self._nmi_latch.signal()

    @property
    def is_nmi_pending(self) -> bool:
        return self._nmi_latch.is_pending

    def clear_pending_nmi(self) -> None:
        self._nmi_latch.clear()

    # --- Acceptance ---

    # @intent:responsibility 保留中の割り込みを受け付け、その処理に要したTステート数を返します。受け付けなかった場合は0です。
    # @intent:pre-condition 命令の実行が完了しており、コンテキストのフェッチ完了フラグが立っている必要があります。
    def accept_pending_interrupt(self, processor, context: InstructionExecutionContext) -> int:
        """
        判定順序:
          1. 直前の命令がEIまたはDIであれば、何も受け付けない。
          2. NMIが保留中であれば（フラグを消費して）NMIを受け付ける。
          3. IFF1が0であれば何も受け付けない。
          4. INTラインがアクティブな割り込み源が無ければ何も受け付けない。
          5. 最初のアクティブな割り込み源について、割り込みモードに従い受け付ける。
        """
        if context.is_ei_or_di_instruction:
            return 0

        registers = processor.registers

        if self._nmi_latch.consume():
            processor.exit_halt_state()
            registers.iff1 = False
            processor.execute_call(NMI_SERVICE_ROUTINE)
            logger.debug("Non-maskable interrupt accepted.")
            self.non_maskable_interrupt_servicing_start.fire(
                self._sender,
                InterruptServicingEventArgs(
                    InterruptType.NON_MASKABLE, processor.interrupt_mode, service_address=NMI_SERVICE_ROUTINE),
            )
            return NMI_T_STATES

        if not registers.iff1:
            return 0

        active_source = next((s for s in self._sources if s.int_line_is_active), None)
        if active_source is None:
            return 0

        registers.iff1 = False
        registers.iff2 = False
        processor.exit_halt_state()

        interrupt_mode = processor.interrupt_mode
        data_bus_value = active_source.value_on_data_bus
        bus_byte = RST_38H_OPCODE if data_bus_value is None else data_bus_value & 0xFF

        if interrupt_mode == 0:
            # データバスから供給されるのは1バイトのみのため、オペランドを伴う命令は実行できない
            try:
                processor.instruction_executor.execute(bus_byte)
            except ProcessorProtocolError as err:
                raise ProcessorProtocolError(
                    f"Interrupt mode 0 supports only single byte opcodes on the data bus, got {bus_byte:#04x}."
                ) from err
            t_states = IM0_T_STATES
        elif interrupt_mode == 1:
            processor.instruction_executor.execute(RST_38H_OPCODE)
            t_states = IM1_T_STATES
        else:
            pointer = create_word(bus_byte, registers.i)
            low = self._mediator.read_memory(pointer, context)
            high = self._mediator.read_memory(inc_word(pointer), context)
            processor.execute_call(create_word(low, high))
            t_states = IM2_T_STATES

        logger.debug(f"Maskable interrupt accepted in mode {interrupt_mode}, service address {registers.pc:#06x}.")
        self.maskable_interrupt_servicing_start.fire(
            self._sender,
            InterruptServicingEventArgs(
                InterruptType.MASKABLE, interrupt_mode, data_bus_value=data_bus_value, service_address=registers.pc),
        )
        return t_states
