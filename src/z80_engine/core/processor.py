# z80_engine/core/processor.py
"""
Core Layer (実行エンジン)

Z80プロセッサの実行ループ（フェッチ、デコード、実行）を駆動するコントローラーです。

- start / continue_ / reset / execute_next_instruction による実行制御
- 自動停止ポリシー（DI+HALT、スタックが空の状態でのRET）とHALT状態の管理
- 命令実行器に対するプロセッサエージェントとしての振る舞い
- ホストアプリケーションへの通知イベントの発火

命令ごとの意味論は命令実行器に、メモリ/ポートアクセスの規則はアクセス仲介層に、
割り込みの受付は割り込みサブシステムに委譲します。
"""
import logging
from typing import Any, List, Optional

from z80_engine.arch.z80.executor import Z80InstructionExecutor
from z80_engine.arch.z80.state import Z80Registers
from z80_engine.common.numbers import create_word, dec_word, get_high_byte, get_low_byte, inc_word
from z80_engine.common.types import MemoryAccessMode, ProcessorState, StopReason
from z80_engine.core.access import MEMORY_SPACE_SIZE, PORTS_SPACE_SIZE, AccessMediator
from z80_engine.core.clock import DefaultClockSynchronizer, validate_effective_clock_frequency
from z80_engine.core.context import InstructionExecutionContext
from z80_engine.core.events import (
    AfterInstructionExecutionEventArgs,
    BeforeInstructionExecutionEventArgs,
    BeforeInstructionFetchEventArgs,
    EventHandler,
    InstructionFetchFinishedEventArgs,
)
from z80_engine.core.exceptions import InstructionFetchFinishedEventNotFiredError, ProcessorProtocolError
from z80_engine.core.interfaces import ClockSynchronizer, InstructionExecutor, InterruptSource, ProcessorAgent
from z80_engine.core.interrupts import InterruptSubsystem
from z80_engine.transport.memory import Memory, PlainMemory

logger = logging.getLogger(__name__)

NOP_OPCODE = 0x00
RETI_RETN_PREFIX = 0xED
RETI_OPCODE = 0x4D
RETN_OPCODE = 0x45
DEFAULT_CLOCK_FREQUENCY_MHZ = 4.0

# @intent:responsibility Z80の実行ループを駆動し、協調オブジェクトを統合するプロセッサ本体です。
class Z80Processor(ProcessorAgent):
    """
    Z80プロセッサのシミュレーター。

    既定では 64K の PlainMemory、256バイトのポート空間、4MHzのクロック同期、
    Z80InstructionExecutor を使用します。いずれもプロパティ経由で差し替え可能です。

    実行は単一スレッドで同期的に行われます。start/continue_/execute_next_instruction/reset を
    通知イベントの内部（実行中）から呼び出すことはできません。
    """
    def __init__(self):
        self._registers = Z80Registers()
        self._mediator = AccessMediator(self, PlainMemory(MEMORY_SPACE_SIZE), PlainMemory(PORTS_SPACE_SIZE))
        self._interrupts = InterruptSubsystem(self, self._mediator)

        self._clock_frequency_in_mhz = DEFAULT_CLOCK_FREQUENCY_MHZ
        self._clock_speed_factor = 1.0
        self._clock_synchronizer: Optional[ClockSynchronizer] = DefaultClockSynchronizer(DEFAULT_CLOCK_FREQUENCY_MHZ)

        self.auto_stop_on_di_plus_halt = True
        self.auto_stop_on_ret_with_stack_empty = False
        self._start_of_stack = 0xFFFF

        self.before_instruction_fetch = EventHandler()
        self.before_instruction_execution = EventHandler()
        self.after_instruction_execution = EventHandler()
        self.before_reti_instruction_execution = EventHandler()
        self.after_reti_instruction_execution = EventHandler()
        self.before_retn_instruction_execution = EventHandler()
        self.after_retn_instruction_execution = EventHandler()

        self._instruction_executor: Optional[InstructionExecutor] = None
        self.instruction_executor = Z80InstructionExecutor()

        self._execution_context: Optional[InstructionExecutionContext] = None
        self._stop_reason = StopReason.NEVER_RAN
        self._state = ProcessorState.STOPPED
        self._is_halted = False
        self._interrupt_mode = 0
        self._t_states_elapsed_since_start = 0
        self._t_states_elapsed_since_reset = 0
        self._user_state: Any = None

    # --- Processor control ---

    # @intent:responsibility プロセッサをリセットし、停止条件が満たされるまで連続実行します。
    def start(self, user_state: Any = None) -> None:
        self._fail_if_loop_active("start")
        if user_state is not None:
            self._user_state = user_state
        self.reset()
        self._t_states_elapsed_since_start = 0
        self._instruction_execution_loop(is_single_instruction=False)

    # @intent:responsibility リセットせずに現在の状態から連続実行を再開します。
    def continue_(self) -> None:
        self._fail_if_loop_active("continue_")
        self._instruction_execution_loop(is_single_instruction=False)

    # @intent:responsibility プロセッサの状態を電源投入直後の状態に戻します。メモリの内容は変更しません。
    def reset(self) -> None:
        self._fail_if_loop_active("reset")
        regs = self._registers
        regs.iff1 = False
        regs.iff2 = False
        regs.pc = 0x0000
        regs.af = 0xFFFF
        regs.sp = 0xFFFF
        self._interrupt_mode = 0
        self._interrupts.clear_pending_nmi()
        self._is_halted = False
        self._t_states_elapsed_since_reset = 0
        self._start_of_stack = regs.sp

    # @intent:responsibility 1命令だけを実行し、割り込み処理を含めた消費Tステート数を返します。
    def execute_next_instruction(self) -> int:
        self._fail_if_loop_active("execute_next_instruction")
        return self._instruction_execution_loop(is_single_instruction=True)

    def _fail_if_loop_active(self, operation: str) -> None:
        if self._execution_context is not None:
            raise ProcessorProtocolError(f"{operation} can't be invoked while an instruction is being executed.")

    # @intent:responsibility 実行ループ本体。停止理由が確定するまで命令を繰り返し実行します。
    # @intent:rationale 例外が発生した場合は状態をSTOPPED/EXCEPTION_THROWNにしてから、例外をそのまま呼び出し元に伝えます。
    def _instruction_execution_loop(self, is_single_instruction: bool) -> int:
        if self._clock_synchronizer is not None:
            self._clock_synchronizer.start()
        self._stop_reason = StopReason.NOT_APPLICABLE
        self._state = ProcessorState.RUNNING
        logger.debug(
            f"Execution loop started at {self._registers.pc:#06x} "
            f"({'single instruction' if is_single_instruction else 'continuous'})."
        )

        total_t_states = 0
        stop_reason = StopReason.NOT_APPLICABLE
        try:
            while stop_reason == StopReason.NOT_APPLICABLE:
                context = InstructionExecutionContext()
                self._execution_context = context

                self._fire_before_instruction_fetch(context)
                if context.must_stop:
                    stop_reason = context.stop_reason
                    total_t_states = 0
                    break

                execution_t_states = self._execute_next_opcode(context)
                self._fail_if_fetch_finished_not_fired(context)

                total_t_states = execution_t_states + context.accumulated_wait_states
                self._add_elapsed_t_states(total_t_states)

                if not is_single_instruction:
                    self._check_auto_stop_for_halt_on_di(context)
                    self._check_auto_stop_for_ret_with_stack_empty(context)
                    self._check_for_ld_sp_instruction(context)

                self._fire_after_instruction_execution(context, total_t_states)

                if not self._is_halted:
                    self._is_halted = context.is_halt_instruction

                interrupt_t_states = self._interrupts.accept_pending_interrupt(self, context)
                total_t_states += interrupt_t_states
                self._add_elapsed_t_states(interrupt_t_states)

                if is_single_instruction:
                    context.stop_reason = StopReason.EXECUTE_NEXT_INSTRUCTION_INVOKED
                elif self._clock_synchronizer is not None:
                    self._clock_synchronizer.try_wait(total_t_states)

                stop_reason = context.stop_reason
        except Exception:
            self._state = ProcessorState.STOPPED
            self._stop_reason = StopReason.EXCEPTION_THROWN
            logger.debug(f"Execution loop stopped by an exception at {self._registers.pc:#06x}.")
            raise
        finally:
            self._execution_context = None
            if self._clock_synchronizer is not None:
                self._clock_synchronizer.stop()

        self._stop_reason = stop_reason
        self._state = ProcessorState.PAUSED if stop_reason == StopReason.PAUSE_INVOKED else ProcessorState.STOPPED
        logger.debug(f"Execution loop stopped at {self._registers.pc:#06x}, reason: {stop_reason.value}.")
        return total_t_states

    def _execute_next_opcode(self, context: InstructionExecutionContext) -> int:
        if self._is_halted:
            context.opcode_bytes.append(NOP_OPCODE)
            return self._instruction_executor.execute(NOP_OPCODE)
        return self._instruction_executor.execute(self.fetch_next_opcode())

    def _fail_if_fetch_finished_not_fired(self, context: InstructionExecutionContext) -> None:
        if context.fetch_complete:
            return
        raise InstructionFetchFinishedEventNotFiredError(
            instruction_address=self._registers.pc - len(context.opcode_bytes),
            fetched_bytes=context.opcode_bytes,
        )

    def _add_elapsed_t_states(self, t_states: int) -> None:
        self._t_states_elapsed_since_start += t_states
        self._t_states_elapsed_since_reset += t_states

    def _check_auto_stop_for_halt_on_di(self, context: InstructionExecutionContext) -> None:
        if self.auto_stop_on_di_plus_halt and context.is_halt_instruction and not self._registers.iff1:
            context.stop_reason = StopReason.DI_PLUS_HALT

    def _check_auto_stop_for_ret_with_stack_empty(self, context: InstructionExecutionContext) -> None:
        if (self.auto_stop_on_ret_with_stack_empty and context.is_ret_instruction
                and context.sp_after_instruction_fetch == self._start_of_stack):
            context.stop_reason = StopReason.RET_WITH_STACK_EMPTY

    def _check_for_ld_sp_instruction(self, context: InstructionExecutionContext) -> None:
        if context.is_ld_sp_instruction:
            self._start_of_stack = self._registers.sp

    # --- Notifications ---

    def _fire_before_instruction_fetch(self, context: InstructionExecutionContext) -> None:
        args = BeforeInstructionFetchEventArgs(execution_stopper=self)
        context.executing_before_instruction_event = True
        try:
            self.before_instruction_fetch.fire(self, args)
        finally:
            context.executing_before_instruction_event = False
        context.local_user_state = args.local_user_state

    # @intent:responsibility 命令実行器からのフェッチ完了通知を受け取り、命令実行前イベントを発火します。
    # @intent:rationale 1命令中に複数回通知された場合、最初の通知のみを採用します。
    def _on_instruction_fetch_finished(self, sender, args: InstructionFetchFinishedEventArgs) -> None:
        context = self._execution_context
        if context is None or context.fetch_complete:
            return

        context.fetch_complete = True
        context.is_ret_instruction = args.is_ret_instruction
        context.is_ld_sp_instruction = args.is_ld_sp_instruction
        context.is_halt_instruction = args.is_halt_instruction
        context.is_ei_or_di_instruction = args.is_ei_or_di_instruction
        context.sp_after_instruction_fetch = self._registers.sp

        opcode = bytes(context.opcode_bytes)
        before_args = BeforeInstructionExecutionEventArgs(opcode, context.local_user_state)
        self.before_instruction_execution.fire(self, before_args)
        context.local_user_state = before_args.local_user_state
        self._fire_reti_retn_event(
            opcode, self.before_reti_instruction_execution, self.before_retn_instruction_execution
        )

    def _fire_after_instruction_execution(self, context: InstructionExecutionContext, total_t_states: int) -> None:
        opcode = bytes(context.opcode_bytes)
        self.after_instruction_execution.fire(
            self,
            AfterInstructionExecutionEventArgs(
                opcode, execution_stopper=self, local_user_state=context.local_user_state, total_t_states=total_t_states
            ),
        )
        self._fire_reti_retn_event(
            opcode, self.after_reti_instruction_execution, self.after_retn_instruction_execution
        )

    # @intent:utility_function RETI/RETN（ミラーを含む）であれば対応するイベントを発火します。
    def _fire_reti_retn_event(self, opcode: bytes, reti_event: EventHandler, retn_event: EventHandler) -> None:
        if len(opcode) < 2 or opcode[0] != RETI_RETN_PREFIX:
            return
        second = opcode[1] & 0xCF
        if second == RETI_OPCODE:
            reti_event.fire(self)
        elif second == RETN_OPCODE:
            retn_event.fire(self)

    @property
    def memory_access(self) -> EventHandler:
        return self._mediator.memory_access

    @property
    def maskable_interrupt_servicing_start(self) -> EventHandler:
        return self._interrupts.maskable_interrupt_servicing_start

    @property
    def non_maskable_interrupt_servicing_start(self) -> EventHandler:
        return self._interrupts.non_maskable_interrupt_servicing_start

    # --- Information and state ---

    @property
    def t_states_elapsed_since_start(self) -> int:
        return self._t_states_elapsed_since_start

    @property
    def t_states_elapsed_since_reset(self) -> int:
        return self._t_states_elapsed_since_reset

    @property
    def stop_reason(self) -> StopReason:
        return self._stop_reason

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def user_state(self) -> Any:
        return self._user_state

    @user_state.setter
    def user_state(self, value: Any) -> None:
        self._user_state = value

    @property
    def is_halted(self) -> bool:
        return self._is_halted

    # @intent:responsibility HALT状態を解除します（割り込みの受付時に使用されます）。
    def exit_halt_state(self) -> None:
        self._is_halted = False

    @property
    def interrupt_mode(self) -> int:
        return self._interrupt_mode

    @interrupt_mode.setter
    def interrupt_mode(self, value: int) -> None:
        if value not in (0, 1, 2):
            raise ValueError(f"Interrupt mode can be set to 0, 1 or 2 only, got {value}.")
        self._interrupt_mode = value

    @property
    def start_of_stack(self) -> int:
        return self._start_of_stack

    @start_of_stack.setter
    def start_of_stack(self, value: int) -> None:
        self._start_of_stack = value & 0xFFFF

    # --- Interrupts ---

    def register_interrupt_source(self, source: InterruptSource) -> None:
        self._interrupts.register_interrupt_source(source)

    def unregister_all_interrupt_sources(self) -> None:
        self._interrupts.unregister_all_interrupt_sources()

    @property
    def registered_interrupt_sources(self) -> List[InterruptSource]:
        return self._interrupts.registered_interrupt_sources

    # --- Collaborators ---

    @property
    def registers(self) -> Z80Registers:
        return self._registers

    @registers.setter
    def registers(self, value: Z80Registers) -> None:
        if value is None:
            raise TypeError("Registers must not be None.")
        self._registers = value

    @property
    def memory(self) -> Memory:
        return self._mediator.memory

    @memory.setter
    def memory(self, value: Memory) -> None:
        self._mediator.memory = value

    @property
    def ports_space(self) -> Memory:
        return self._mediator.ports_space

    @ports_space.setter
    def ports_space(self, value: Memory) -> None:
        self._mediator.ports_space = value

    @property
    def use_extended_ports_space(self) -> bool:
        return self._mediator.use_extended_ports_space

    @use_extended_ports_space.setter
    def use_extended_ports_space(self, value: bool) -> None:
        self._mediator.use_extended_ports_space = value

    @property
    def instruction_executor(self) -> InstructionExecutor:
        return self._instruction_executor

    # @intent:responsibility 命令実行器を差し替え、フェッチ完了通知の購読とエージェントの設定をやり直します。
    @instruction_executor.setter
    def instruction_executor(self, value: InstructionExecutor) -> None:
        if value is None:
            raise TypeError("Instruction executor must not be None.")
        if self._instruction_executor is not None:
            self._instruction_executor.instruction_fetch_finished.remove_listener(self._on_instruction_fetch_finished)
        self._instruction_executor = value
        value.processor_agent = self
        value.instruction_fetch_finished.add_listener(self._on_instruction_fetch_finished)

    @property
    def clock_synchronizer(self) -> Optional[ClockSynchronizer]:
        return self._clock_synchronizer

    @clock_synchronizer.setter
    def clock_synchronizer(self, value: Optional[ClockSynchronizer]) -> None:
        self._clock_synchronizer = value
        if value is not None:
            value.effective_clock_frequency_in_mhz = self.effective_clock_frequency_in_mhz

    # --- Clock configuration ---

    @property
    def clock_frequency_in_mhz(self) -> float:
        return self._clock_frequency_in_mhz

    @clock_frequency_in_mhz.setter
    def clock_frequency_in_mhz(self, value: float) -> None:
        self._set_effective_clock_frequency(value, self._clock_speed_factor)
        self._clock_frequency_in_mhz = value

    @property
    def clock_speed_factor(self) -> float:
        return self._clock_speed_factor

    @clock_speed_factor.setter
    def clock_speed_factor(self, value: float) -> None:
        self._set_effective_clock_frequency(self._clock_frequency_in_mhz, value)
        self._clock_speed_factor = value

    @property
    def effective_clock_frequency_in_mhz(self) -> float:
        return self._clock_frequency_in_mhz * self._clock_speed_factor

    # @intent:responsibility 周波数と速度係数をまとめて設定します。検証されるのは両者の積（実効周波数）のみです。
    def configure_clock(self, clock_frequency_in_mhz: float, clock_speed_factor: float) -> None:
        self._set_effective_clock_frequency(clock_frequency_in_mhz, clock_speed_factor)
        self._clock_frequency_in_mhz = clock_frequency_in_mhz
        self._clock_speed_factor = clock_speed_factor

    def _set_effective_clock_frequency(self, clock_frequency: float, speed_factor: float) -> None:
        effective = clock_frequency * speed_factor
        validate_effective_clock_frequency(effective)
        if self._clock_synchronizer is not None:
            self._clock_synchronizer.effective_clock_frequency_in_mhz = effective

    # --- Memory and ports configuration ---

    def set_memory_access_mode(self, start_address: int, length: int, mode: MemoryAccessMode) -> None:
        self._mediator.set_memory_access_mode(start_address, length, mode)

    def get_memory_access_mode(self, address: int) -> MemoryAccessMode:
        return self._mediator.get_memory_access_mode(address)

    def set_ports_space_access_mode(self, start_port: int, length: int, mode: MemoryAccessMode) -> None:
        self._mediator.set_port_access_mode(start_port, length, mode)

    def get_port_access_mode(self, port_number: int) -> MemoryAccessMode:
        return self._mediator.get_port_access_mode(port_number)

    def set_memory_wait_states_for_m1(self, start_address: int, length: int, wait_states: int) -> None:
        self._mediator.set_memory_wait_states_for_m1(start_address, length, wait_states)

    def get_memory_wait_states_for_m1(self, address: int) -> int:
        return self._mediator.get_memory_wait_states_for_m1(address)

    def set_memory_wait_states_for_non_m1(self, start_address: int, length: int, wait_states: int) -> None:
        self._mediator.set_memory_wait_states_for_non_m1(start_address, length, wait_states)

    def get_memory_wait_states_for_non_m1(self, address: int) -> int:
        return self._mediator.get_memory_wait_states_for_non_m1(address)

    def set_port_wait_states(self, start_port: int, length: int, wait_states: int) -> None:
        self._mediator.set_port_wait_states(start_port, length, wait_states)

    def get_port_wait_states(self, port_number: int) -> int:
        return self._mediator.get_port_wait_states(port_number)

    # --- Hooks for the host ---

    # @intent:responsibility 現在のPCをスタックに積み、指定アドレスに分岐します（非M1の書き込み経路を使用）。
    def execute_call(self, address: int) -> None:
        regs = self._registers
        return_address = regs.pc
        sp = dec_word(regs.sp)
        self._mediator.write_memory(sp, get_high_byte(return_address), self._execution_context)
        sp = dec_word(sp)
        self._mediator.write_memory(sp, get_low_byte(return_address), self._execution_context)
        regs.sp = sp
        regs.pc = address & 0xFFFF

    # @intent:responsibility スタックからPCを取り出します（非M1の読み込み経路を使用）。
    def execute_ret(self) -> None:
        regs = self._registers
        sp = regs.sp
        low = self._mediator.read_memory(sp, self._execution_context)
        high = self._mediator.read_memory(inc_word(sp), self._execution_context)
        regs.pc = create_word(low, high)
        regs.sp = (sp + 2) & 0xFFFF

    # --- Processor agent ---

    def _require_context(self, operation: str) -> InstructionExecutionContext:
        context = self._execution_context
        if context is None:
            raise ProcessorProtocolError(f"{operation} can be invoked only while an instruction is being executed.")
        return context

    def _require_fetch_in_progress(self, operation: str) -> InstructionExecutionContext:
        context = self._require_context(operation)
        if context.fetch_complete:
            raise ProcessorProtocolError(
                f"{operation} can be invoked only before the instruction fetch finished event has been fired."
            )
        return context

    def _require_fetch_complete(self, operation: str) -> InstructionExecutionContext:
        context = self._require_context(operation)
        if not context.fetch_complete:
            raise ProcessorProtocolError(
                f"{operation} can be invoked only after the instruction fetch finished event has been fired."
            )
        return context

    # @intent:responsibility PCの指すオペコードをM1サイクルで読み込み、PCを進めます。先読み済みの場合はその値を消費します。
    def fetch_next_opcode(self) -> int:
        context = self._require_fetch_in_progress("fetch_next_opcode")
        regs = self._registers
        if context.peeked_opcode is None:
            opcode = self._mediator.fetch_opcode(regs.pc, context)
        else:
            # 先読み時に保留していたM1ウェイトステートをここで加算する
            context.accumulated_wait_states += self._mediator.get_memory_wait_states_for_m1(
                context.address_of_peeked_opcode
            )
            opcode = context.peeked_opcode
            context.peeked_opcode = None

        context.opcode_bytes.append(opcode)
        regs.pc = inc_word(regs.pc)
        return opcode

    # @intent:responsibility PCの指すオペコードを読み込みますが、PCもウェイトステートも変更しません。
    def peek_next_opcode(self) -> int:
        context = self._require_fetch_in_progress("peek_next_opcode")
        if context.peeked_opcode is None:
            address = self._registers.pc
            context.peeked_opcode = self._mediator.peek_opcode(address, context)
            context.address_of_peeked_opcode = address
        return context.peeked_opcode

    def read_from_memory(self, address: int) -> int:
        context = self._require_fetch_complete("read_from_memory")
        return self._mediator.read_memory(address, context)

    def write_to_memory(self, address: int, value: int) -> None:
        context = self._require_fetch_complete("write_to_memory")
        self._mediator.write_memory(address, value, context)

    # @intent:responsibility ポートから読み込みます。拡張ポート空間では上位バイトがポート番号に含まれます。
    def read_from_port(self, port_number: int, port_number_high: int = 0) -> int:
        context = self._require_fetch_complete("read_from_port")
        return self._mediator.read_port(self._port_address(port_number, port_number_high), context)

    def write_to_port(self, port_number: int, value: int, port_number_high: int = 0) -> None:
        context = self._require_fetch_complete("write_to_port")
        self._mediator.write_port(self._port_address(port_number, port_number_high), value, context)

    def _port_address(self, port_number: int, port_number_high: int) -> int:
        if self._mediator.use_extended_ports_space:
            return create_word(port_number, port_number_high)
        return port_number & 0xFF

    def set_interrupt_mode(self, interrupt_mode: int) -> None:
        self._require_fetch_complete("set_interrupt_mode")
        self.interrupt_mode = interrupt_mode

    # @intent:responsibility 実行ループの停止を要求します。フェッチ完了後、または命令フェッチ前イベントの内部でのみ有効です。
    def stop(self, is_pause: bool = False) -> None:
        context = self._require_context("stop")
        if not context.executing_before_instruction_event:
            self._require_fetch_complete("stop")
        context.stop_reason = StopReason.PAUSE_INVOKED if is_pause else StopReason.STOP_INVOKED
