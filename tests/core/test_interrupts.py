# tests/core/test_interrupts.py
"""
z80_engine.core.interruptsモジュールの単体テスト。
"""
import threading

import pytest

from z80_engine.common.types import InterruptType, StopReason
from z80_engine.core.exceptions import ProcessorProtocolError
from z80_engine.core.interrupts import BasicInterruptSource, NmiLatch
from z80_engine.core.processor import Z80Processor

# @intent:test_suite 割り込み源の登録、NMIとマスカブル割り込みの優先順位、割り込みモード0/1/2の受付処理を検証します。

@pytest.fixture
def processor():
    proc = Z80Processor()
    proc.clock_synchronizer = None
    proc.registers.sp = 0x8000
    return proc

@pytest.fixture
def source():
    return BasicInterruptSource()

def enable_interrupts(processor: Z80Processor) -> None:
    processor.registers.iff1 = True
    processor.registers.iff2 = True

def stacked_return_address(processor: Z80Processor) -> int:
    low, high = processor.memory.get_contents(processor.registers.sp, 2)
    return (high << 8) | low

class TestNmiLatch:
    # @intent:test_case_latch NMIの保留フラグが一度だけ消費されることを検証します。
    def test_consume_once(self):
        latch = NmiLatch()
        assert latch.consume() is False
        latch.signal()
        latch.signal()
        assert latch.is_pending is True
        assert latch.consume() is True
        assert latch.consume() is False

    def test_clear(self):
        latch = NmiLatch()
        latch.signal()
        latch.clear()
        assert latch.is_pending is False

class TestRegistration:
    """
    割り込み源の登録・解除のテスト。
    """
    # @intent:test_case_registration 同じ割り込み源を二重に登録しても一つだけが保持されることを検証します。
    def test_double_registration_keeps_one(self, processor, source):
        processor.register_interrupt_source(source)
        processor.register_interrupt_source(source)

        assert processor.registered_interrupt_sources == [source]
        assert len(source.nmi_interrupt_pulse) == 1

    # @intent:test_case_registration 登録済みの割り込み源の一覧がコピーとして返されることを検証します。
    def test_registered_sources_is_a_copy(self, processor, source):
        processor.register_interrupt_source(source)
        processor.registered_interrupt_sources.clear()
        assert processor.registered_interrupt_sources == [source]

    # @intent:test_case_registration 全登録解除の後は割り込みが一切受け付けられないことを検証します。
    def test_unregister_all_stops_interrupts(self, processor, source):
        enable_interrupts(processor)
        processor.register_interrupt_source(source)
        # 登録解除前に受け取ったまま未処理のNMIパルスも破棄される
        source.trigger_nmi()
        processor.unregister_all_interrupt_sources()

        source.set_int_line(True)
        source.trigger_nmi()

        assert processor.registered_interrupt_sources == []
        assert len(source.nmi_interrupt_pulse) == 0
        assert processor.execute_next_instruction() == 4
        assert processor.registers.pc == 0x0001

class TestNonMaskableInterrupt:
    """
    NMIの受付処理のテスト。
    """
    # @intent:test_case_nmi NMIが0066hへのCALLとして受け付けられ、IFF1のみがクリアされることを検証します。
    def test_nmi_is_serviced(self, processor, source):
        enable_interrupts(processor)
        processor.register_interrupt_source(source)
        serviced = []
        processor.non_maskable_interrupt_servicing_start.add_listener(lambda sender, args: serviced.append(args))

        source.trigger_nmi()
        t_states = processor.execute_next_instruction()

        regs = processor.registers
        assert t_states == 4 + 11
        assert regs.pc == 0x0066
        assert regs.sp == 0x7FFE
        assert stacked_return_address(processor) == 0x0001
        assert regs.iff1 is False
        assert regs.iff2 is True
        assert len(serviced) == 1
        assert serviced[0].interrupt_type == InterruptType.NON_MASKABLE
        assert serviced[0].service_address == 0x0066

    # @intent:test_case_nmi 割り込み禁止中でもNMIは受け付けられることを検証します。
    def test_nmi_ignores_iff1(self, processor, source):
        processor.register_interrupt_source(source)
        source.trigger_nmi()
        processor.execute_next_instruction()
        assert processor.registers.pc == 0x0066

    # @intent:test_case_priority NMIとINTが同時に保留されている場合、NMIが優先されることを検証します。
    def test_nmi_beats_maskable(self, processor, source):
        enable_interrupts(processor)
        processor.interrupt_mode = 1
        processor.register_interrupt_source(source)
        source.set_int_line(True)
        source.trigger_nmi()

        processor.execute_next_instruction()
        assert processor.registers.pc == 0x0066

        # IFF1がクリアされているため、INTは受け付けられない
        processor.execute_next_instruction()
        assert processor.registers.pc == 0x0067

    # @intent:test_case_threading 別スレッドから発生させたNMIが次の命令の後で受け付けられることを検証します。
    def test_nmi_from_another_thread(self, processor, source):
        processor.register_interrupt_source(source)
        thread = threading.Thread(target=source.trigger_nmi)
        thread.start()
        thread.join()

        processor.execute_next_instruction()
        assert processor.registers.pc == 0x0066

    # @intent:test_case_reset reset() で保留中のNMIが破棄されることを検証します。
    def test_reset_discards_pending_nmi(self, processor, source):
        processor.register_interrupt_source(source)
        source.trigger_nmi()
        processor.reset()

        processor.execute_next_instruction()
        assert processor.registers.pc == 0x0001

class TestMaskableInterrupt:
    """
    マスカブル割り込みの受付処理のテスト。
    """
    # @intent:test_case_ei_di EIの直後には割り込みが受け付けられず、次の命令の後で受け付けられることを検証します。
    def test_not_accepted_right_after_ei(self, processor, source):
        processor.memory.set_contents(0x0000, [0xFB, 0x00])  # EI / NOP
        processor.interrupt_mode = 1
        processor.register_interrupt_source(source)
        source.set_int_line(True)

        assert processor.execute_next_instruction() == 4
        assert processor.registers.pc == 0x0001

        assert processor.execute_next_instruction() == 4 + 13
        assert processor.registers.pc == 0x0038
        assert stacked_return_address(processor) == 0x0002

    # @intent:test_case_ei_di DIの直後にはNMIも受け付けられないことを検証します。
    def test_nmi_not_accepted_right_after_di(self, processor, source):
        processor.memory.set_contents(0x0000, [0xF3, 0x00])  # DI / NOP
        processor.register_interrupt_source(source)
        source.trigger_nmi()

        processor.execute_next_instruction()
        assert processor.registers.pc == 0x0001

        processor.execute_next_instruction()
        assert processor.registers.pc == 0x0066

    # @intent:test_case_iff IFF1が0の場合、INTラインがアクティブでも受け付けられないことを検証します。
    def test_not_accepted_when_disabled(self, processor, source):
        processor.register_interrupt_source(source)
        source.set_int_line(True)

        assert processor.execute_next_instruction() == 4
        assert processor.registers.pc == 0x0001

    # @intent:test_case_im0 モード0ではデータバスの値が命令として実行されることを検証します。
    def test_mode_0_executes_data_bus_opcode(self, processor, source):
        enable_interrupts(processor)
        processor.register_interrupt_source(source)
        source.set_int_line(True, value_on_data_bus=0xCF)  # RST 08h

        assert processor.execute_next_instruction() == 4 + 13
        assert processor.registers.pc == 0x0008
        assert processor.registers.iff1 is False
        assert processor.registers.iff2 is False

    # @intent:test_case_im0 モード0でデータバスに値が無い場合、RST 38h が実行されることを検証します。
    def test_mode_0_without_data_bus_value(self, processor, source):
        enable_interrupts(processor)
        processor.register_interrupt_source(source)
        source.set_int_line(True)

        processor.execute_next_instruction()
        assert processor.registers.pc == 0x0038

    # @intent:test_case_im0 モード0でオペランドを伴う命令がデータバスに置かれた場合、その値を示すProcessorProtocolErrorとなることを検証します。
    def test_mode_0_rejects_multi_byte_opcode(self, processor, source):
        enable_interrupts(processor)
        processor.register_interrupt_source(source)
        source.set_int_line(True, value_on_data_bus=0xCD)  # CALL nn

        with pytest.raises(ProcessorProtocolError, match="single byte opcodes on the data bus, got 0xcd"):
            processor.execute_next_instruction()
        assert processor.stop_reason == StopReason.EXCEPTION_THROWN

    # @intent:test_case_im2 モード2ではIレジスタとデータバスの値から作られたベクタ経由で分岐することを検証します。
    def test_mode_2_uses_vector_table(self, processor, source):
        enable_interrupts(processor)
        processor.interrupt_mode = 2
        processor.registers.i = 0x90
        processor.memory.set_contents(0x9010, [0x00, 0xA0])
        processor.register_interrupt_source(source)
        source.set_int_line(True, value_on_data_bus=0x10)
        serviced = []
        processor.maskable_interrupt_servicing_start.add_listener(lambda sender, args: serviced.append(args))

        assert processor.execute_next_instruction() == 4 + 19
        assert processor.registers.pc == 0xA000
        assert stacked_return_address(processor) == 0x0001
        assert serviced[0].interrupt_type == InterruptType.MASKABLE
        assert serviced[0].interrupt_mode == 2
        assert serviced[0].data_bus_value == 0x10
        assert serviced[0].service_address == 0xA000

    # @intent:test_case_im2 ベクタの読み込みがメモリアクセスイベントを発火し、ウェイトステートが加算されることを検証します。
    def test_mode_2_vector_read_goes_through_mediator(self, processor, source):
        enable_interrupts(processor)
        processor.interrupt_mode = 2
        processor.registers.i = 0x90
        processor.memory.set_contents(0x90FF, [0x00, 0xB0])
        processor.set_memory_wait_states_for_non_m1(0x90FF, 2, 1)
        processor.register_interrupt_source(source)
        source.set_int_line(True)
        addresses = []
        processor.memory_access.add_listener(
            lambda sender, args: addresses.append(args.address) if args.event_type.is_before else None
        )

        processor.execute_next_instruction()

        assert processor.registers.pc == 0xB000
        assert 0x90FF in addresses and 0x9100 in addresses

    # @intent:test_case_order INTラインがアクティブな最初の割り込み源（登録順）が採用されることを検証します。
    def test_first_active_source_wins(self, processor):
        enable_interrupts(processor)
        idle, first, second = BasicInterruptSource(), BasicInterruptSource(), BasicInterruptSource()
        first.set_int_line(True, value_on_data_bus=0xD7)   # RST 10h
        second.set_int_line(True, value_on_data_bus=0xDF)  # RST 18h
        for s in (idle, first, second):
            processor.register_interrupt_source(s)

        processor.execute_next_instruction()
        assert processor.registers.pc == 0x0010

    # @intent:test_case_halt 割り込みの受付によりHALT状態が解除されることを検証します。
    def test_interrupt_exits_halt(self, processor, source):
        processor.memory.set_contents(0x0000, [0x76])  # HALT
        enable_interrupts(processor)
        processor.interrupt_mode = 1
        processor.register_interrupt_source(source)

        processor.execute_next_instruction()
        assert processor.is_halted is True

        source.set_int_line(True)
        processor.execute_next_instruction()

        assert processor.is_halted is False
        assert processor.registers.pc == 0x0038
        assert stacked_return_address(processor) == 0x0001
