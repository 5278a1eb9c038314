# tests/core/test_access_mediator.py
"""
z80_engine.core.accessモジュールの単体テスト。
"""
import pytest

from z80_engine.common.types import MemoryAccessEventType, MemoryAccessMode
from z80_engine.core.access import AccessMediator
from z80_engine.core.context import InstructionExecutionContext
from z80_engine.transport.memory import PlainMemory

# @intent:test_suite メモリ/ポートアクセスのイベント、取り消し、アクセスモード、ウェイトステート、範囲検証を検証します。

@pytest.fixture
def mediator():
    return AccessMediator(object(), PlainMemory(0x10000), PlainMemory(0x100))

@pytest.fixture
def context():
    return InstructionExecutionContext()

class TestAccessEvents:
    """
    アクセス前後のイベントとリスナーによる介入のテスト。
    """
    # @intent:test_case_read 読み込み時に BEFORE/AFTER のイベントが発火し、BEFOREの初期値が0xFFであることを検証します。
    def test_read_fires_before_and_after(self, mediator, context):
        mediator.memory.write(0x1234, 0x5A)
        events = []
        mediator.memory_access.add_listener(lambda sender, args: events.append((args.event_type, args.value)))

        assert mediator.read_memory(0x1234, context) == 0x5A
        assert events == [
            (MemoryAccessEventType.BEFORE_MEMORY_READ, 0xFF),
            (MemoryAccessEventType.AFTER_MEMORY_READ, 0x5A),
        ]

    # @intent:test_case_cancel BEFOREで取り消して値を与えると、ストレージは読まれずAFTERに同じ値と取り消しフラグが渡ることを検証します。
    def test_cancelled_read_uses_listener_value(self, mediator, context):
        mediator.memory.write(0x2000, 0x11)
        seen_after = []

        def listener(sender, args):
            if args.event_type == MemoryAccessEventType.BEFORE_MEMORY_READ:
                args.value = 0x42
                args.cancel_memory_access = True
                args.local_user_state = "device"
            else:
                seen_after.append((args.value, args.cancel_memory_access, args.local_user_state))

        mediator.memory_access.add_listener(listener)

        assert mediator.read_memory(0x2000, context) == 0x42
        assert seen_after == [(0x42, True, "device")]

    # @intent:test_case_override AFTERで値を上書きすると、その値が読み込み結果になることを検証します。
    def test_after_read_override(self, mediator, context):
        def listener(sender, args):
            if args.event_type == MemoryAccessEventType.AFTER_MEMORY_READ:
                args.value = 0x99

        mediator.memory_access.add_listener(listener)
        assert mediator.read_memory(0x0000, context) == 0x99

    # @intent:test_case_write BEFOREで書き込み値を上書きすると、その値がストレージに書き込まれることを検証します。
    def test_before_write_override(self, mediator, context):
        def listener(sender, args):
            if args.event_type == MemoryAccessEventType.BEFORE_MEMORY_WRITE:
                args.value = 0x77

        mediator.memory_access.add_listener(listener)
        mediator.write_memory(0x3000, 0x10, context)
        assert mediator.memory.read(0x3000) == 0x77

    # @intent:test_case_cancel 取り消された書き込みはストレージに到達しないことを検証します。
    def test_cancelled_write(self, mediator, context):
        mediator.memory.write(0x3000, 0x01)

        def listener(sender, args):
            if args.event_type.is_before:
                args.cancel_memory_access = True

        mediator.memory_access.add_listener(listener)
        mediator.write_memory(0x3000, 0x10, context)
        assert mediator.memory.read(0x3000) == 0x01

    # @intent:test_case_ports ポートアクセスではポート用のイベント種別が使われることを検証します。
    def test_port_events(self, mediator, context):
        events = []
        mediator.memory_access.add_listener(lambda sender, args: events.append(args.event_type))

        mediator.write_port(0x10, 0xAB, context)
        assert mediator.read_port(0x10, context) == 0xAB
        assert events == [
            MemoryAccessEventType.BEFORE_PORT_WRITE,
            MemoryAccessEventType.AFTER_PORT_WRITE,
            MemoryAccessEventType.BEFORE_PORT_READ,
            MemoryAccessEventType.AFTER_PORT_READ,
        ]
        assert all(event.is_port for event in events)

    # @intent:test_case_ports 8ビットポート空間ではポート番号が256で折り返されることを検証します。
    def test_port_number_wraps(self, mediator, context):
        mediator.ports_space.write(0xFF, 0x3C)
        assert mediator.read_port(0x1FF, context) == 0x3C

class TestAccessModes:
    """
    アクセスモードによる読み書きの制限のテスト。
    """
    # @intent:test_case_mode NOT_CONNECTED では読み込みが0xFF、書き込みはストレージに届かないことを検証します。
    def test_not_connected(self, mediator, context):
        mediator.memory.write(0x4000, 0x12)
        mediator.set_memory_access_mode(0x4000, 0x100, MemoryAccessMode.NOT_CONNECTED)

        assert mediator.read_memory(0x4000, context) == 0xFF
        mediator.write_memory(0x4000, 0x34, context)
        assert mediator.memory.read(0x4000) == 0x12

    # @intent:test_case_mode READ_ONLY は書き込みを無視することを検証します。
    def test_read_only(self, mediator, context):
        mediator.memory.write(0x0000, 0xC3)
        mediator.set_memory_access_mode(0x0000, 0x4000, MemoryAccessMode.READ_ONLY)

        mediator.write_memory(0x0000, 0x00, context)
        assert mediator.read_memory(0x0000, context) == 0xC3

    # @intent:test_case_mode WRITE_ONLY は書き込みを受け付けるが、読み込みはリスナーの値（既定0xFF）になることを検証します。
    def test_write_only(self, mediator, context):
        mediator.set_memory_access_mode(0x8000, 1, MemoryAccessMode.WRITE_ONLY)

        mediator.write_memory(0x8000, 0x55, context)
        assert mediator.memory.read(0x8000) == 0x55
        assert mediator.read_memory(0x8000, context) == 0xFF

    # @intent:test_case_mode 取得したアクセスモードが設定範囲に限られることを検証します。
    def test_access_mode_range(self, mediator):
        mediator.set_memory_access_mode(0x1000, 0x10, MemoryAccessMode.READ_ONLY)
        assert mediator.get_memory_access_mode(0x0FFF) == MemoryAccessMode.READ_AND_WRITE
        assert mediator.get_memory_access_mode(0x1000) == MemoryAccessMode.READ_ONLY
        assert mediator.get_memory_access_mode(0x100F) == MemoryAccessMode.READ_ONLY
        assert mediator.get_memory_access_mode(0x1010) == MemoryAccessMode.READ_AND_WRITE

class TestWaitStates:
    """
    ウェイトステートの加算のテスト。
    """
    # @intent:test_case_wait_states アクセスの種類ごとに対応するウェイトステート表が使われることを検証します。
    def test_wait_states_by_access_kind(self, mediator, context):
        mediator.set_memory_wait_states_for_m1(0x0000, 1, 1)
        mediator.set_memory_wait_states_for_non_m1(0x0000, 1, 2)
        mediator.set_port_wait_states(0x00, 1, 4)

        mediator.fetch_opcode(0x0000, context)
        assert context.accumulated_wait_states == 1
        mediator.read_memory(0x0000, context)
        assert context.accumulated_wait_states == 3
        mediator.write_port(0x00, 0x00, context)
        assert context.accumulated_wait_states == 7

    # @intent:test_case_wait_states 先読みはウェイトステートを加算しないことを検証します。
    def test_peek_adds_no_wait_states(self, mediator, context):
        mediator.set_memory_wait_states_for_m1(0x0000, 1, 3)
        mediator.peek_opcode(0x0000, context)
        assert context.accumulated_wait_states == 0

    # @intent:test_case_wait_states コンテキストが無い場合でもアクセスできることを検証します。
    def test_access_without_context(self, mediator):
        mediator.set_memory_wait_states_for_non_m1(0x0000, 1, 3)
        mediator.write_memory(0x0000, 0x01, None)
        assert mediator.read_memory(0x0000, None) == 0x01

class TestValidation:
    """
    範囲指定と協調オブジェクトの検証のテスト。
    """
    # @intent:test_case_validation 空間を超える範囲、負の長さ、1バイトを超えるウェイトステートがValueErrorになることを検証します。
    def test_invalid_ranges(self, mediator):
        with pytest.raises(ValueError):
            mediator.set_memory_access_mode(0xFFFF, 2, MemoryAccessMode.READ_ONLY)
        with pytest.raises(ValueError):
            mediator.set_memory_wait_states_for_m1(0x0000, -1, 1)
        with pytest.raises(ValueError):
            mediator.set_memory_wait_states_for_non_m1(0x0000, 1, 256)
        with pytest.raises(ValueError):
            mediator.set_port_access_mode(0x100, 1, MemoryAccessMode.READ_ONLY)
        assert mediator.get_memory_access_mode(0xFFFF) == MemoryAccessMode.READ_AND_WRITE

    # @intent:test_case_validation 長さ0の範囲指定は何も変更しないことを検証します。
    def test_empty_range_is_allowed(self, mediator):
        mediator.set_memory_access_mode(0x10000, 0, MemoryAccessMode.READ_ONLY)
        mediator.set_port_wait_states(0x100, 0, 1)

    def test_none_storage_is_rejected(self, mediator):
        with pytest.raises(TypeError):
            mediator.memory = None
        with pytest.raises(TypeError):
            mediator.ports_space = None

class TestExtendedPortsSpace:
    """
    16ビットポート空間への切り替えのテスト。
    """
    @pytest.fixture
    def extended_mediator(self):
        return AccessMediator(object(), PlainMemory(0x10000), PlainMemory(0x10000))

    # @intent:test_case_extended 切り替え時に先頭256ポートの設定が保持され、以降のポートが既定値になることを検証します。
    def test_settings_are_preserved(self, extended_mediator):
        extended_mediator.set_port_access_mode(0x10, 1, MemoryAccessMode.READ_ONLY)
        extended_mediator.set_port_wait_states(0x10, 1, 3)

        extended_mediator.use_extended_ports_space = True

        assert extended_mediator.ports_space_size == 0x10000
        assert extended_mediator.get_port_access_mode(0x10) == MemoryAccessMode.READ_ONLY
        assert extended_mediator.get_port_wait_states(0x10) == 3
        assert extended_mediator.get_port_access_mode(0x1010) == MemoryAccessMode.READ_AND_WRITE
        assert extended_mediator.get_port_wait_states(0x1010) == 0

    # @intent:test_case_extended 拡張ポート空間では16ビットのポート番号でアクセスできることを検証します。
    def test_sixteen_bit_port_numbers(self, extended_mediator, context):
        extended_mediator.use_extended_ports_space = True
        extended_mediator.set_port_access_mode(0x1200, 0x100, MemoryAccessMode.NOT_CONNECTED)

        extended_mediator.write_port(0x12FE, 0x01, context)
        extended_mediator.write_port(0x13FE, 0x02, context)

        assert extended_mediator.ports_space.read(0x12FE) == 0x00
        assert extended_mediator.ports_space.read(0x13FE) == 0x02

    # @intent:test_case_extended 拡張ポート空間の使用中は、小さいポートストレージへの差し替えが拒否されることを検証します。
    def test_small_store_is_rejected_when_extended(self, extended_mediator):
        extended_mediator.use_extended_ports_space = True
        with pytest.raises(ValueError):
            extended_mediator.ports_space = PlainMemory(0x100)

    # @intent:test_case_extended 8ビットに戻すと拡張部分の設定が破棄されることを検証します。
    def test_switch_back_to_eight_bit(self, extended_mediator):
        extended_mediator.use_extended_ports_space = True
        extended_mediator.set_port_access_mode(0x00, 0x200, MemoryAccessMode.READ_ONLY)

        extended_mediator.use_extended_ports_space = False

        assert extended_mediator.ports_space_size == 0x100
        assert extended_mediator.get_port_access_mode(0xFF) == MemoryAccessMode.READ_ONLY
        with pytest.raises(ValueError):
            extended_mediator.set_port_access_mode(0x100, 1, MemoryAccessMode.READ_ONLY)
