# z80_engine/core/events.py
"""
Core Layer (通知イベント)

ホストアプリケーションがプロセッサの実行に介入するための通知の仕組みと、
各通知に渡される可変なペイロード（イベント引数）を定義します。

ペイロードはリスナー呼び出しの間だけ排他的に渡される値オブジェクトであり、
プロセッサは呼び出し後にそれを保持しません。
"""
from dataclasses import dataclass
from typing import Any, List, Optional

from z80_engine.common.types import InterruptType, Listener, MemoryAccessEventType

# @intent:responsibility コールバックのレジストリを保持し、登録順に同期的に呼び出します。
class EventHandler:
    """
    リスナー（sender, args を受け取る呼び出し可能オブジェクト）の登録と発火を管理します。
    """
    def __init__(self):
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # @intent:responsibility 登録済みのリスナーを一つ取り除きます。未登録の場合は何もしません。
    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)

    # @intent:responsibility 全てのリスナーを登録順に呼び出します。
    # @intent:rationale 発火中にリスナーが登録・解除されても影響を受けないよう、リストのコピーを走査します。
    def fire(self, sender: Any, args: Any = None) -> None:
        for listener in list(self._listeners):
            listener(sender, args)

# @intent:responsibility メモリ/ポートアクセスの前後に発火するイベントの引数です。
@dataclass
class MemoryAccessEventArgs:
    """
    メモリまたはポートへのアクセス前後に渡されるペイロード。

    BEFORE_* イベントでリスナーは `value` を上書きしたり、`cancel_memory_access` を
    立てて下位ストレージへのアクセスを取り消したりできます。
    読み込みの BEFORE_* イベント開始時の `value` は常に 0xFF です。
    AFTER_* イベントでは、対応する BEFORE_* イベント終了時の `cancel_memory_access` と
    `local_user_state` がそのまま引き継がれます。
    """
    event_type: MemoryAccessEventType
    address: int
    value: int
    local_user_state: Any = None
    cancel_memory_access: bool = False

# @intent:responsibility 命令フェッチ開始前に発火するイベントの引数です。
@dataclass
class BeforeInstructionFetchEventArgs:
    execution_stopper: Any  # stop(is_pause) を持つオブジェクト（通常はプロセッサ自身）
    local_user_state: Any = None

# @intent:responsibility 命令のフェッチ完了後、実行前に発火するイベントの引数です。
@dataclass
class BeforeInstructionExecutionEventArgs:
    opcode: bytes
    local_user_state: Any = None

# @intent:responsibility 命令実行後に発火するイベントの引数です。
@dataclass
class AfterInstructionExecutionEventArgs:
    opcode: bytes
    execution_stopper: Any
    local_user_state: Any = None
    total_t_states: int = 0 # ウェイトステートを含む命令全体のTステート数

# @intent:responsibility 命令実行器がフェッチ完了を通知する際の引数です。
@dataclass
class InstructionFetchFinishedEventArgs:
    """
    フェッチされた命令の性質をプロセッサに伝えるフラグ群。
    自動停止判定と割り込み受付判定に使用されます。
    """
    is_ret_instruction: bool = False     # RET, RET cc, RETI, RETN
    is_ld_sp_instruction: bool = False   # LD SP,xx
    is_halt_instruction: bool = False
    is_ei_or_di_instruction: bool = False

# @intent:responsibility 割り込み受付開始時に発火するイベントの引数です。
@dataclass
class InterruptServicingEventArgs:
    interrupt_type: InterruptType
    interrupt_mode: int
    data_bus_value: Optional[int] = None
    service_address: Optional[int] = None
