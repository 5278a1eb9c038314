"""
共通の型定義を提供するモジュール。
プロセッサの状態、停止理由、メモリアクセスモードなど、
複数のレイヤーで共通して使用される列挙型を定義します。
"""
from enum import Enum
from typing import Any, Callable

# @intent:data_structure イベントリスナーの型エイリアス。(sender, args) を受け取ります。
Listener = Callable[[Any, Any], None]

# @intent:responsibility プロセッサの現在の実行状態を定義します。
class ProcessorState(Enum):
    STOPPED = "STOPPED"   # 一度も実行されていない、または停止理由（一時停止以外）で停止した
    PAUSED = "PAUSED"     # stop(is_pause=True) によって停止した
    RUNNING = "RUNNING"   # 実行ループが動作中

# @intent:responsibility 実行ループが終了した理由を定義します。
class StopReason(Enum):
    NOT_APPLICABLE = "NOT_APPLICABLE"                                    # 実行中のため停止理由なし
    NEVER_RAN = "NEVER_RAN"                                              # 生成以来一度も実行されていない
    STOP_INVOKED = "STOP_INVOKED"                                        # stop(is_pause=False)
    PAUSE_INVOKED = "PAUSE_INVOKED"                                      # stop(is_pause=True)
    EXECUTE_NEXT_INSTRUCTION_INVOKED = "EXECUTE_NEXT_INSTRUCTION_INVOKED"
    DI_PLUS_HALT = "DI_PLUS_HALT"                                        # 割り込み禁止中のHALT
    RET_WITH_STACK_EMPTY = "RET_WITH_STACK_EMPTY"                        # スタックが空の状態でのRET
    EXCEPTION_THROWN = "EXCEPTION_THROWN"                                # 実行中に例外が発生した

# @intent:responsibility アドレスまたはポート単位のアクセス許可を定義します。
class MemoryAccessMode(Enum):
    READ_AND_WRITE = "READ_AND_WRITE"
    READ_ONLY = "READ_ONLY"
    WRITE_ONLY = "WRITE_ONLY"       # 読み込み値はリスナーが与えた値（既定0xFF）
    NOT_CONNECTED = "NOT_CONNECTED" # 下位のストレージには一切アクセスしない

    @property
    def can_read(self) -> bool:
        return self in (MemoryAccessMode.READ_AND_WRITE, MemoryAccessMode.READ_ONLY)

    @property
    def can_write(self) -> bool:
        return self in (MemoryAccessMode.READ_AND_WRITE, MemoryAccessMode.WRITE_ONLY)

# @intent:responsibility メモリアクセスイベントの種類を定義します。
class MemoryAccessEventType(Enum):
    BEFORE_MEMORY_READ = "BEFORE_MEMORY_READ"
    AFTER_MEMORY_READ = "AFTER_MEMORY_READ"
    BEFORE_MEMORY_WRITE = "BEFORE_MEMORY_WRITE"
    AFTER_MEMORY_WRITE = "AFTER_MEMORY_WRITE"
    BEFORE_PORT_READ = "BEFORE_PORT_READ"
    AFTER_PORT_READ = "AFTER_PORT_READ"
    BEFORE_PORT_WRITE = "BEFORE_PORT_WRITE"
    AFTER_PORT_WRITE = "AFTER_PORT_WRITE"

    @property
    def is_before(self) -> bool:
        return self.value.startswith("BEFORE")

    @property
    def is_port(self) -> bool:
        return "PORT" in self.value

# @intent:responsibility 受け付けた割り込みの種類を定義します。
class InterruptType(Enum):
    MASKABLE = "MASKABLE"
    NON_MASKABLE = "NON_MASKABLE"
