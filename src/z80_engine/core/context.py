# z80_engine/core/context.py
"""
Core Layer (命令実行コンテキスト)

実行ループの1反復（1命令）の間だけ存在する一時的な状態を保持します。
コンテキストは反復ごとに新しく生成され、反復の終了とともに破棄されます。
プロセッサが保持するコンテキストがNoneであることは、実行中の命令がないことを意味します。
"""
from dataclasses import dataclass, field
from typing import Any, Optional

from z80_engine.common.types import StopReason

# @intent:responsibility 1命令分の実行状態（フェッチ済みバイト、ウェイトステート、停止要求など）を保持します。
@dataclass
class InstructionExecutionContext:
    stop_reason: StopReason = StopReason.NOT_APPLICABLE
    opcode_bytes: bytearray = field(default_factory=bytearray)
    fetch_complete: bool = False

    # peek_next_opcode による1バイトの先読みキャッシュ
    peeked_opcode: Optional[int] = None
    address_of_peeked_opcode: int = 0

    accumulated_wait_states: int = 0

    # フェッチ完了通知で命令実行器から渡されるフラグ
    is_ret_instruction: bool = False
    is_ld_sp_instruction: bool = False
    is_halt_instruction: bool = False
    is_ei_or_di_instruction: bool = False

    sp_after_instruction_fetch: int = 0
    local_user_state: Any = None
    executing_before_instruction_event: bool = False

    @property
    def must_stop(self) -> bool:
        return self.stop_reason != StopReason.NOT_APPLICABLE
