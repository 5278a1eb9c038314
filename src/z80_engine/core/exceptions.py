# z80_engine/core/exceptions.py
"""
Core Layer (例外定義)

プロセッサとその協調オブジェクトとの間の契約違反を表す例外を定義します。
設定値の範囲エラーは通常のValueErrorとして扱い、ここには含めません。
"""
from typing import Iterable

from z80_engine.common.numbers import format_bytes

# @intent:responsibility 呼び出し側のバグを示す契約違反（有効期間外のエージェント操作、再入呼び出しなど）を表します。
class ProcessorProtocolError(RuntimeError):
    """
    プロセッサの操作が有効でないタイミングで呼び出されたことを示す例外。
    回復可能な状態ではなく、呼び出し側の実装ミスを示します。
    """
    pass

# @intent:responsibility 命令実行器がフェッチ完了を通知せずに戻ったことを表します。
class InstructionFetchFinishedEventNotFiredError(ProcessorProtocolError):
    """
    InstructionExecutor.execute がフェッチ完了イベントを一度も発火せずに戻った場合に送出されます。
    命令実行器の実装が壊れていることを示します。
    """
    def __init__(self, instruction_address: int, fetched_bytes: Iterable[int], message: str = None):
        self.instruction_address = instruction_address & 0xFFFF
        self.fetched_bytes = bytes(fetched_bytes)
        if message is None:
            message = (
                f"InstructionExecutor.execute returned without having fired the instruction fetch finished event "
                f"(address {self.instruction_address:#06x}, fetched bytes: {format_bytes(self.fetched_bytes) or 'none'})."
            )
        super().__init__(message)
