"""
Z80命令セット実装パッケージ。

命令表（MAIN_MAP, ED_MAP）と、CBプレフィックス命令の実行関数を公開します。
各実装関数は `(executor, opcode) -> Tステート数` の形を持ちます。
"""
from .control import execute_cb, execute_index_cb
from .maps import ED_MAP, INDEXABLE_OPCODES, MAIN_MAP

__all__ = ["ED_MAP", "INDEXABLE_OPCODES", "MAIN_MAP", "execute_cb", "execute_index_cb"]
