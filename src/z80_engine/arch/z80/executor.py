# z80_engine/arch/z80/executor.py
"""
Z80 命令実行器。

プロセッサから渡された最初のオペコードバイトを起点に、プレフィックス（CB, ED, DD, FD）を解決し、
命令表の実装関数に処理を委譲します。メモリ、ポート、レジスタへのアクセスは全て
プロセッサエージェント経由で行い、プロセッサの内部には直接触れません。
"""
import logging
from typing import Optional

from z80_engine.arch.z80.instructions import ED_MAP, INDEXABLE_OPCODES, MAIN_MAP, execute_cb, execute_index_cb
from z80_engine.arch.z80.state import Z80Registers
from z80_engine.common.numbers import add_signed_byte, create_word, dec_word, get_high_byte, get_low_byte, inc_word
from z80_engine.core.events import EventHandler, InstructionFetchFinishedEventArgs
from z80_engine.core.interfaces import InstructionExecutor, ProcessorAgent

logger = logging.getLogger(__name__)

# 8ビットレジスタのコード（オペコード内の3ビットフィールド）と属性名の対応
REGISTER_NAMES = {0: "b", 1: "c", 2: "d", 3: "e", 4: "h", 5: "l", 7: "a"}
PREFIX_T_STATES = 4
INDEX_DISPLACEMENT_T_STATES = 12
UNSUPPORTED_ED_T_STATES = 8

# @intent:responsibility Z80の命令をプロセッサエージェント経由で実行します。
class Z80InstructionExecutor(InstructionExecutor):
    """
    既定の命令実行器。

    命令の実装関数は `(executor, opcode) -> Tステート数` の形を持ち、
    オペランドを fetch_byte()/fetch_word() で読み込んだ後、必ず fetch_finished() を呼び出してから
    メモリやポートにアクセスします。

    DD/FDプレフィックスの処理中は `index` が "ix" または "iy" となり、
    HL, H, L, (HL) を参照する命令はそれぞれ IX/IY, IXH/IYH, IXL/IYL, (IX+d)/(IY+d) を参照します。
    """
    def __init__(self, processor_agent: Optional[ProcessorAgent] = None):
        self.processor_agent = processor_agent
        self._instruction_fetch_finished = EventHandler()
        self.index: Optional[str] = None
        self._displacement_used = False

    @property
    def instruction_fetch_finished(self) -> EventHandler:
        return self._instruction_fetch_finished

    @property
    def regs(self) -> Z80Registers:
        return self.processor_agent.registers

    # @intent:responsibility 最初のオペコードバイトから命令を解決して実行し、Tステート数を返します。
    # @intent:pre-condition processor_agent が設定されており、PCは最初のオペコードバイトの次を指している必要があります。
    def execute(self, first_opcode_byte: int) -> int:
        self.index = None
        self._displacement_used = False
        self._increment_r()

        if first_opcode_byte == 0xCB:
            return self._execute_cb_prefixed()
        if first_opcode_byte == 0xED:
            return self._execute_ed_prefixed()
        if first_opcode_byte in (0xDD, 0xFD):
            return self._execute_index_prefixed(first_opcode_byte)
        return MAIN_MAP[first_opcode_byte](self, first_opcode_byte)

    def _execute_cb_prefixed(self) -> int:
        opcode = self.fetch_opcode()
        return execute_cb(self, opcode)

    def _execute_ed_prefixed(self) -> int:
        opcode = self.fetch_opcode()
        handler = ED_MAP.get(opcode)
        if handler is None:
            self.fetch_finished()
            logger.warning(f"Unsupported instruction ED {opcode:02X} executed as NOP.")
            return UNSUPPORTED_ED_T_STATES
        return handler(self, opcode)

    # @intent:responsibility DD/FDプレフィックス付き命令を実行します。
    # @intent:rationale 後続バイトがインデックス命令として意味を持たない場合、プレフィックスは単独のNOPとして扱い、後続バイトは消費しません。
    def _execute_index_prefixed(self, prefix: int) -> int:
        next_opcode = self.processor_agent.peek_next_opcode()
        if next_opcode not in INDEXABLE_OPCODES:
            self.fetch_finished()
            return PREFIX_T_STATES

        self.index = "ix" if prefix == 0xDD else "iy"
        opcode = self.fetch_opcode()
        if opcode == 0xCB:
            return execute_index_cb(self)

        t_states = MAIN_MAP[opcode](self, opcode)
        if self._displacement_used:
            return t_states + INDEX_DISPLACEMENT_T_STATES
        return t_states + PREFIX_T_STATES

    # --- Fetch phase helpers ---

    # @intent:responsibility M1サイクルとして次のオペコードバイトを読み込みます（Rレジスタが進みます）。
    def fetch_opcode(self) -> int:
        opcode = self.processor_agent.fetch_next_opcode()
        self._increment_r()
        return opcode

    def fetch_byte(self) -> int:
        return self.processor_agent.fetch_next_opcode()

    def fetch_word(self) -> int:
        low = self.processor_agent.fetch_next_opcode()
        high = self.processor_agent.fetch_next_opcode()
        return create_word(low, high)

    # @intent:responsibility 命令のフェッチが完了したことをプロセッサに通知します。
    def fetch_finished(
        self,
        is_ret: bool = False,
        is_ld_sp: bool = False,
        is_halt: bool = False,
        is_ei_or_di: bool = False,
    ) -> None:
        self._instruction_fetch_finished.fire(
            self,
            InstructionFetchFinishedEventArgs(
                is_ret_instruction=is_ret,
                is_ld_sp_instruction=is_ld_sp,
                is_halt_instruction=is_halt,
                is_ei_or_di_instruction=is_ei_or_di,
            ),
        )

    def _increment_r(self) -> None:
        regs = self.regs
        regs.r = (regs.r & 0x80) | ((regs.r + 1) & 0x7F)

    # --- Operand helpers ---

    # @intent:responsibility (HL) またはインデックスモードでの (IX+d)/(IY+d) のアドレスを返します。
    # @intent:pre-condition インデックスモードではディスプレースメントを読み込むため、fetch_finished() より前に呼ぶ必要があります。
    def memory_operand_address(self) -> int:
        if self.index is None:
            return self.regs.hl
        self._displacement_used = True
        displacement = self.fetch_byte()
        return add_signed_byte(getattr(self.regs, self.index), displacement)

    # @intent:responsibility HLレジスタペア（インデックスモードではIX/IY）の属性名を返します。
    @property
    def hl_name(self) -> str:
        return self.index or "hl"

    # @intent:responsibility レジスタコードに対応する8ビットレジスタの属性名を返します。
    def reg8_name(self, code: int, has_memory_operand: bool = False) -> str:
        """
        インデックスモードかつ命令がメモリオペランドを持たない場合、H/L は IXH/IXL（IYH/IYL）になります。
        """
        name = REGISTER_NAMES[code]
        if self.index is not None and not has_memory_operand and code in (4, 5):
            return self.index + name
        return name

    def get_reg8(self, code: int, has_memory_operand: bool = False) -> int:
        return getattr(self.regs, self.reg8_name(code, has_memory_operand))

    def set_reg8(self, code: int, value: int, has_memory_operand: bool = False) -> None:
        setattr(self.regs, self.reg8_name(code, has_memory_operand), value & 0xFF)

    # @intent:responsibility 16ビット演算のレジスタペア(ss: BC, DE, HL, SP)の属性名を返します。
    def ss_name(self, code: int) -> str:
        return ("bc", "de", self.hl_name, "sp")[code]

    # @intent:responsibility PUSH/POPのレジスタペア(qq: BC, DE, HL, AF)の属性名を返します。
    def qq_name(self, code: int) -> str:
        return ("bc", "de", self.hl_name, "af")[code]

    # @intent:responsibility 条件コード(NZ, Z, NC, C, PO, PE, P, M)を評価します。
    def condition(self, code: int) -> bool:
        regs = self.regs
        flag = (regs.flag_z, regs.flag_c, regs.flag_pv, regs.flag_s)[code >> 1]
        return flag if code & 1 else not flag

    # --- Execution phase helpers ---

    def read_byte(self, address: int) -> int:
        return self.processor_agent.read_from_memory(address & 0xFFFF)

    def write_byte(self, address: int, value: int) -> None:
        self.processor_agent.write_to_memory(address & 0xFFFF, value & 0xFF)

    def read_word(self, address: int) -> int:
        low = self.read_byte(address)
        high = self.read_byte(inc_word(address))
        return create_word(low, high)

    def write_word(self, address: int, value: int) -> None:
        self.write_byte(address, get_low_byte(value))
        self.write_byte(inc_word(address), get_high_byte(value))

    # @intent:responsibility スタックに16ビット値を積みます（上位バイトが先）。
    def push(self, value: int) -> None:
        regs = self.regs
        regs.sp = dec_word(regs.sp)
        self.write_byte(regs.sp, get_high_byte(value))
        regs.sp = dec_word(regs.sp)
        self.write_byte(regs.sp, get_low_byte(value))

    # @intent:responsibility スタックから16ビット値を取り出します（下位バイトが先）。
    def pop(self) -> int:
        regs = self.regs
        low = self.read_byte(regs.sp)
        regs.sp = inc_word(regs.sp)
        high = self.read_byte(regs.sp)
        regs.sp = inc_word(regs.sp)
        return create_word(low, high)

