# z80_engine/core/interfaces.py
"""
Core Layer (協調オブジェクトのインターフェース)

プロセッサが利用する外部協調オブジェクト（命令実行器、クロック同期、割り込み源）と、
プロセッサが命令実行器に公開するエージェントの契約を定義します。
継承の階層は設けず、小さな能力単位のインターフェースとして定義します。
"""
from abc import ABC, abstractmethod
from typing import Optional

from z80_engine.core.events import EventHandler

# @intent:responsibility 実行ループの停止を要求する能力を定義します。
class ExecutionStopper(ABC):
    @abstractmethod
    def stop(self, is_pause: bool = False) -> None:
        """
        実行ループの停止を要求します。
        is_pauseがTrueの場合、停止理由はPAUSE_INVOKEDとなり、状態はPAUSEDになります。
        """
        pass

# @intent:responsibility 命令実行器がプロセッサとやり取りするための操作群を定義します。
class ProcessorAgent(ExecutionStopper):
    """
    命令実行器に公開される、プロセッサに対する限定された操作の集合。

    fetch_next_opcode / peek_next_opcode はフェッチ完了通知より前にのみ、
    それ以外のメモリ/ポート操作はフェッチ完了通知の後にのみ呼び出すことができます。
    """
    @property
    @abstractmethod
    def registers(self):
        """現在のレジスタセットを返します。"""
        pass

    @abstractmethod
    def fetch_next_opcode(self) -> int:
        """PCの指すアドレスから次のオペコードバイトを読み込み、PCを1進めます。"""
        pass

    @abstractmethod
    def peek_next_opcode(self) -> int:
        """PCの指すアドレスから次のオペコードバイトを読み込みますが、PCは変更しません。"""
        pass

    @abstractmethod
    def read_from_memory(self, address: int) -> int:
        pass

    @abstractmethod
    def write_to_memory(self, address: int, value: int) -> None:
        pass

    @abstractmethod
    def read_from_port(self, port_number: int, port_number_high: int = 0) -> int:
        pass

    @abstractmethod
    def write_to_port(self, port_number: int, value: int, port_number_high: int = 0) -> None:
        pass

    @abstractmethod
    def set_interrupt_mode(self, interrupt_mode: int) -> None:
        pass

# @intent:responsibility Z80命令を実行するオブジェクトの契約を定義します。
class InstructionExecutor(ABC):
    """
    execute() の処理の流れは次の通りでなければなりません。

    1. 必要に応じて processor_agent.fetch_next_opcode() で追加のオペコードバイトを読み込む。
    2. instruction_fetch_finished イベントを発火する。
    3. processor_agent のメンバーを介して命令を処理する。
    4. ウェイトステートを含まない命令のTステート数を返す。

    execute() が呼ばれた時点で、PCは渡された最初のオペコードバイトの次のアドレスを指しています。
    """
    processor_agent: Optional[ProcessorAgent] = None

    @property
    @abstractmethod
    def instruction_fetch_finished(self) -> EventHandler:
        """命令のオペコードのフェッチが完了したときに発火するイベント。"""
        pass

    @abstractmethod
    def execute(self, first_opcode_byte: int) -> int:
        pass

# @intent:responsibility 実時間をシミュレート対象のクロックに同期させるオブジェクトの契約を定義します。
class ClockSynchronizer(ABC):
    @property
    @abstractmethod
    def effective_clock_frequency_in_mhz(self) -> float:
        pass

    @effective_clock_frequency_in_mhz.setter
    @abstractmethod
    def effective_clock_frequency_in_mhz(self, value: float) -> None:
        pass

    @abstractmethod
    def start(self) -> None:
        """時間計測の内部状態をリセットして計測を開始します。"""
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @abstractmethod
    def try_wait(self, period_length_in_cycles: int) -> None:
        """
        指定されたクロックサイクル数が経過したことを通知します。
        必要に応じて呼び出し元のスレッドを一時停止し、実時間を合わせます。
        """
        pass

# @intent:responsibility 割り込み源の契約を定義します。
class InterruptSource(ABC):
    @property
    @abstractmethod
    def nmi_interrupt_pulse(self) -> EventHandler:
        """NMIパルス（エッジ）を通知するイベント。"""
        pass

    @property
    @abstractmethod
    def int_line_is_active(self) -> bool:
        """INTラインの論理状態。Trueは割り込み要求中を意味します。"""
        pass

    @property
    @abstractmethod
    def value_on_data_bus(self) -> Optional[int]:
        """割り込み応答時にデータバスに置かれる値。モード0とモード2で使用されます。"""
        pass
