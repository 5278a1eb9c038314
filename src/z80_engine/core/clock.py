# z80_engine/core/clock.py
"""
Core Layer (クロック同期)

シミュレートされたTステート数を実時間に換算し、必要に応じてスレッドを一時停止することで、
実行速度を目標のクロック周波数に合わせます。
"""
import time
from typing import Callable

from z80_engine.core.interfaces import ClockSynchronizer

MIN_EFFECTIVE_CLOCK_FREQUENCY_MHZ = 0.001
MAX_EFFECTIVE_CLOCK_FREQUENCY_MHZ = 100.0

# @intent:responsibility 実効クロック周波数（MHz）が許容範囲内であるかを検証します。
def validate_effective_clock_frequency(value: float) -> None:
    if not MIN_EFFECTIVE_CLOCK_FREQUENCY_MHZ <= value <= MAX_EFFECTIVE_CLOCK_FREQUENCY_MHZ:
        raise ValueError(
            f"Effective clock frequency must be between {MIN_EFFECTIVE_CLOCK_FREQUENCY_MHZ} "
            f"and {MAX_EFFECTIVE_CLOCK_FREQUENCY_MHZ} MHz, got {value}."
        )

# @intent:responsibility 経過時間の計測とsleepによってプロセッサの実行速度を抑制します。
# @intent:rationale OSのsleep精度は低いため、待機時間が最小単位に達するまで累積してからまとめて待機します。
class DefaultClockSynchronizer(ClockSynchronizer):
    """
    既定のクロック同期実装。

    try_wait() に渡されたサイクル数をマイクロ秒に換算して累積し、
    累積値が実際の経過時間を MIN_MICROSECONDS_TO_WAIT 以上上回ったときにのみ待機します。
    time_source と sleep はテストで差し替え可能です。
    """
    MIN_MICROSECONDS_TO_WAIT = 10_000

    def __init__(
        self,
        effective_clock_frequency_in_mhz: float = 4.0,
        time_source: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], None] = time.sleep,
    ):
        validate_effective_clock_frequency(effective_clock_frequency_in_mhz)
        self._effective_clock_frequency_in_mhz = effective_clock_frequency_in_mhz
        self._time_source = time_source
        self._sleep = sleep
        self._started_at = None
        self._accumulated_microseconds = 0.0

    @property
    def effective_clock_frequency_in_mhz(self) -> float:
        return self._effective_clock_frequency_in_mhz

    @effective_clock_frequency_in_mhz.setter
    def effective_clock_frequency_in_mhz(self, value: float) -> None:
        validate_effective_clock_frequency(value)
        self._effective_clock_frequency_in_mhz = value

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    def start(self) -> None:
        self._started_at = self._time_source()
        self._accumulated_microseconds = 0.0

    def stop(self) -> None:
        self._started_at = None

    def try_wait(self, period_length_in_cycles: int) -> None:
        if self._started_at is None:
            self.start()

        # 1MHzでは1サイクルが1マイクロ秒
        self._accumulated_microseconds += period_length_in_cycles / self._effective_clock_frequency_in_mhz
        elapsed_microseconds = (self._time_source() - self._started_at) * 1_000_000
        pending_microseconds = self._accumulated_microseconds - elapsed_microseconds

        if pending_microseconds >= self.MIN_MICROSECONDS_TO_WAIT:
            self._sleep(pending_microseconds / 1_000_000)
            self._accumulated_microseconds = 0.0
            self._started_at = self._time_source()
