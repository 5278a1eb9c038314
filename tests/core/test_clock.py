# tests/core/test_clock.py
"""
z80_engine.core.clockモジュールの単体テスト。
"""
import pytest

from z80_engine.core.clock import DefaultClockSynchronizer, validate_effective_clock_frequency

# @intent:test_suite クロック周波数の検証と、実時間への同期（待機の累積と実行）を検証します。

class FakeTime:
    """時刻の取得とsleepを置き換えるテスト用の時計。sleepすると時刻が進みます。"""
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

@pytest.fixture
def fake_time():
    return FakeTime()

@pytest.fixture
def synchronizer(fake_time):
    return DefaultClockSynchronizer(1.0, time_source=fake_time.time, sleep=fake_time.sleep)

class TestClockFrequencyValidation:
    # @intent:test_case_validation 実効クロック周波数の上下限が検証されることを検証します。
    def test_bounds(self):
        validate_effective_clock_frequency(0.001)
        validate_effective_clock_frequency(100.0)
        with pytest.raises(ValueError):
            validate_effective_clock_frequency(0.0005)
        with pytest.raises(ValueError):
            validate_effective_clock_frequency(100.5)

    # @intent:test_case_validation 範囲外の周波数を設定しても値が変化しないことを検証します。
    def test_setter_keeps_previous_value(self, synchronizer):
        with pytest.raises(ValueError):
            synchronizer.effective_clock_frequency_in_mhz = 0.0
        assert synchronizer.effective_clock_frequency_in_mhz == 1.0

    def test_constructor_rejects_invalid_frequency(self):
        with pytest.raises(ValueError):
            DefaultClockSynchronizer(1000.0)

class TestDefaultClockSynchronizer:
    """
    DefaultClockSynchronizerの待機動作のテスト。
    """
    def test_start_and_stop(self, synchronizer):
        assert synchronizer.is_running is False
        synchronizer.start()
        assert synchronizer.is_running is True
        synchronizer.stop()
        assert synchronizer.is_running is False

    # @intent:test_case_wait 待機時間が最小単位に満たない間はsleepしないことを検証します。
    def test_short_periods_do_not_sleep(self, synchronizer, fake_time):
        synchronizer.start()
        for _ in range(100):
            synchronizer.try_wait(4)
        assert fake_time.sleeps == []

    # @intent:test_case_wait 累積した待機時間が最小単位に達したらまとめてsleepすることを検証します。
    def test_sleeps_when_pending_time_accumulates(self, synchronizer, fake_time):
        synchronizer.start()
        synchronizer.try_wait(4_000)
        synchronizer.try_wait(6_000)
        assert fake_time.sleeps == [pytest.approx(0.01)]

    # @intent:test_case_wait 実際の経過時間の分だけ待機時間が差し引かれることを検証します。
    def test_elapsed_time_is_subtracted(self, synchronizer, fake_time):
        synchronizer.start()
        fake_time.now = 0.0078125
        synchronizer.try_wait(10_000)
        assert fake_time.sleeps == []

        synchronizer.try_wait(20_000)
        assert fake_time.sleeps == [pytest.approx(0.0221875)]

    # @intent:test_case_wait sleep後は累積値がリセットされることを検証します。
    def test_accumulator_resets_after_sleep(self, synchronizer, fake_time):
        synchronizer.start()
        synchronizer.try_wait(10_000)
        synchronizer.try_wait(100)
        assert len(fake_time.sleeps) == 1

    # @intent:test_case_wait 周波数が高いほど同じサイクル数での待機時間が短くなることを検証します。
    def test_frequency_scales_wait(self, fake_time):
        synchronizer = DefaultClockSynchronizer(4.0, time_source=fake_time.time, sleep=fake_time.sleep)
        synchronizer.start()
        synchronizer.try_wait(80_000)
        assert fake_time.sleeps == [pytest.approx(0.02)]

    # @intent:test_case_wait start() を呼ばずに try_wait() した場合、その時点から計測を開始することを検証します。
    def test_try_wait_starts_lazily(self, synchronizer, fake_time):
        fake_time.now = 5.0
        synchronizer.try_wait(10_000)
        assert synchronizer.is_running is True
        assert fake_time.sleeps == [pytest.approx(0.01)]
