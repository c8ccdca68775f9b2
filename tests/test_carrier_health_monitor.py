# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest

from pycarrier.carrier.jitter import MeasurementJitter, NoJitter, UniformJitter
from pycarrier.carrier.models import CarrierStatistics, CarrierTrend, MonitorState
from pycarrier.carrier.modulation import ModulationType
from pycarrier.carrier.monitor import CarrierHealthMonitor
from pycarrier.config.monitor_config import MonitorConfig
from pycarrier.lib.types import TimestampMs

PILOTS = [0, 6, 12, 18, 24, 30, 36, 42]


class _FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> TimestampMs:
        return TimestampMs(self.now)

    def advance(self, ms: int) -> None:
        self.now += ms


class _FakeModem:
    def __init__(self, snr: float | Sequence[Any] = 20.0, num_carriers: int = 48) -> None:
        self.rows: list[Any] = (
            [{"snr": snr} for _ in range(num_carriers)] if isinstance(snr, (int, float)) else list(snr))
        self.modulation_calls: list[tuple[int, ModulationType]] = []
        self.enabled_calls: list[tuple[int, bool]] = []

    def set_all(self, snr: float) -> None:
        self.rows = [{"snr": snr} for _ in self.rows]

    def get_carrier_status(self) -> list[Any]:
        return list(self.rows)

    def set_carrier_modulation(self, carrier_id: int, modulation: ModulationType) -> None:
        self.modulation_calls.append((carrier_id, modulation))

    def set_carrier_enabled(self, carrier_id: int, enabled: bool) -> None:
        self.enabled_calls.append((carrier_id, enabled))


class _FailingModem(_FakeModem):
    def set_carrier_modulation(self, carrier_id: int, modulation: ModulationType) -> None:
        raise ConnectionError("modem unreachable")

    def set_carrier_enabled(self, carrier_id: int, enabled: bool) -> None:
        raise ConnectionError("modem unreachable")


class _BrokenStatusModem(_FakeModem):
    def get_carrier_status(self) -> list[Any]:
        raise TimeoutError("status poll timed out")


def _monitor(modem: _FakeModem, clock: _FakeClock | None = None, **config: Any) -> CarrierHealthMonitor:
    monitor = CarrierHealthMonitor(config=config, jitter=NoJitter(), clock=clock or _FakeClock())
    monitor.initialize(modem, autostart=False)
    return monitor


def test_initial_carriers() -> None:
    monitor = _monitor(_FakeModem())
    carriers = monitor.get_all_carrier_health()

    assert len(carriers) == 48
    assert [c.id for c in carriers] == list(range(48))
    assert [c.id for c in carriers if c.is_pilot] == PILOTS
    for c in carriers:
        assert c.snr == (30.0 if c.is_pilot else 15.0)
        assert c.modulation == ModulationType.QPSK
        assert c.capacity_bits_per_symbol == 2
        assert c.enabled and c.power_level == 1.0 and c.ber == 0.0
        assert c.history == []
    assert monitor.state == MonitorState.IDLE


@pytest.mark.parametrize("snr,expected", [
    (35.0, ModulationType.QAM64),
    (21.0, ModulationType.QAM64),
    (20.0, ModulationType.QAM64),
    (19.9, ModulationType.QAM16),
    (14.0, ModulationType.QAM16),
    (12.0, ModulationType.PSK8),
    (7.0, ModulationType.QPSK),
    (6.9, ModulationType.BPSK),
    (3.0, ModulationType.BPSK),
    (0.0, ModulationType.BPSK),
])
def test_modulation_ladder(snr: float, expected: ModulationType) -> None:
    monitor = CarrierHealthMonitor(jitter=NoJitter())
    assert monitor.select_optimal_modulation(snr) == expected


@pytest.mark.parametrize("snr,power", [(30.0, 0.7), (25.0, 0.8), (22.0, 0.8), (18.0, 0.9), (15.0, 1.0), (5.0, 1.0)])
def test_power_recommendation(snr: float, power: float) -> None:
    assert CarrierHealthMonitor.calculate_optimal_power(snr) == power


def test_all_carriers_at_22_db() -> None:
    modem = _FakeModem(snr=22.0)
    monitor = _monitor(modem)

    assert monitor.tick() == 48

    stats = monitor.get_statistics()
    assert stats.total_carriers == 48
    assert stats.enabled_carriers == 48
    assert stats.average_snr == pytest.approx(22.0)
    assert stats.system_capacity == 48 * 6 == monitor.get_system_capacity()
    assert stats.modulation_distribution[ModulationType.QAM64] == 48
    assert stats.modulation_distribution[ModulationType.QPSK] == 0
    assert len(modem.modulation_calls) == 48
    assert set(m for _, m in modem.modulation_calls) == {ModulationType.QAM64}

    carrier = monitor.get_carrier_health(1)
    assert carrier is not None
    assert carrier.power_level == 0.8
    # BER is computed at the modulation in force before the ladder moved
    assert carrier.ber == pytest.approx(ModulationType.QPSK.bit_error_rate(22.0))

    # the next tick reports BER at the new modulation and sends no commands
    monitor.tick()
    carrier = monitor.get_carrier_health(1)
    assert carrier is not None
    assert carrier.ber == pytest.approx(ModulationType.QAM64.bit_error_rate(22.0))
    assert len(modem.modulation_calls) == 48


def test_capacity_matches_modulation_of_enabled_carriers() -> None:
    modem = _FakeModem(snr=[{"snr": 5.0 + i * 0.5} for i in range(48)])
    monitor = _monitor(modem)
    monitor.tick()

    expected = sum(c.modulation.bits_per_symbol for c in monitor.get_all_carrier_health() if c.enabled)
    assert monitor.get_system_capacity() == expected
    for c in monitor.get_all_carrier_health():
        assert c.capacity_bits_per_symbol == c.modulation.bits_per_symbol


def test_pilots_never_disabled_by_min_snr() -> None:
    monitor = _monitor(_FakeModem(snr=22.0), min_snr=100.0)
    monitor.tick()

    enabled = [c.id for c in monitor.get_all_carrier_health() if c.enabled]
    assert enabled == PILOTS
    assert monitor.get_healthy_carriers() == []
    assert monitor.get_system_capacity() == len(PILOTS) * 6


def test_capacity_counts_only_enabled_carriers() -> None:
    # spacing larger than the carrier count leaves carrier 0 as the only pilot
    monitor = _monitor(_FakeModem(snr=1.0, num_carriers=4), num_carriers=4, pilot_spacing=10)
    monitor.tick()
    assert [c.enabled for c in monitor.get_all_carrier_health()] == [True, False, False, False]

    monitor = _monitor(_FakeModem(snr=1.0, num_carriers=3), num_carriers=3, pilot_spacing=10)
    monitor.set_carrier_enabled(0, False)  # pilots ignore the command
    for cid in (1, 2):
        monitor.set_carrier_enabled(cid, False)
    assert monitor.get_system_capacity() == 2
    assert monitor.get_statistics().enabled_carriers == 1


def test_enable_policy_follows_min_snr() -> None:
    modem = _FakeModem(snr=2.0)
    monitor = _monitor(modem)
    monitor.tick()

    carriers = monitor.get_all_carrier_health()
    assert all(c.enabled == c.is_pilot for c in carriers)

    modem.set_all(3.0)
    monitor.tick()
    assert all(c.enabled for c in monitor.get_all_carrier_health())
    assert sorted(monitor.get_healthy_carriers()) == list(range(48))

    # enable changes made by the loop are not commanded to the modem
    assert modem.enabled_calls == []


def test_history_is_bounded_fifo() -> None:
    clock = _FakeClock()
    monitor = _monitor(_FakeModem(snr=12.0), clock=clock, history_size=5)

    for _ in range(10):
        clock.advance(100)
        monitor.tick()

    carrier = monitor.get_carrier_health(3)
    assert carrier is not None
    assert len(carrier.history) == 5
    stamps = [s.timestamp for s in carrier.history]
    assert stamps == sorted(stamps)
    assert stamps[-1] == clock.now == carrier.last_update
    assert stamps[0] == clock.now - 400
    for sample in carrier.history:
        assert sample.success_rate == pytest.approx(1.0 - sample.ber)


def test_default_history_holds_one_hundred_samples() -> None:
    monitor = _monitor(_FakeModem(snr=12.0))
    for _ in range(105):
        monitor.tick()

    for carrier in monitor.get_all_carrier_health():
        assert len(carrier.history) == 100
    assert monitor.tick_count == 105


def _run_trend(first: float, second: float, ticks_each: int = 10) -> CarrierHealthMonitor:
    modem = _FakeModem(snr=first)
    monitor = _monitor(modem)
    for _ in range(ticks_each):
        monitor.tick()
    modem.set_all(second)
    for _ in range(ticks_each):
        monitor.tick()
    return monitor


def test_trend_improving_degrading_stable() -> None:
    assert _run_trend(10.0, 15.0).get_carrier_trend(1) == CarrierTrend.IMPROVING
    assert _run_trend(15.0, 10.0).get_carrier_trend(1) == CarrierTrend.DEGRADING
    assert _run_trend(12.0, 12.5).get_carrier_trend(1) == CarrierTrend.STABLE


def test_trend_needs_twenty_samples() -> None:
    modem = _FakeModem(snr=10.0)
    monitor = _monitor(modem)
    for _ in range(9):
        monitor.tick()
    modem.set_all(25.0)
    for _ in range(10):
        monitor.tick()

    assert monitor.get_carrier_trend(1) == CarrierTrend.STABLE
    monitor.tick()
    assert monitor.get_carrier_trend(1) == CarrierTrend.IMPROVING
    assert monitor.get_carrier_trend(999) == CarrierTrend.STABLE


def test_jitter_is_applied_and_snr_clamped_at_zero() -> None:
    class _Minus3(MeasurementJitter):
        def sample(self) -> float:
            return -3.0

    monitor = CarrierHealthMonitor(jitter=_Minus3(), clock=_FakeClock())
    monitor.initialize(_FakeModem(snr=[{"snr": 10.0}, {"snr": 1.0}] + [{"snr": 20.0}] * 46), autostart=False)
    monitor.tick()

    assert monitor.get_carrier_health(0).snr == pytest.approx(7.0)  # type: ignore[union-attr]
    assert monitor.get_carrier_health(1).snr == 0.0  # type: ignore[union-attr]


def test_malformed_and_missing_status_rows_are_skipped() -> None:
    rows: list[Any] = [{"snr": 20.0} for _ in range(48)]
    rows[3] = None
    rows[4] = {"snr": "not-a-number"}
    rows[5] = {"snr": float("nan")}
    rows[7] = {"power": 1.0}
    modem = _FakeModem(snr=rows[:40])
    monitor = _monitor(modem)

    assert monitor.tick() == 40 - 4
    for cid in (3, 4, 5, 7, 40, 47):
        carrier = monitor.get_carrier_health(cid)
        assert carrier is not None
        assert carrier.history == []
        assert carrier.snr == 15.0
    assert monitor.get_carrier_health(8).snr == 20.0  # type: ignore[union-attr]
    assert monitor.tick_count == 1


def test_status_rows_may_be_objects() -> None:
    class _Row:
        def __init__(self, snr: float) -> None:
            self.snr = snr

    monitor = _monitor(_FakeModem(snr=[_Row(18.0) for _ in range(48)]))
    assert monitor.tick() == 48
    assert monitor.get_carrier_health(2).modulation == ModulationType.QAM16  # type: ignore[union-attr]


def test_status_read_failure_skips_tick() -> None:
    monitor = _monitor(_BrokenStatusModem())
    assert monitor.tick() == 0
    assert all(c.history == [] for c in monitor.get_all_carrier_health())


def test_modem_command_failures_are_counted() -> None:
    monitor = _monitor(_FailingModem(snr=22.0))
    assert monitor.tick() == 48

    # local state still moves even though the modem refused the command
    assert all(c.modulation == ModulationType.QAM64 for c in monitor.get_all_carrier_health())
    assert monitor.get_command_failure_count() == 48

    monitor.set_carrier_enabled(1, False)
    assert monitor.get_command_failure_count() == 49
    assert monitor.get_carrier_health(1).enabled is False  # type: ignore[union-attr]


def test_adaptive_modulation_can_be_turned_off() -> None:
    modem = _FakeModem(snr=30.0)
    monitor = _monitor(modem, adaptive_modulation=False)
    monitor.tick()

    assert all(c.modulation == ModulationType.QPSK for c in monitor.get_all_carrier_health())
    assert modem.modulation_calls == []


def test_set_carrier_enabled() -> None:
    modem = _FakeModem()
    monitor = _monitor(modem)

    monitor.set_carrier_enabled(0, False)
    monitor.set_carrier_enabled(999, False)
    monitor.set_carrier_enabled(7, False)

    assert monitor.get_carrier_health(0).enabled is True  # type: ignore[union-attr]
    assert monitor.get_carrier_health(7).enabled is False  # type: ignore[union-attr]
    assert modem.enabled_calls == [(7, False)]


def test_force_carrier_modulation() -> None:
    modem = _FakeModem()
    monitor = _monitor(modem)

    monitor.force_carrier_modulation(2, "8PSK")
    monitor.force_carrier_modulation(3, ModulationType.QAM16)
    monitor.force_carrier_modulation(999, ModulationType.BPSK)

    assert monitor.get_carrier_health(2).modulation == ModulationType.PSK8  # type: ignore[union-attr]
    assert monitor.get_carrier_health(2).capacity_bits_per_symbol == 3  # type: ignore[union-attr]
    assert modem.modulation_calls == [(2, ModulationType.PSK8), (3, ModulationType.QAM16)]

    with pytest.raises(ValueError):
        monitor.force_carrier_modulation(2, "256QAM")


def test_accessors_return_copies() -> None:
    monitor = _monitor(_FakeModem(snr=20.0))
    monitor.tick()

    snapshot = monitor.get_carrier_health(1)
    assert snapshot is not None
    snapshot.snr = 0.0
    snapshot.history.clear()
    monitor.get_all_carrier_health()[2].enabled = False

    fresh = monitor.get_carrier_health(1)
    assert fresh is not None
    assert fresh.snr == 20.0
    assert len(fresh.history) == 1
    assert monitor.get_carrier_health(2).enabled is True  # type: ignore[union-attr]
    assert monitor.get_carrier_health(48) is None
    assert monitor.get_carrier_health(-1) is None


def test_statistics_round_trip() -> None:
    monitor = _monitor(_FakeModem(snr=[{"snr": 2.0 + i * 0.6} for i in range(48)]))
    monitor.tick()

    stats = monitor.get_statistics()
    restored = CarrierStatistics.model_validate_json(stats.model_dump_json())
    assert restored == stats
    assert set(restored.modulation_distribution) == set(ModulationType)
    assert sum(restored.modulation_distribution.values()) == restored.enabled_carriers
    disabled = sum(1 for c in monitor.get_all_carrier_health() if not c.enabled)
    assert disabled > 0
    assert stats.enabled_carriers + disabled == stats.total_carriers


def test_empty_statistics() -> None:
    monitor = CarrierHealthMonitor(jitter=NoJitter())
    stats = monitor.get_statistics()

    assert stats.total_carriers == 0
    assert stats.average_snr == 0.0
    assert stats.system_capacity == 0
    assert monitor.get_average_snr() == 0.0
    assert monitor.tick() == 0


def test_update_config() -> None:
    monitor = _monitor(_FakeModem(snr=22.0))

    config = monitor.update_config({"minSNR": 10.0}, history_size=3)
    assert config.min_snr == 10.0
    assert config.history_size == 3

    monitor.update_config(snrThresholds={"64QAM": 25.0})
    assert monitor.config.snr_thresholds.qam64 == 25.0
    assert monitor.config.snr_thresholds.qam16 == 14.0
    monitor.tick()
    assert monitor.get_carrier_health(1).modulation == ModulationType.QAM16  # type: ignore[union-attr]


def test_invalid_update_leaves_config_unchanged() -> None:
    monitor = _monitor(_FakeModem())
    before = monitor.config

    with pytest.raises(ValueError):
        monitor.update_config(snr_thresholds={"QPSK": 2.0})
    with pytest.raises(ValueError):
        monitor.update_config(min_snr=-1.0)
    with pytest.raises(ValueError):
        monitor.update_config(history_size=0)
    with pytest.raises(ValueError):
        monitor.update_config(sample_interval_ms=0)
    with pytest.raises(ValueError):
        monitor.update_config(noSuchKey=1)

    assert monitor.config == before


def test_config_mutation_through_property_is_isolated() -> None:
    monitor = _monitor(_FakeModem())
    monitor.config.min_snr = 50.0
    assert monitor.config.min_snr == 3.0


def test_constructor_accepts_config_model() -> None:
    config = MonitorConfig(num_carriers=12, pilot_spacing=4)
    monitor = CarrierHealthMonitor(config=config, jitter=NoJitter())
    monitor.initialize(_FakeModem(num_carriers=12), autostart=False)

    assert [c.id for c in monitor.get_all_carrier_health() if c.is_pilot] == [0, 4, 8]


def test_reset_without_loop_rebuilds_carriers() -> None:
    modem = _FakeModem(snr=22.0)
    monitor = _monitor(modem)
    monitor.tick()
    monitor.update_config(num_carriers=12)

    monitor.reset()

    carriers = monitor.get_all_carrier_health()
    assert len(carriers) == 12
    assert all(c.history == [] and c.modulation == ModulationType.QPSK for c in carriers)
    assert monitor.is_running is False


def test_update_carrier_health_is_tick() -> None:
    monitor = _monitor(_FakeModem(snr=12.0))
    assert monitor.update_carrier_health() == 48
    assert monitor.tick_count == 1


def test_end_to_end_convergence_with_default_jitter() -> None:
    modem = _FakeModem(snr=22.0)
    monitor = CarrierHealthMonitor(config={"minSNR": 3}, jitter=UniformJitter(seed=2025), clock=_FakeClock())
    monitor.initialize(modem, autostart=False)

    for _ in range(5):
        assert monitor.tick() == 48

    data = [c for c in monitor.get_all_carrier_health() if not c.is_pilot]
    assert len(data) == 40
    assert all(c.modulation == ModulationType.QAM64 and c.enabled for c in data)
    assert all(21.0 <= c.snr <= 23.0 for c in data)
    assert monitor.get_system_capacity() == 48 * 6
    assert len(monitor.get_healthy_carriers()) == 48
