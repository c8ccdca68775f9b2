# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, ClassVar

from pycarrier.carrier.jitter import MeasurementJitter, UniformJitter
from pycarrier.carrier.models import (
    Carrier,
    CarrierStatistics,
    CarrierStatus,
    CarrierTrend,
    HealthSample,
    MonitorState,
)
from pycarrier.carrier.modem import Modem
from pycarrier.carrier.modulation import ModulationType
from pycarrier.config.monitor_config import MonitorConfig
from pycarrier.lib.types import CarrierId, CarrierIds, RelativePower, SNRdB, TimestampMs
from pycarrier.lib.utils import Generate


class CarrierHealthMonitor:
    """
    Owns the health record of every OFDM subcarrier and runs the adaptive
    modulation control loop against a modem collaborator.

    Each tick pulls per-carrier status from the modem, derives BER and a
    power recommendation, walks the modulation ladder, applies the
    minimum-SNR enable policy and appends to each carrier's bounded history.

    The periodic loop is an asyncio task; ``tick()`` is public so an external
    scheduler can drive the same logic without wall-clock timers. All
    mutations (tick, ``update_config``, ``stop``, ``reset``) are expected on
    the event loop thread. Readers always receive deep copies.

    Attributes:
        logger (logging.Logger): Logger for operational messages.
    """

    PILOT_INITIAL_SNR_DB: ClassVar[float]   = 30.0
    DATA_INITIAL_SNR_DB: ClassVar[float]    = 15.0
    TREND_WINDOW: ClassVar[int]             = 10
    TREND_THRESHOLD_DB: ClassVar[float]     = 1.0

    def __init__(self,
                 config: MonitorConfig | Mapping[str, Any] | None = None,
                 jitter: MeasurementJitter | None = None,
                 clock: Callable[[], TimestampMs] = Generate.time_stamp_ms) -> None:
        """
        Args:
            config: Monitor policy; a mapping is validated into MonitorConfig.
            jitter: Per-tick SNR perturbation. Defaults to ±1 dB uniform jitter.
            clock: Source of epoch-millisecond timestamps.

        Raises:
            pydantic.ValidationError: If ``config`` is invalid.
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        if isinstance(config, MonitorConfig):
            self._config = config.model_copy(deep=True)
        else:
            self._config = MonitorConfig.model_validate(dict(config or {}))

        self._jitter: MeasurementJitter = jitter if jitter is not None else UniformJitter()
        self._clock = clock
        self._modem: Modem | None = None
        self._carriers: list[Carrier] = []
        self._task: asyncio.Task[None] | None = None
        self._generation: int = 0
        self._state: MonitorState = MonitorState.IDLE
        self._autostart: bool = False
        self._tick_count: int = 0
        self._command_failures: int = 0

    # ──────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────
    def initialize(self, modem: Modem, autostart: bool = True) -> None:
        """
        Bind to ``modem``, create the carrier records and (by default) start
        the periodic loop.

        Raises:
            RuntimeError: If ``autostart`` is set and no asyncio event loop is running.
        """
        self._modem = modem
        self._autostart = autostart
        self._initialize_carriers()
        if autostart:
            self.start()

    def _initialize_carriers(self) -> None:
        now = self._clock()
        self._carriers = []
        for i in range(self._config.num_carriers):
            is_pilot = self._config.is_pilot(i)
            self._carriers.append(Carrier(
                id          =   CarrierId(i),
                is_pilot    =   is_pilot,
                snr         =   SNRdB(self.PILOT_INITIAL_SNR_DB if is_pilot else self.DATA_INITIAL_SNR_DB),
                ber         =   0.0,
                power_level =   RelativePower(1.0),
                modulation  =   ModulationType.QPSK,
                enabled     =   True,
                last_update =   now,
            ))

        self.logger.info(
            f"Initialized {len(self._carriers)} carriers "
            f"({len(self._config.pilot_carriers())} pilots every {self._config.pilot_spacing})")

    def start(self) -> None:
        """
        Schedule the periodic loop on the running event loop. No-op if already running.

        Raises:
            RuntimeError: If no modem is bound or no event loop is running.
        """
        if self._modem is None:
            raise RuntimeError("initialize() must bind a modem before start()")
        if self.is_running:
            return

        loop = asyncio.get_running_loop()
        self._generation += 1
        self._state = MonitorState.RUNNING
        self._task = loop.create_task(self._runner(self._generation), name="carrier-health-monitor")

    async def _runner(self, generation: int) -> None:
        self.logger.info(f"Carrier health loop started ({self._config.sample_interval_ms} ms interval)")

        while self._is_current(generation):
            await asyncio.sleep(self._config.sample_interval_ms / 1000.0)
            if not self._is_current(generation):
                break
            self.tick()

        self.logger.info(f"Carrier health loop ended with state={self._state.value}")

    def _is_current(self, generation: int) -> bool:
        return self._state == MonitorState.RUNNING and generation == self._generation

    def stop(self) -> None:
        """
        Cancel the periodic loop. No tick runs after this returns. Idempotent.
        """
        if self._state == MonitorState.RUNNING:
            self._state = MonitorState.STOPPED
            self.logger.info("Carrier health loop stopping")
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_stopped(self) -> None:
        """Wait for a cancelled loop task to finish unwinding."""
        if self._task is not None:
            await asyncio.wait({self._task})

    def reset(self) -> None:
        """
        Stop the loop and drop every carrier record. If a modem is still
        bound, recreate the records and restart the loop when it was
        auto-started.

        Outside a running event loop the records are rebuilt but the loop
        stays stopped; call ``start()`` from async code to resume.
        """
        self.stop()
        self._carriers = []
        if self._modem is None:
            return

        self._initialize_carriers()
        if not self._autostart:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("Reset outside a running event loop; carrier health loop not restarted")
            return
        self.start()

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return (self._state == MonitorState.RUNNING
                and self._task is not None and not self._task.done())

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def config(self) -> MonitorConfig:
        return self._config.model_copy(deep=True)

    def update_config(self, updates: Mapping[str, Any] | None = None, **kwargs: Any) -> MonitorConfig:  # noqa: ANN401
        """
        Merge ``updates`` (and/or keyword updates) into the active config.

        ``num_carriers`` and ``pilot_spacing`` take effect on the next reset().

        Returns:
            The new active config (copy).

        Raises:
            pydantic.ValidationError: If the merged config is invalid; the
                active config is left unchanged.
            ValueError: If an update key is unknown.
        """
        merged_updates: dict[str, Any] = {**(updates or {}), **kwargs}
        self._config = self._config.merged(merged_updates)
        self.logger.info(f"Monitor config updated: {sorted(merged_updates)}")
        return self.config

    # ──────────────────────────────────────────────────────────────────────
    # Control loop
    # ──────────────────────────────────────────────────────────────────────
    def tick(self) -> int:
        """
        Run one health update over every carrier.

        Returns:
            Number of carriers updated this tick.
        """
        if self._modem is None:
            return 0

        try:
            statuses = list(self._modem.get_carrier_status())
        except Exception as exc:
            self.logger.error(f"Failed to read carrier status from modem: {exc}", exc_info=True)
            return 0

        updated = 0
        for carrier in self._carriers:
            if carrier.id >= len(statuses) or statuses[carrier.id] is None:
                self.logger.debug(f"No modem status for carrier {carrier.id}, skipping")
                continue
            try:
                self._update_carrier(carrier, statuses[carrier.id])
                updated += 1
            except Exception as exc:
                self.logger.error(f"Carrier {carrier.id} update failed: {exc}", exc_info=True)

        self._tick_count += 1
        return updated

    def update_carrier_health(self) -> int:
        """Alias of tick() matching the loop body's name in the control panel."""
        return self.tick()

    def _update_carrier(self, carrier: Carrier, raw_status: Any) -> None:  # noqa: ANN401
        status = CarrierStatus.model_validate(raw_status)
        now = self._clock()

        snr = SNRdB(max(0.0, status.snr + self._jitter.sample()))
        carrier.snr = snr
        carrier.ber = carrier.modulation.bit_error_rate(snr)
        carrier.power_level = self.calculate_optimal_power(snr)

        if self._config.adaptive_modulation:
            target = self.select_optimal_modulation(snr)
            if target != carrier.modulation:
                self._change_modulation(carrier, target)

        enabled = carrier.is_pilot or snr >= self._config.min_snr
        if enabled != carrier.enabled:
            self.logger.info(f"Carrier {carrier.id} {'enabled' if enabled else 'disabled'} at {snr:.1f} dB")
        carrier.enabled = enabled

        self._add_health_sample(carrier, now)
        carrier.last_update = now

    def select_optimal_modulation(self, snr: float) -> ModulationType:
        """Highest-order modulation whose threshold is at or below ``snr``."""
        thresholds = self._config.snr_thresholds
        for modulation in ModulationType.ladder():
            if snr >= thresholds.for_modulation(modulation):
                return modulation
        return ModulationType.BPSK

    @staticmethod
    def calculate_optimal_power(snr: float) -> RelativePower:
        """Back transmit power off as margin grows: 1.0 at or below 15 dB, down to 0.7 above 25 dB."""
        if snr > 25:
            return RelativePower(0.7)
        if snr > 20:
            return RelativePower(0.8)
        if snr > 15:
            return RelativePower(0.9)
        if snr > 10:
            return RelativePower(1.0)
        return RelativePower(1.0)

    def _change_modulation(self, carrier: Carrier, modulation: ModulationType) -> None:
        previous = carrier.modulation
        carrier.modulation = modulation
        self.logger.info(f"Carrier {carrier.id} modulation {previous.value} -> {modulation.value}")

        if self._modem is None:
            return
        try:
            self._modem.set_carrier_modulation(carrier.id, modulation)
        except Exception as exc:
            self._command_failures += 1
            self.logger.error(f"Modem rejected modulation {modulation.value} for carrier {carrier.id}: {exc}")

    def _add_health_sample(self, carrier: Carrier, timestamp: TimestampMs) -> None:
        carrier.history.append(HealthSample.record(timestamp, carrier.snr, carrier.ber))
        overflow = len(carrier.history) - self._config.history_size
        if overflow > 0:
            del carrier.history[:overflow]

    # ──────────────────────────────────────────────────────────────────────
    # Commands
    # ──────────────────────────────────────────────────────────────────────
    def set_carrier_enabled(self, carrier_id: int, enabled: bool) -> None:
        """Enable or disable a data carrier. Pilot carriers are left untouched."""
        carrier = self._find(carrier_id)
        if carrier is None or carrier.is_pilot:
            return

        carrier.enabled = enabled
        if self._modem is None:
            return
        try:
            self._modem.set_carrier_enabled(carrier.id, enabled)
        except Exception as exc:
            self._command_failures += 1
            self.logger.error(f"Modem rejected enable={enabled} for carrier {carrier.id}: {exc}")

    def force_carrier_modulation(self, carrier_id: int, modulation: ModulationType | str) -> None:
        """
        Apply ``modulation`` to a carrier, bypassing the adaptive ladder.

        Raises:
            ValueError: If ``modulation`` names no known scheme.
        """
        member = ModulationType.from_value(modulation)
        if member is None:
            raise ValueError(f"Unsupported modulation type: {modulation}")
        carrier = self._find(carrier_id)
        if carrier is None:
            return
        self._change_modulation(carrier, member)

    def get_command_failure_count(self) -> int:
        """Modem commands that raised since construction."""
        return self._command_failures

    # ──────────────────────────────────────────────────────────────────────
    # Accessors
    # ──────────────────────────────────────────────────────────────────────
    def _find(self, carrier_id: int) -> Carrier | None:
        if 0 <= carrier_id < len(self._carriers):
            return self._carriers[carrier_id]
        return None

    def get_carrier_health(self, carrier_id: int) -> Carrier | None:
        carrier = self._find(carrier_id)
        return carrier.model_copy(deep=True) if carrier is not None else None

    def get_all_carrier_health(self) -> list[Carrier]:
        return [c.model_copy(deep=True) for c in self._carriers]

    def get_healthy_carriers(self) -> CarrierIds:
        """Ids of carriers that are enabled and at or above the minimum SNR."""
        min_snr = self._config.min_snr
        return [c.id for c in self._carriers if c.enabled and c.snr >= min_snr]

    def get_average_snr(self) -> float:
        enabled = [c.snr for c in self._carriers if c.enabled]
        return sum(enabled) / len(enabled) if enabled else 0.0

    def get_system_capacity(self) -> int:
        """Sum of bits per symbol over enabled carriers."""
        return sum(c.capacity_bits_per_symbol for c in self._carriers if c.enabled)

    def get_statistics(self) -> CarrierStatistics:
        distribution: dict[ModulationType, int] = {m: 0 for m in ModulationType}
        enabled = [c for c in self._carriers if c.enabled]

        for carrier in enabled:
            distribution[carrier.modulation] += 1

        count = len(enabled)
        return CarrierStatistics(
            total_carriers          =   len(self._carriers),
            enabled_carriers        =   count,
            average_snr             =   sum(c.snr for c in enabled) / count if count else 0.0,
            average_ber             =   sum(c.ber for c in enabled) / count if count else 0.0,
            system_capacity         =   sum(c.capacity_bits_per_symbol for c in enabled),
            modulation_distribution =   distribution,
        )

    def get_carrier_trend(self, carrier_id: int) -> CarrierTrend:
        """
        Compare the mean SNR of the latest 10 samples with the 10 before.

        Needs 20 samples; anything shorter (or an unknown carrier) is STABLE.
        """
        carrier = self._find(carrier_id)
        window = self.TREND_WINDOW
        if carrier is None or len(carrier.history) < 2 * window:
            return CarrierTrend.STABLE

        recent = carrier.history[-window:]
        older = carrier.history[-2 * window:-window]

        diff = (sum(s.snr for s in recent) / window) - (sum(s.snr for s in older) / window)
        if diff > self.TREND_THRESHOLD_DB:
            return CarrierTrend.IMPROVING
        if diff < -self.TREND_THRESHOLD_DB:
            return CarrierTrend.DEGRADING
        return CarrierTrend.STABLE
