# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from pycarrier.carrier.modulation import ModulationType
from pycarrier.lib.types import BitsPerSymbol, CarrierId, TimestampMs
from pycarrier.lib.utils import Generate


class ModulationProfile(BaseModel):
    """
    One rung of the adaptation ladder.

    ``target_ber`` records the design BER that ``required_snr`` was sized
    for. Scheme selection reads only ``required_snr``.
    """
    scheme          : ModulationType    = Field(..., description="Modulation scheme")
    bits_per_symbol : BitsPerSymbol     = Field(..., description="Bits carried per symbol")
    required_snr    : float             = Field(..., description="Minimum SNR (dB) for the target BER")
    target_ber      : float             = Field(1e-5, description="Design BER (informational)")
    power_offset    : float             = Field(0.0, description="Transmit power adjustment in dB")


class AdaptationParameters(BaseModel):
    """Controller tuning. ``target_ber`` is reported, not used to pick a scheme."""
    target_ber          : float = Field(1e-5, gt=0.0, lt=1.0, description="Target bit error rate (informational)")
    margin_db           : float = Field(3.0,  ge=0.0, description="Safety margin above required SNR")
    hysteresis_db       : float = Field(2.0,  ge=0.0, description="Dead band that prevents oscillation")
    adaptation_rate     : float = Field(0.7,  gt=0.0, le=1.0, description="EWMA weight of the newest SNR sample")
    min_hold_time_ms    : int   = Field(1000, ge=0, description="Minimum time between modulation changes")


class ModulationControllerStatistics(BaseModel):
    average_efficiency          : float                     = Field(..., description="Mean bits/symbol over tracked carriers")
    total_carriers              : int                       = Field(..., description="Carriers with an assigned modulation")
    distribution_by_scheme      : dict[ModulationType, int] = Field(..., description="Carriers per modulation")
    average_changes_per_minute  : int                       = Field(..., description="Carriers changed in the last minute")


def _profile(scheme: ModulationType, required_snr: float, power_offset: float) -> ModulationProfile:
    return ModulationProfile(scheme=scheme, bits_per_symbol=scheme.bits_per_symbol,
                             required_snr=required_snr, power_offset=power_offset)


class ModulationController:
    """
    Hysteresis-aware adaptive modulation.

    Unlike the health monitor's plain threshold ladder, this controller
    smooths SNR with an exponentially weighted average over the last ten
    readings, requires a safety margin, holds each decision for a minimum
    time and applies a hysteresis band around every switch.
    """

    HISTORY_LENGTH: ClassVar[int] = 10
    CHANGE_RATE_WINDOW_MS: ClassVar[int] = 60_000
    DEFAULT_SCHEME: ClassVar[ModulationType] = ModulationType.QPSK

    PROFILES: ClassVar[dict[ModulationType, ModulationProfile]] = {
        ModulationType.BPSK:  _profile(ModulationType.BPSK,  4.0,  0.0),
        ModulationType.QPSK:  _profile(ModulationType.QPSK,  7.0,  0.0),
        ModulationType.PSK8:  _profile(ModulationType.PSK8,  10.0, 1.0),
        ModulationType.QAM16: _profile(ModulationType.QAM16, 14.0, 1.0),
        ModulationType.QAM64: _profile(ModulationType.QAM64, 20.0, 2.0),
    }

    def __init__(self,
                 parameters: AdaptationParameters | None = None,
                 clock: Callable[[], TimestampMs] = Generate.time_stamp_ms) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.parameters = parameters.model_copy() if parameters is not None else AdaptationParameters()
        self._clock = clock
        self._carrier_modulation: dict[CarrierId, ModulationType] = {}
        self._last_change: dict[CarrierId, TimestampMs] = {}
        self._snr_history: dict[CarrierId, deque[float]] = {}

    def select_modulation(self, carrier_id: int, current_snr: float) -> ModulationType:
        """
        Feed one SNR reading and return the modulation the carrier should use.
        """
        cid = CarrierId(carrier_id)
        self._update_snr_history(cid, current_snr)
        avg_snr = self.get_averaged_snr(cid)

        current = self._carrier_modulation.get(cid, self.DEFAULT_SCHEME)
        if not self._should_adapt(cid):
            return current

        target = self._find_best_modulation(avg_snr)
        if self._should_change(current, target, avg_snr):
            self._carrier_modulation[cid] = target
            self._last_change[cid] = self._clock()
            self.logger.debug(f"Carrier {cid} {current.value} -> {target.value} at {avg_snr:.1f} dB (EWMA)")
            return target

        return current

    def _find_best_modulation(self, snr: float) -> ModulationType:
        margin = self.parameters.margin_db
        best = ModulationType.BPSK
        for profile in self.PROFILES.values():
            if snr >= profile.required_snr + margin and profile.bits_per_symbol > best.bits_per_symbol:
                best = profile.scheme
        return best

    def _should_change(self, current: ModulationType, target: ModulationType, snr: float) -> bool:
        current_profile = self.PROFILES[current]
        target_profile = self.PROFILES[target]
        margin = self.parameters.margin_db
        hysteresis = self.parameters.hysteresis_db

        if target_profile.bits_per_symbol > current_profile.bits_per_symbol:
            return snr >= target_profile.required_snr + margin + hysteresis
        if target_profile.bits_per_symbol < current_profile.bits_per_symbol:
            return snr < current_profile.required_snr + margin - hysteresis
        return False

    def _should_adapt(self, carrier_id: CarrierId) -> bool:
        last_change = self._last_change.get(carrier_id)
        if last_change is None:
            return True
        return self._clock() - last_change >= self.parameters.min_hold_time_ms

    def _update_snr_history(self, carrier_id: CarrierId, snr: float) -> None:
        history = self._snr_history.get(carrier_id)
        if history is None:
            history = deque(maxlen=self.HISTORY_LENGTH)
            self._snr_history[carrier_id] = history
        history.append(snr)

    def get_averaged_snr(self, carrier_id: int) -> float:
        """Exponentially weighted SNR average over the retained readings (0 if none)."""
        history = self._snr_history.get(CarrierId(carrier_id))
        if not history:
            return 0.0

        alpha = self.parameters.adaptation_rate
        readings = iter(history)
        avg = next(readings)
        for snr in readings:
            avg = alpha * snr + (1 - alpha) * avg
        return avg

    def get_modulation(self, carrier_id: int) -> ModulationType:
        return self._carrier_modulation.get(CarrierId(carrier_id), self.DEFAULT_SCHEME)

    def get_efficiency(self, scheme: ModulationType) -> BitsPerSymbol:
        return self.PROFILES[scheme].bits_per_symbol

    def get_power_offset(self, scheme: ModulationType) -> float:
        return self.PROFILES[scheme].power_offset

    def calculate_throughput(self, carrier_id: int, symbol_rate: float, packet_error_rate: float = 0.0) -> float:
        """symbol_rate * bits_per_symbol * (1 - PER) for the carrier's current scheme."""
        bits = self.get_efficiency(self.get_modulation(carrier_id))
        return symbol_rate * bits * (1 - packet_error_rate)

    def get_system_capacity(self, symbol_rate: float) -> float:
        return sum(symbol_rate * self.get_efficiency(m) for m in self._carrier_modulation.values())

    def get_modulation_distribution(self) -> dict[ModulationType, int]:
        distribution: dict[ModulationType, int] = {scheme: 0 for scheme in self.PROFILES}
        for modulation in self._carrier_modulation.values():
            distribution[modulation] += 1
        return distribution

    def force_modulation(self, carrier_id: int, scheme: ModulationType) -> None:
        cid = CarrierId(carrier_id)
        self._carrier_modulation[cid] = scheme
        self._last_change[cid] = self._clock()

    def get_statistics(self) -> ModulationControllerStatistics:
        distribution = self.get_modulation_distribution()
        total = len(self._carrier_modulation)
        efficiency = sum(self.get_efficiency(s) * n for s, n in distribution.items())

        now = self._clock()
        recent_changes = sum(1 for t in self._last_change.values() if now - t < self.CHANGE_RATE_WINDOW_MS)

        return ModulationControllerStatistics(
            average_efficiency          =   efficiency / total if total else 0.0,
            total_carriers              =   total,
            distribution_by_scheme      =   distribution,
            average_changes_per_minute  =   recent_changes,
        )

    def update_parameters(self, **updates: Any) -> AdaptationParameters:  # noqa: ANN401
        """
        Raises:
            pydantic.ValidationError: If the merged parameters are invalid.
        """
        self.parameters = AdaptationParameters.model_validate({**self.parameters.model_dump(), **updates})
        return self.parameters.model_copy()

    def reset(self) -> None:
        self._carrier_modulation.clear()
        self._last_change.clear()
        self._snr_history.clear()
