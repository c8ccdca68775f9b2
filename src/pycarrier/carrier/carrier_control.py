# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from pycarrier.lib.types import CarrierId, CarrierIds, StringEnum, TimestampMs
from pycarrier.lib.utils import Generate


class DisableReason(StringEnum):
    LOW_SNR             = "low-snr"
    HIGH_INTERFERENCE   = "high-interference"
    POWER_CONSTRAINT    = "power-constraint"
    MANUAL_DISABLE      = "manual-disable"
    PILOT_COLLISION     = "pilot-collision"
    FREQUENCY_NOTCH     = "frequency-notch"


class InterferenceType(StringEnum):
    NARROWBAND  = "narrowband"
    WIDEBAND    = "wideband"
    IMPULSE     = "impulse"


class ControlPolicy(BaseModel):
    min_snr                 : float = Field(3.0,    description="Minimum SNR (dB) to keep a carrier enabled")
    max_ber                 : float = Field(1e-3,   ge=0.0, le=1.0, description="Maximum tolerated BER")
    interference_threshold  : float = Field(10.0,   description="Interference (dB above noise) that disables a carrier")
    power_budget            : float = Field(48.0,   gt=0.0, description="Total power shared by enabled carriers")
    auto_recovery           : bool  = Field(True,   description="Retry automatically disabled carriers")
    recovery_delay_ms       : int   = Field(5000,   ge=0, description="Delay before an auto-recovery attempt")
    priority_threshold      : float = Field(0.1,    ge=0.0, le=1.0, description="Minimum priority to stay active")


class CarrierState(BaseModel):
    id              : CarrierId             = Field(..., description="Subcarrier index")
    enabled         : bool                  = Field(True, description="Carrier currently active")
    reason          : DisableReason | None  = Field(None, description="Why the carrier is disabled")
    disabled_at     : TimestampMs | None    = Field(None, description="When the carrier was disabled")
    auto_recover_at : TimestampMs | None    = Field(None, description="Deadline for the auto-recovery attempt")
    priority        : float                 = Field(0.5, ge=0.0, le=1.0, description="Higher is more important")


class InterferenceReport(BaseModel):
    carrier_id  : CarrierId         = Field(..., description="Affected subcarrier")
    level       : float             = Field(..., description="dB above the noise floor")
    type        : InterferenceType  = Field(..., description="Interference class")
    frequency   : float             = Field(..., description="Interferer frequency in Hz")


class ControlStatistics(BaseModel):
    total_carriers      : int                       = Field(..., description="Carriers managed")
    enabled_count       : int                       = Field(..., description="Carriers enabled")
    disabled_count      : int                       = Field(..., description="Carriers disabled")
    disabled_by_reason  : dict[DisableReason, int]  = Field(..., description="Disabled carriers per reason")
    average_power       : float                     = Field(..., description="Mean power allocation of enabled carriers")
    pending_recoveries  : int                       = Field(..., description="Carriers awaiting auto-recovery")


class CarrierControl:
    """
    Carrier enable/disable policy with interference tracking, notch filters,
    priority-weighted power allocation and delayed auto-recovery.

    Pilot carriers (every 6th index) get priority 1.0 and are only ever
    disabled manually. Auto-recovery deadlines are kept per carrier and
    honoured by process_recoveries(), which the owner calls on its own
    schedule.
    """

    PILOT_SPACING: int      = 6
    PILOT_PRIORITY: float   = 1.0
    DATA_PRIORITY: float    = 0.5

    def __init__(self,
                 num_carriers: int = 48,
                 policy: ControlPolicy | None = None,
                 clock: Callable[[], TimestampMs] = Generate.time_stamp_ms) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.policy = policy.model_copy() if policy is not None else ControlPolicy()
        self._clock = clock
        self._carriers: dict[CarrierId, CarrierState] = {}
        self._interference: dict[CarrierId, InterferenceReport] = {}
        self._power_allocation: dict[CarrierId, float] = {}
        self._notch_filters: set[CarrierId] = set()
        self._recovery_queue: dict[CarrierId, TimestampMs] = {}

        self._initialize_carriers(num_carriers)

    def _initialize_carriers(self, num_carriers: int) -> None:
        share = self.policy.power_budget / num_carriers
        for i in range(num_carriers):
            cid = CarrierId(i)
            is_pilot = i % self.PILOT_SPACING == 0
            self._carriers[cid] = CarrierState(
                id=cid, priority=self.PILOT_PRIORITY if is_pilot else self.DATA_PRIORITY)
            self._power_allocation[cid] = share

    def evaluate_carrier(self, carrier_id: int, snr: float, ber: float, interference_level: float = 0.0) -> bool:
        """
        Re-evaluate one carrier against the policy and enable/disable it.

        Returns:
            Whether the carrier should be enabled. Unknown ids return False.
        """
        state = self._carriers.get(CarrierId(carrier_id))
        if state is None:
            return False

        failure = self._check_conditions(state, snr, ber, interference_level)
        should_enable = failure is None

        if should_enable and not state.enabled:
            self._enable_carrier(state, "conditions-met")
        elif not should_enable and state.enabled and failure is not None:
            self.disable_carrier(state.id, failure)

        return should_enable

    def _check_conditions(self, state: CarrierState, snr: float, ber: float,
                          interference_level: float) -> DisableReason | None:
        if state.priority < self.policy.priority_threshold:
            return DisableReason.POWER_CONSTRAINT
        if snr < self.policy.min_snr:
            return DisableReason.LOW_SNR
        if ber > self.policy.max_ber:
            return DisableReason.LOW_SNR
        if interference_level > self.policy.interference_threshold:
            return DisableReason.HIGH_INTERFERENCE
        if state.id in self._notch_filters:
            return DisableReason.FREQUENCY_NOTCH
        return None

    def _enable_carrier(self, state: CarrierState, reason: str) -> None:
        state.enabled = True
        state.reason = None
        state.disabled_at = None
        state.auto_recover_at = None
        self._recovery_queue.pop(state.id, None)
        self._redistribute_power()
        self.logger.info(f"Carrier {state.id} enabled: {reason}")

    def disable_carrier(self, carrier_id: int, reason: DisableReason) -> None:
        """Disable a carrier. Pilot-priority carriers only yield to MANUAL_DISABLE."""
        state = self._carriers.get(CarrierId(carrier_id))
        if state is None:
            return
        if state.priority == self.PILOT_PRIORITY and reason != DisableReason.MANUAL_DISABLE:
            return

        now = self._clock()
        state.enabled = False
        state.reason = reason
        state.disabled_at = now

        if self.policy.auto_recovery and reason != DisableReason.MANUAL_DISABLE:
            state.auto_recover_at = TimestampMs(now + self.policy.recovery_delay_ms)
            self._recovery_queue[state.id] = state.auto_recover_at

        self._redistribute_power()
        self.logger.info(f"Carrier {state.id} disabled: {reason.value}")

    def process_recoveries(self, now: TimestampMs | None = None) -> CarrierIds:
        """
        Re-enable carriers whose auto-recovery deadline has passed.

        Returns:
            Ids of the carriers re-enabled by this call.
        """
        now = now if now is not None else self._clock()
        recovered: CarrierIds = []
        for cid, deadline in sorted(self._recovery_queue.items()):
            if deadline > now:
                continue
            self._recovery_queue.pop(cid)
            state = self._carriers[cid]
            # a notched carrier stays out until the notch is removed
            if not state.enabled and cid not in self._notch_filters:
                self._enable_carrier(state, "auto-recovery")
                recovered.append(cid)
        return recovered

    def report_interference(self, report: InterferenceReport) -> None:
        self._interference[report.carrier_id] = report

        state = self._carriers.get(report.carrier_id)
        if state is not None and state.enabled and report.level > self.policy.interference_threshold:
            self.disable_carrier(report.carrier_id, DisableReason.HIGH_INTERFERENCE)

    def get_interference(self, carrier_id: int) -> InterferenceReport | None:
        return self._interference.get(CarrierId(carrier_id))

    def set_notch_filter(self, carrier_id: int, enable: bool) -> None:
        """Notch a carrier out (disables it); removing the notch lets the next evaluation re-enable it."""
        cid = CarrierId(carrier_id)
        if enable:
            self._notch_filters.add(cid)
            self.disable_carrier(cid, DisableReason.FREQUENCY_NOTCH)
        else:
            self._notch_filters.discard(cid)

    def _redistribute_power(self) -> None:
        enabled = [s for s in self._carriers.values() if s.enabled]
        if not enabled:
            return

        total_priority = sum(s.priority for s in enabled)
        if total_priority <= 0:
            return
        for state in enabled:
            self._power_allocation[state.id] = (state.priority / total_priority) * self.policy.power_budget

    def get_power_allocation(self, carrier_id: int) -> float:
        return self._power_allocation.get(CarrierId(carrier_id), 0.0)

    def set_carrier_priority(self, carrier_id: int, priority: float) -> None:
        state = self._carriers.get(CarrierId(carrier_id))
        if state is not None:
            state.priority = max(0.0, min(1.0, priority))
            self._redistribute_power()

    def manual_control(self, carrier_id: int, enable: bool) -> None:
        state = self._carriers.get(CarrierId(carrier_id))
        if state is None:
            return
        if enable:
            self._enable_carrier(state, "manual-enable")
        else:
            self.disable_carrier(carrier_id, DisableReason.MANUAL_DISABLE)

    def get_carrier_state(self, carrier_id: int) -> CarrierState | None:
        state = self._carriers.get(CarrierId(carrier_id))
        return state.model_copy() if state is not None else None

    def get_all_carrier_states(self) -> list[CarrierState]:
        return [s.model_copy() for s in self._carriers.values()]

    def get_enabled_carriers(self) -> CarrierIds:
        return [cid for cid, s in self._carriers.items() if s.enabled]

    def get_disabled_carriers(self, reason: DisableReason | None = None) -> list[CarrierState]:
        return [s.model_copy() for s in self._carriers.values()
                if not s.enabled and (reason is None or s.reason == reason)]

    def get_statistics(self) -> ControlStatistics:
        by_reason: dict[DisableReason, int] = {r: 0 for r in DisableReason}
        enabled_power: list[float] = []
        disabled = 0

        for state in self._carriers.values():
            if state.enabled:
                enabled_power.append(self._power_allocation.get(state.id, 0.0))
            else:
                disabled += 1
                if state.reason is not None:
                    by_reason[state.reason] += 1

        return ControlStatistics(
            total_carriers      =   len(self._carriers),
            enabled_count       =   len(enabled_power),
            disabled_count      =   disabled,
            disabled_by_reason  =   by_reason,
            average_power       =   sum(enabled_power) / len(enabled_power) if enabled_power else 0.0,
            pending_recoveries  =   len(self._recovery_queue),
        )

    def update_policy(self, **updates: Any) -> ControlPolicy:  # noqa: ANN401
        """
        Raises:
            pydantic.ValidationError: If the merged policy is invalid.
        """
        self.policy = ControlPolicy.model_validate({**self.policy.model_dump(), **updates})
        self._redistribute_power()
        return self.policy.model_copy()

    def reset(self) -> None:
        """Re-enable every carrier and clear interference, notches and pending recoveries."""
        self._recovery_queue.clear()
        for state in self._carriers.values():
            state.enabled = True
            state.reason = None
            state.disabled_at = None
            state.auto_recover_at = None

        self._interference.clear()
        self._notch_filters.clear()
        self._redistribute_power()
