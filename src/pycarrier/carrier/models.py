# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field

from pycarrier.carrier.modulation import ModulationType
from pycarrier.lib.types import (
    BitErrorRate,
    BitsPerSymbol,
    CarrierId,
    RelativePower,
    SNRdB,
    StringEnum,
    TimestampMs,
)


class MonitorState(StringEnum):
    """
    Lifecycle state of the periodic health loop.

    Attributes:
        IDLE:
            Created, loop never started.
        RUNNING:
            The loop task is scheduled and ticking.
        STOPPED:
            The loop was cancelled by stop() or reset().
    """
    IDLE    = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class CarrierTrend(StringEnum):
    IMPROVING = "improving"
    STABLE    = "stable"
    DEGRADING = "degrading"


class HealthSample(BaseModel):
    """One point of a carrier's health history. Immutable once recorded."""
    model_config = ConfigDict(frozen=True)

    timestamp       : TimestampMs   = Field(..., description="Epoch milliseconds of the tick")
    snr             : SNRdB         = Field(..., description="SNR in dB")
    ber             : BitErrorRate  = Field(..., ge=0.0, le=1.0, description="Bit error rate")
    success_rate    : float         = Field(..., ge=0.0, le=1.0, description="1 - BER")

    @classmethod
    def record(cls, timestamp: TimestampMs, snr: SNRdB, ber: BitErrorRate) -> HealthSample:
        return cls(timestamp=timestamp, snr=snr, ber=ber, success_rate=1.0 - ber)


class Carrier(BaseModel):
    """
    Authoritative health record for one OFDM subcarrier.

    ``capacity_bits_per_symbol`` is derived from ``modulation`` and is
    therefore always consistent with it.
    """
    id              : CarrierId             = Field(..., ge=0, description="Subcarrier index")
    is_pilot        : bool                  = Field(False, description="Pilot carriers are never auto-disabled")
    snr             : SNRdB                 = Field(..., ge=0.0, description="Latest SNR estimate (dB)")
    ber             : BitErrorRate          = Field(0.0, ge=0.0, le=1.0, description="BER at the current modulation")
    power_level     : RelativePower         = Field(1.0, gt=0.0, le=1.0, description="Relative transmit power recommendation")
    modulation      : ModulationType        = Field(ModulationType.QPSK, description="Current modulation")
    enabled         : bool                  = Field(True, description="Whether the carrier carries data")
    last_update     : TimestampMs           = Field(..., description="Epoch milliseconds of the last tick")
    history         : list[HealthSample]    = Field(default_factory=list, description="Chronological health samples")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def capacity_bits_per_symbol(self) -> BitsPerSymbol:
        return self.modulation.bits_per_symbol


class CarrierStatistics(BaseModel):
    """Aggregate view over enabled carriers."""
    total_carriers          : int                           = Field(..., description="Carriers tracked")
    enabled_carriers        : int                           = Field(..., description="Carriers currently enabled")
    average_snr             : float                         = Field(..., description="Mean SNR over enabled carriers (dB)")
    average_ber             : float                         = Field(..., description="Mean BER over enabled carriers")
    system_capacity         : int                           = Field(..., description="Sum of bits/symbol over enabled carriers")
    modulation_distribution : dict[ModulationType, int]     = Field(..., description="Enabled carriers per modulation")


class CarrierStatus(BaseModel):
    """Per-carrier status row reported by the modem."""
    model_config = ConfigDict(extra="ignore", from_attributes=True)

    snr : float = Field(..., allow_inf_nan=False, description="Modem-reported SNR (dB)")


class SignalSample(BaseModel):
    """A single received complex baseband sample."""
    model_config = ConfigDict(frozen=True)

    real        : float         = Field(..., description="In-phase component")
    imag        : float         = Field(..., description="Quadrature component")
    timestamp   : TimestampMs   = Field(..., description="Epoch milliseconds when buffered")

    def to_complex(self) -> complex:
        return complex(self.real, self.imag)


class NoiseEstimate(BaseModel):
    """Noise split produced by the blind moment estimator."""
    power               : float = Field(..., ge=0.0, description="Estimated noise power (linear)")
    variance            : float = Field(..., ge=0.0, description="Centered second moment of the samples")
    spectral_density    : float = Field(..., ge=0.0, description="Noise power per Hz of carrier bandwidth")
