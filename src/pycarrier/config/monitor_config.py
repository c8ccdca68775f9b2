# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pycarrier.carrier.modulation import ModulationType
from pycarrier.lib.types import CarrierId, CarrierIds, SNRdB


class SnrThresholds(BaseModel):
    """
    Minimum SNR (dB) at which each modulation may be selected.

    Keys are accepted either as field names (``qam16``) or as the modulation
    wire names (``"16QAM"``). The ladder must be strictly ascending with
    modulation order.
    """
    model_config = ConfigDict(populate_by_name=True)

    bpsk    : float = Field(3.0,  alias="BPSK",  description="Minimum SNR for BPSK")
    qpsk    : float = Field(7.0,  alias="QPSK",  description="Minimum SNR for QPSK")
    psk8    : float = Field(10.0, alias="8PSK",  description="Minimum SNR for 8PSK")
    qam16   : float = Field(14.0, alias="16QAM", description="Minimum SNR for 16QAM")
    qam64   : float = Field(20.0, alias="64QAM", description="Minimum SNR for 64QAM")

    _FIELD_BY_MODULATION: ClassVar[dict[ModulationType, str]] = {
        ModulationType.BPSK:  "bpsk",
        ModulationType.QPSK:  "qpsk",
        ModulationType.PSK8:  "psk8",
        ModulationType.QAM16: "qam16",
        ModulationType.QAM64: "qam64",
    }

    @model_validator(mode="after")
    def _check_ascending(self) -> SnrThresholds:
        ladder = [self.bpsk, self.qpsk, self.psk8, self.qam16, self.qam64]
        for lower, higher in zip(ladder, ladder[1:]):
            if not lower < higher:
                raise ValueError(
                    f"snr thresholds must be strictly ascending BPSK < QPSK < 8PSK < 16QAM < 64QAM, got {ladder}")
        return self

    def for_modulation(self, modulation: ModulationType) -> SNRdB:
        return SNRdB(getattr(self, self._FIELD_BY_MODULATION[modulation]))

    @classmethod
    def normalize_keys(cls, values: Mapping[str, Any]) -> dict[str, Any]:
        """
        Translate modulation wire names / member names into field names.

        Raises
        ------
        ValueError
            If a key names no known modulation.
        """
        out: dict[str, Any] = {}
        for key, value in values.items():
            if key in cls.model_fields:
                out[key] = value
                continue
            modulation = ModulationType.from_value(key)
            if modulation is None:
                raise ValueError(f"Unknown modulation in snr thresholds: {key!r}")
            out[cls._FIELD_BY_MODULATION[modulation]] = value
        return out


class MonitorConfig(BaseModel):
    """
    Process-wide policy for the carrier health monitor.

    Field names are snake_case; the camelCase names used by the control
    panel and persisted settings are accepted as aliases.
    """
    model_config = ConfigDict(populate_by_name=True)

    sample_interval_ms  : int           = Field(100,  gt=0, alias="sampleInterval", description="Control loop period in milliseconds")
    history_size        : int           = Field(100,  ge=1, alias="historySize", description="Health samples retained per carrier")
    snr_thresholds      : SnrThresholds = Field(default_factory=SnrThresholds, alias="snrThresholds", description="Adaptive modulation ladder")
    min_snr             : float         = Field(3.0,  ge=0.0, alias="minSNR", description="Data carriers below this SNR (dB) are disabled")
    adaptive_modulation : bool          = Field(True, alias="adaptiveModulation", description="Enable the adaptive modulation ladder")
    num_carriers        : int           = Field(48,   ge=1, alias="numCarriers", description="Number of OFDM subcarriers tracked")
    pilot_spacing       : int           = Field(6,    ge=1, alias="pilotSpacing", description="Every Nth carrier (from 0) is a pilot")

    def is_pilot(self, carrier_id: int) -> bool:
        return carrier_id % self.pilot_spacing == 0

    def pilot_carriers(self) -> CarrierIds:
        return [CarrierId(i) for i in range(0, self.num_carriers, self.pilot_spacing)]

    @classmethod
    def field_name(cls, key: str) -> str:
        """
        Resolve a field name or alias to the canonical field name.

        Raises
        ------
        ValueError
            If ``key`` is neither a field name nor an alias.
        """
        if key in cls.model_fields:
            return key
        for name, info in cls.model_fields.items():
            if info.alias == key:
                return name
        raise ValueError(f"Unknown monitor config key: {key!r}")

    def merged(self, updates: Mapping[str, Any]) -> MonitorConfig:
        """
        Return a validated copy of this config with ``updates`` applied.

        Nested ``snr_thresholds`` mappings are merged key-by-key so a caller
        may move a single rung of the ladder.

        Raises
        ------
        pydantic.ValidationError
            If the merged config is invalid.
        ValueError
            If an update key is unknown.
        """
        data: dict[str, Any] = self.model_dump()
        for key, value in updates.items():
            name = self.field_name(key)
            if name == "snr_thresholds" and isinstance(value, Mapping):
                thresholds = self.snr_thresholds.model_dump()
                thresholds.update(SnrThresholds.normalize_keys(value))
                value = thresholds
            data[name] = value
        return MonitorConfig.model_validate(data)
