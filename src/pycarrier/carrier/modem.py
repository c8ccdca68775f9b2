# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import numpy as np

from pycarrier.carrier.models import CarrierStatus
from pycarrier.carrier.modulation import ModulationType
from pycarrier.lib.types import CarrierId


class Modem(ABC):
    """
    Physical modem collaborator consumed by the health monitor.

    ``get_carrier_status`` returns one row per carrier, indexed by carrier
    id; each row is a CarrierStatus, a mapping with an ``snr`` key, or any
    object exposing an ``snr`` attribute. The two setters are fire-and-forget
    commands.
    """

    @abstractmethod
    def get_carrier_status(self) -> Sequence[Any]:
        """Current status rows, one per carrier id."""

    @abstractmethod
    def set_carrier_modulation(self, carrier_id: int, modulation: ModulationType) -> None:
        """Command a modulation change on one carrier."""

    @abstractmethod
    def set_carrier_enabled(self, carrier_id: int, enabled: bool) -> None:
        """Command a carrier on or off."""


class SimulatedModem(Modem):
    """
    Stand-in modem for bench runs without RF hardware.

    Each carrier's SNR starts uniformly in ``[15, 25)`` dB and then follows a
    bounded random walk, one step per ``get_carrier_status()`` call.
    Commanded modulation and enable state are recorded for inspection.
    """

    SNR_FLOOR_DB: float     = 0.0
    SNR_CEILING_DB: float   = 35.0

    def __init__(self, num_carriers: int = 48, drift_db: float = 0.5, seed: int | None = None) -> None:
        if num_carriers < 1:
            raise ValueError("num_carriers must be >= 1")
        self.logger = logging.getLogger(self.__class__.__name__)
        self.num_carriers = num_carriers
        self.drift_db = drift_db
        self._rng = np.random.default_rng(seed)
        self._snr = self._rng.uniform(15.0, 25.0, size=num_carriers)
        self.modulation: dict[CarrierId, ModulationType] = {
            CarrierId(i): ModulationType.QPSK for i in range(num_carriers)}
        self.enabled: dict[CarrierId, bool] = {CarrierId(i): True for i in range(num_carriers)}

    def set_snr(self, carrier_id: int, snr_db: float) -> None:
        """Pin a carrier's SNR, e.g. to model a fade or an interferer."""
        self._snr[carrier_id] = snr_db

    def get_carrier_status(self) -> list[CarrierStatus]:
        step = self._rng.uniform(-self.drift_db, self.drift_db, size=self.num_carriers)
        self._snr = np.clip(self._snr + step, self.SNR_FLOOR_DB, self.SNR_CEILING_DB)
        return [CarrierStatus(snr=float(snr)) for snr in self._snr]

    def set_carrier_modulation(self, carrier_id: int, modulation: ModulationType) -> None:
        self.logger.debug(f"Carrier {carrier_id} modulation -> {modulation.value}")
        self.modulation[CarrierId(carrier_id)] = modulation

    def set_carrier_enabled(self, carrier_id: int, enabled: bool) -> None:
        self.logger.debug(f"Carrier {carrier_id} enabled -> {enabled}")
        self.enabled[CarrierId(carrier_id)] = enabled
