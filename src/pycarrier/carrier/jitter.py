# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np


class MeasurementJitter(ABC):
    """Source of the per-tick SNR perturbation (dB) applied to modem readings."""

    @abstractmethod
    def sample(self) -> float:
        """Return the next perturbation in dB."""


class UniformJitter(MeasurementJitter):
    """
    Symmetric uniform perturbation in ``[-spread_db, +spread_db)``.

    The default ±1 dB spread models the measurement jitter seen on a bench
    modem. Pass a seed for reproducible runs.
    """

    def __init__(self, spread_db: float = 1.0, seed: int | None = None) -> None:
        if spread_db < 0:
            raise ValueError("spread_db must be >= 0")
        self.spread_db = spread_db
        self._rng = np.random.default_rng(seed)

    def sample(self) -> float:
        return float(self._rng.uniform(-self.spread_db, self.spread_db))

    def __repr__(self) -> str:
        return f"UniformJitter(spread_db={self.spread_db})"


class NoJitter(MeasurementJitter):
    """Trust the modem's figure as reported."""

    def sample(self) -> float:
        return 0.0

    def __repr__(self) -> str:
        return "NoJitter()"
