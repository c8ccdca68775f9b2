# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import math

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from pycarrier.lib.types import NDArrayC128


class ComplexMomentsModel(BaseModel):
    """
    Centered moment statistics of a complex baseband sample set.

    This mirrors the data produced by ComplexMoments.compute().
    """
    model_config = ConfigDict(extra="ignore")

    mean_real       : float = Field(..., description="Mean of the in-phase component")
    mean_imag       : float = Field(..., description="Mean of the quadrature component")
    second_moment   : float = Field(..., description="M2: mean squared magnitude of the centered samples")
    fourth_moment   : float = Field(..., description="M4: mean of the squared M2 terms")
    kurtosis        : float = Field(..., description="M4 / M2^2 (NaN when M2 is zero)")
    sample_count    : int   = Field(..., description="Number of samples used")

    @property
    def mean(self) -> complex:
        return complex(self.mean_real, self.mean_imag)


class ComplexMoments:
    """
    Compute the moments used by the M2M4 blind SNR estimator.

    Available statistics:
      - mean: complex sample mean.
      - second_moment: mean of |x - mean|^2.
      - fourth_moment: mean of |x - mean|^4.
      - kurtosis: fourth_moment / second_moment^2.
    """
    def __init__(self, samples: NDArrayC128) -> None:
        # ensure data is a 1-D complex array
        self.samples = np.asarray(samples, dtype=np.complex128).flatten()
        if self.samples.size == 0:
            raise ValueError("Input samples must contain at least one value.")

    def compute(self) -> ComplexMomentsModel:
        """
        Compute moments and return a validated ComplexMomentsModel.
        """
        x           = self.samples
        mean        = x.mean()
        centered    = x - mean
        magnitude2  = centered.real * centered.real + centered.imag * centered.imag

        m2          = float(np.mean(magnitude2))
        m4          = float(np.mean(magnitude2 * magnitude2))
        kurtosis    = m4 / (m2 * m2) if m2 > 0 else math.nan

        return ComplexMomentsModel(
            mean_real       = float(mean.real),
            mean_imag       = float(mean.imag),
            second_moment   = m2,
            fourth_moment   = m4,
            kurtosis        = kurtosis,
            sample_count    = int(x.size),
        )
