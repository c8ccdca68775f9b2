# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import math

import numpy as np

from pycarrier.lib.types import NDArrayC128, PowerdBm, SNRdB, SNRln


class DbLinearConverter:
    """
    Conversions between linear power ratios and dB, plus power helpers for
    complex baseband samples.

    Notes
    -----
    - Power convention: dB = 10 * log10(P).
    - Scalar methods return Python floats.
    """

    @staticmethod
    def snr_db_to_linear(snr_db: float) -> SNRln:
        """
        Convert a single SNR value in dB to a linear power ratio.
        """
        return SNRln(10.0 ** (snr_db / 10.0))

    @staticmethod
    def power_ratio_db(signal_power: float, noise_power: float) -> SNRdB:
        """
        Return ``10 * log10(signal_power / noise_power)``.

        The caller is responsible for guarding ``noise_power`` against zero;
        a zero signal power yields ``-inf``.
        """
        ratio = signal_power / noise_power
        if ratio <= 0.0:
            return SNRdB(-math.inf)
        return SNRdB(10.0 * math.log10(ratio))

    @staticmethod
    def watts_to_dbm(power: float) -> PowerdBm:
        """
        Convert an average power (watts, 50 ohm reference) to dBm.

        Zero power maps to ``-inf`` dBm.
        """
        if power <= 0.0:
            return PowerdBm(-math.inf)
        return PowerdBm(10.0 * math.log10(power * 1000.0))

    @staticmethod
    def mean_power(samples: NDArrayC128) -> float:
        """
        Mean squared magnitude of a complex sample set.

        Raises
        ------
        ValueError
            If ``samples`` is empty.
        """
        arr = np.asarray(samples, dtype=np.complex128)
        if arr.size == 0:
            raise ValueError("samples must contain at least one value")
        return float(np.mean(arr.real * arr.real + arr.imag * arr.imag))
