# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import bisect
import logging
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from typing import ClassVar

import numpy as np

from pycarrier.carrier.models import NoiseEstimate, SignalSample
from pycarrier.config.system_config_settings import SystemConfigSettings
from pycarrier.lib.signal_processing.complex_moments import ComplexMoments
from pycarrier.lib.signal_processing.db_linear_converter import DbLinearConverter
from pycarrier.lib.types import (
    CarrierId,
    ChannelQualityIndicator,
    Complex,
    NDArrayC128,
    PowerdBm,
    SNRdB,
    TimestampMs,
)
from pycarrier.lib.utils import Generate

SampleInput = Sequence[complex] | Sequence[Complex] | Sequence[SignalSample] | NDArrayC128


class InsufficientSamplesError(ValueError):
    """Raised when an estimate is requested over an empty sample set."""


class SignalQualityEstimator:
    """
    Per-carrier SNR estimation from received complex baseband samples.

    The estimation path is chosen by carrier role:

    - pilot carriers (every ``pilot_spacing``-th index) compare each sample
      against the known BPSK pilot symbol;
    - data carriers with a known transmitted symbol use data-aided
      correlation;
    - everything else falls back to the blind M2M4 (kurtosis) estimator,
      whose samples are also kept in a bounded per-carrier buffer for
      averaged queries.

    Zero-noise results are clamped to fixed ceilings: 40 dB for the pilot
    and data-aided paths, 30 dB for the blind path.
    """

    REFERENCE_CEILING_DB: ClassVar[float]   = 40.0
    BLIND_CEILING_DB: ClassVar[float]       = 30.0
    NOISE_EPSILON: ClassVar[float]          = 1e-10
    DEFAULT_NOISE_FLOOR_DBM: ClassVar[float] = -100.0

    # Theoretical kurtosis of an equal-energy constellation (QPSK class).
    THEORETICAL_KURTOSIS: ClassVar[float]   = 2.0

    # Upper SNR edge (dB) of CQI 0..14; anything at or above the last edge is CQI 15.
    CQI_THRESHOLDS_DB: ClassVar[tuple[float, ...]] = (
        -6.0, -4.0, -2.0, 0.0, 2.0, 4.0, 6.0, 8.0, 10.0, 12.0, 14.0, 16.0, 18.0, 20.0, 22.0,
    )

    def __init__(self,
                 num_carriers: int = 48,
                 pilot_spacing: int = 6,
                 buffer_size: int | None = None,
                 clock: Callable[[], TimestampMs] = Generate.time_stamp_ms) -> None:
        """
        ``buffer_size`` defaults to the ``SignalQualityEstimator.buffer_size``
        setting.

        Raises
        ------
        ValueError
            If ``buffer_size`` is below 1.
        """
        if buffer_size is None:
            buffer_size = SystemConfigSettings.estimator_buffer_size()
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self.logger = logging.getLogger(self.__class__.__name__)
        self.buffer_size = buffer_size
        self._clock = clock
        self._noise_floor: PowerdBm = PowerdBm(self.DEFAULT_NOISE_FLOOR_DBM)
        self._sample_buffer: dict[CarrierId, deque[SignalSample]] = {}
        self._pilot_symbols: dict[CarrierId, complex] = {}

        for i in range(0, num_carriers, pilot_spacing):
            self._pilot_symbols[CarrierId(i)] = complex(1.0 if i % 12 == 0 else -1.0, 0.0)

    @classmethod
    def from_settings(cls, clock: Callable[[], TimestampMs] = Generate.time_stamp_ms) -> SignalQualityEstimator:
        """Build an estimator for the configured carrier layout and buffer size."""
        config = SystemConfigSettings.monitor_config()
        return cls(num_carriers  =   config.num_carriers,
                   pilot_spacing =   config.pilot_spacing,
                   buffer_size   =   SystemConfigSettings.estimator_buffer_size(),
                   clock         =   clock)

    @property
    def noise_floor(self) -> PowerdBm:
        """Most recent noise floor estimate in dBm."""
        return self._noise_floor

    def is_pilot(self, carrier_id: int) -> bool:
        return carrier_id in self._pilot_symbols

    def pilot_symbol(self, carrier_id: int) -> complex | None:
        return self._pilot_symbols.get(CarrierId(carrier_id))

    def estimate_snr(self,
                     carrier_id: int,
                     received_samples: SampleInput,
                     known_symbol: complex | Complex | None = None) -> SNRdB:
        """
        Estimate the SNR of ``carrier_id`` in dB.

        Parameters
        ----------
        carrier_id : int
            Subcarrier index.
        received_samples : sequence
            Python complex values, ``(real, imag)`` pairs, SignalSample
            models or a NumPy complex array.
        known_symbol : complex or (real, imag), optional
            Transmitted symbol for data-aided estimation. Ignored on pilot
            carriers.

        Raises
        ------
        InsufficientSamplesError
            If ``received_samples`` is empty.
        """
        samples = self._to_complex_array(received_samples)
        cid = CarrierId(carrier_id)

        if cid in self._pilot_symbols:
            return self._estimate_from_pilot(cid, samples)
        if known_symbol is not None:
            return self._estimate_from_known_symbol(samples, self._to_complex(known_symbol))
        return self._estimate_blind(cid, samples)

    def _estimate_from_pilot(self, carrier_id: CarrierId, received: NDArrayC128) -> SNRdB:
        pilot = self._pilot_symbols[carrier_id]

        error = received - pilot
        signal_power = float(abs(pilot) ** 2)
        noise_power = float(np.mean(error.real * error.real + error.imag * error.imag))

        if noise_power < self.NOISE_EPSILON:
            return SNRdB(self.REFERENCE_CEILING_DB)

        return DbLinearConverter.power_ratio_db(signal_power, noise_power)

    def _estimate_from_known_symbol(self, received: NDArrayC128, known: complex) -> SNRdB:
        total_power = DbLinearConverter.mean_power(received)

        # Re{x * conj(s)}: in-phase projection onto the known symbol
        correlation = received.real * known.real + received.imag * known.imag
        signal_power = abs(float(np.sum(correlation))) / received.size

        noise_power = total_power - signal_power
        if noise_power < self.NOISE_EPSILON:
            return SNRdB(self.REFERENCE_CEILING_DB)

        return DbLinearConverter.power_ratio_db(signal_power, noise_power)

    def _estimate_blind(self, carrier_id: CarrierId, received: NDArrayC128) -> SNRdB:
        self._update_sample_buffer(carrier_id, received)
        return self._blind_snr(received)

    def _blind_snr(self, received: NDArrayC128) -> SNRdB:
        signal_power, noise_power = self._moment_split(received)
        if noise_power < self.NOISE_EPSILON:
            return SNRdB(self.BLIND_CEILING_DB)
        return DbLinearConverter.power_ratio_db(signal_power, noise_power)

    def _moment_split(self, received: NDArrayC128) -> tuple[float, float]:
        """
        Split M2 into (signal, noise) power using the kurtosis excess.

        The theoretical kurtosis is fixed at 2.0, which only holds for
        equal-energy constellations; 16/64QAM carriers are misestimated.
        """
        moments = ComplexMoments(received).compute()
        m2 = moments.second_moment
        if m2 <= 0.0:
            return 0.0, 0.0

        kurtosis_excess = moments.kurtosis - self.THEORETICAL_KURTOSIS
        noise_power = abs(m2 * kurtosis_excess / 2)
        return m2, noise_power

    def estimate_noise(self, received_samples: SampleInput, bandwidth_hz: float = 1.0) -> NoiseEstimate:
        """
        Report the blind estimator's noise split without touching any buffer.

        Raises
        ------
        InsufficientSamplesError
            If ``received_samples`` is empty.
        ValueError
            If ``bandwidth_hz`` is not positive.
        """
        if bandwidth_hz <= 0:
            raise ValueError("bandwidth_hz must be positive")
        samples = self._to_complex_array(received_samples)
        moments = ComplexMoments(samples).compute()
        _, noise_power = self._moment_split(samples)
        return NoiseEstimate(
            power               =   noise_power,
            variance            =   moments.second_moment,
            spectral_density    =   noise_power / bandwidth_hz,
        )

    def estimate_noise_floor(self, quiet_samples: SampleInput) -> PowerdBm:
        """
        Estimate the receiver noise floor (dBm, 50 ohm) from signal-free samples.

        The result is stored and returned.

        Raises
        ------
        InsufficientSamplesError
            If ``quiet_samples`` is empty.
        """
        samples = self._to_complex_array(quiet_samples)
        avg_power = DbLinearConverter.mean_power(samples)
        self._noise_floor = DbLinearConverter.watts_to_dbm(avg_power)
        self.logger.debug(f"Noise floor updated: {self._noise_floor:.2f} dBm from {samples.size} samples")
        return self._noise_floor

    def _update_sample_buffer(self, carrier_id: CarrierId, samples: NDArrayC128) -> None:
        buffer = self._sample_buffer.get(carrier_id)
        if buffer is None:
            buffer = deque(maxlen=self.buffer_size)
            self._sample_buffer[carrier_id] = buffer

        now = self._clock()
        for value in samples:
            buffer.append(SignalSample(real=float(value.real), imag=float(value.imag), timestamp=now))

    def get_buffer(self, carrier_id: int) -> list[SignalSample]:
        """Buffered blind-mode samples for ``carrier_id``, oldest first."""
        return list(self._sample_buffer.get(CarrierId(carrier_id), ()))

    def get_averaged_snr(self, carrier_id: int) -> SNRdB:
        """
        Blind SNR over everything currently buffered for ``carrier_id``.

        Returns 0 dB when nothing has been buffered.
        """
        buffer = self._sample_buffer.get(CarrierId(carrier_id))
        if not buffer:
            return SNRdB(0.0)

        samples = np.fromiter((s.to_complex() for s in buffer), dtype=np.complex128, count=len(buffer))
        return self._blind_snr(samples)

    def estimate_cqi(self, snr: float) -> ChannelQualityIndicator:
        """
        Map SNR (dB) onto the 0..15 channel quality indicator in 2 dB steps.
        """
        return ChannelQualityIndicator(bisect.bisect_right(self.CQI_THRESHOLDS_DB, snr))

    def reset(self) -> None:
        """Drop all buffered samples and restore the default noise floor."""
        self._sample_buffer.clear()
        self._noise_floor = PowerdBm(self.DEFAULT_NOISE_FLOOR_DBM)

    @staticmethod
    def _to_complex(value: complex | Complex | SignalSample) -> complex:
        if isinstance(value, SignalSample):
            return value.to_complex()
        if isinstance(value, (tuple, list)):
            real, imag = value
            return complex(float(real), float(imag))
        return complex(value)

    @classmethod
    def _to_complex_array(cls, samples: SampleInput | Iterable[object]) -> NDArrayC128:
        if isinstance(samples, np.ndarray):
            arr = samples.astype(np.complex128, copy=False).flatten()
        else:
            arr = np.array([cls._to_complex(s) for s in samples], dtype=np.complex128)  # type: ignore[arg-type]

        if arr.size == 0:
            raise InsufficientSamplesError("at least one received sample is required")
        return arr
