# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import math

from pycarrier.lib.signal_processing.db_linear_converter import DbLinearConverter
from pycarrier.lib.types import BitErrorRate, BitsPerSymbol, StringEnum

DEFAULT_BIT_ERROR_RATE: BitErrorRate = BitErrorRate(0.1)


class ModulationType(StringEnum):
    """
    Per-subcarrier modulation schemes, lowest order first.

    Values are the on-the-wire names used by the modem collaborator.
    """
    BPSK    = "BPSK"
    QPSK    = "QPSK"
    PSK8    = "8PSK"
    QAM16   = "16QAM"
    QAM64   = "64QAM"

    @classmethod
    def from_value(cls, value: str | ModulationType) -> ModulationType | None:
        """Convert a wire name (e.g. ``"16QAM"``) or member name to a ModulationType, or None."""
        if isinstance(value, ModulationType):
            return value
        member = cls._value2member_map_.get(value)
        if member is None:
            member = cls.__members__.get(str(value).upper())
        return member  # type: ignore[return-value]

    @classmethod
    def ladder(cls) -> list[ModulationType]:
        """Highest order first; the order the adaptive selector scans."""
        return sorted(cls, key=lambda m: m.bits_per_symbol, reverse=True)

    @property
    def bits_per_symbol(self) -> BitsPerSymbol:
        match self:
            case ModulationType.BPSK:
                return BitsPerSymbol(1)
            case ModulationType.QPSK:
                return BitsPerSymbol(2)
            case ModulationType.PSK8:
                return BitsPerSymbol(3)
            case ModulationType.QAM16:
                return BitsPerSymbol(4)
            case ModulationType.QAM64:
                return BitsPerSymbol(6)

    def bit_error_rate(self, snr_db: float) -> BitErrorRate:
        """
        Closed-form BER approximation for this scheme at ``snr_db``.

        These are exponential bounds rather than exact Q-function
        expressions:

            BPSK   0.5    * exp(-snr)
            QPSK   0.5    * exp(-snr / 2)
            8PSK   0.5    * exp(-snr / 3)
            16QAM  0.375  * exp(-snr / 5)
            64QAM  0.4375 * exp(-snr / 7)

        where ``snr`` is the linear power ratio.
        """
        snr_linear = DbLinearConverter.snr_db_to_linear(snr_db)

        match self:
            case ModulationType.BPSK:
                ber = 0.5 * math.exp(-snr_linear)
            case ModulationType.QPSK:
                ber = 0.5 * math.exp(-snr_linear / 2)
            case ModulationType.PSK8:
                ber = 0.5 * math.exp(-snr_linear / 3)
            case ModulationType.QAM16:
                ber = 0.375 * math.exp(-snr_linear / 5)
            case ModulationType.QAM64:
                ber = 0.4375 * math.exp(-snr_linear / 7)

        return BitErrorRate(ber)


def modulation_capacity(modulation: ModulationType) -> BitsPerSymbol:
    """Bits per symbol carried by ``modulation``."""
    return modulation.bits_per_symbol


def calculate_ber(snr_db: float, modulation: ModulationType | str) -> BitErrorRate:
    """
    BER for ``modulation`` at ``snr_db``.

    Unrecognised modulation names fall back to ``DEFAULT_BIT_ERROR_RATE``.
    """
    member = ModulationType.from_value(modulation)
    if member is None:
        return DEFAULT_BIT_ERROR_RATE
    return member.bit_error_rate(snr_db)

