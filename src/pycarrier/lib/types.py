# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import NewType, TypeAlias

import numpy as np
from numpy.typing import NDArray


# Enum String Type
class StringEnum(str, Enum):
    """Py3.10-compatible StrEnum shim."""
    pass

# ────────────────────────────────────────────────────────────────────────────────
# Core numerics
# ────────────────────────────────────────────────────────────────────────────────
# Canonical ndarray outputs (internal processing should normalize to these)
NDArrayC128: TypeAlias  = NDArray[np.complex128]

# Complex number encodings (JSON-safe)
Complex                  = tuple[float, float]  # (re, im)

# ────────────────────────────────────────────────────────────────────────────────
# Paths / filesystem
# ────────────────────────────────────────────────────────────────────────────────
PathLike    = str | Path
FileNameStr = NewType("FileNameStr", str)

# ────────────────────────────────────────────────────────────────────────────────
# JSON-like structures
# ────────────────────────────────────────────────────────────────────────────────
JSONScalar = str | int | float | bool | None
JSONDict   = dict[str, "JSONValue"]
JSONList   = list["JSONValue"]
JSONValue  = JSONScalar | JSONDict | JSONList

# ────────────────────────────────────────────────────────────────────────────────
# Unit-tagged NewTypes (scalars only; runtime = underlying type)
# ────────────────────────────────────────────────────────────────────────────────
TimestampMs   = NewType("TimestampMs", int)

PowerdBm      = NewType("PowerdBm", float)
SNRdB         = NewType("SNRdB", float)
SNRln         = NewType("SNRln", float)
BitErrorRate  = NewType("BitErrorRate", float)
RelativePower = NewType("RelativePower", float)     # 0 < p <= 1

# OFDM identifiers
CarrierId     = NewType("CarrierId", int)
CarrierIds: TypeAlias = list[CarrierId]

BitsPerSymbol = NewType("BitsPerSymbol", int)
ChannelQualityIndicator = NewType("ChannelQualityIndicator", int)   # 0..15

# ────────────────────────────────────────────────────────────────────────────────
# Explicit public surface
# ────────────────────────────────────────────────────────────────────────────────
__all__ = [
    # enums
    "StringEnum",
    # numerics
    "NDArrayC128",
    # complex
    "Complex",
    # paths
    "PathLike", "FileNameStr",
    # JSON
    "JSONScalar", "JSONDict", "JSONList", "JSONValue",
    # unit-tagged scalars
    "TimestampMs",
    "PowerdBm", "SNRdB", "SNRln", "BitErrorRate", "RelativePower",
    "CarrierId", "CarrierIds",
    "BitsPerSymbol", "ChannelQualityIndicator",
]
