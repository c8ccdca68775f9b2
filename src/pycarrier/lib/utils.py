# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import time
from enum import Enum

from pycarrier.lib.types import TimestampMs


class TimeUnit(Enum):
    SECONDS      = "s"
    MILLISECONDS = "ms"
    NANOSECONDS  = "ns"


class Generate:

    @staticmethod
    def time_stamp(unit: TimeUnit = TimeUnit.SECONDS) -> int:
        """
        Return The Current Timestamp In The Specified Unit.
        """
        return (
            time.time_ns()
            if unit == TimeUnit.NANOSECONDS
            else time.time_ns() // 1_000_000
            if unit == TimeUnit.MILLISECONDS
            else int(time.time())
        )

    @staticmethod
    def time_stamp_ms() -> TimestampMs:
        """
        Return The Current Wall-Clock Time In Milliseconds.

        This is the default clock for carrier health samples and
        recovery deadlines.
        """
        return TimestampMs(Generate.time_stamp(unit=TimeUnit.MILLISECONDS))
