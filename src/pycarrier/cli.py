#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import argparse
import asyncio
import json
import logging

from pycarrier import __version__ as PYCARRIER_VERSION
from pycarrier.carrier.jitter import MeasurementJitter, NoJitter, UniformJitter
from pycarrier.carrier.modem import SimulatedModem
from pycarrier.carrier.monitor import CarrierHealthMonitor
from pycarrier.config.log_config import LoggerConfigurator
from pycarrier.config.monitor_config import MonitorConfig
from pycarrier.config.system_config_settings import SystemConfigSettings
from pycarrier.lib.types import FileNameStr, JSONDict


async def run_monitor(config: MonitorConfig, ticks: int, jitter: MeasurementJitter,
                      seed: int | None = None) -> JSONDict:
    """
    Drive a CarrierHealthMonitor against a SimulatedModem for ``ticks`` ticks.

    Returns:
        JSON-ready summary with the final statistics, healthy carriers and
        per-carrier trend.
    """
    modem = SimulatedModem(num_carriers=config.num_carriers, seed=seed)
    monitor = CarrierHealthMonitor(config=config, jitter=jitter)
    monitor.initialize(modem)

    try:
        while monitor.tick_count < ticks:
            await asyncio.sleep(config.sample_interval_ms / 1000.0)
    finally:
        monitor.stop()
        await monitor.wait_stopped()

    return {
        "ticks": monitor.tick_count,
        "statistics": monitor.get_statistics().model_dump(mode="json"),
        "healthy_carriers": list(monitor.get_healthy_carriers()),
        "trends": {str(c.id): monitor.get_carrier_trend(c.id).value for c in monitor.get_all_carrier_health()},
        "command_failures": monitor.get_command_failure_count(),
    }


def main(argv: list[str] | None = None) -> int:

    parser = argparse.ArgumentParser(
        description="Run the OFDM carrier health monitor against a simulated modem and report statistics."
    )

    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"{PYCARRIER_VERSION}",
        help="Show pycarrier version and exit.",
    )

    parser.add_argument("--config", default=None, help="Path to a system.json (default: packaged settings)")
    parser.add_argument("--ticks", default=50, type=int, help="Number of control-loop ticks to run (default: 50)")
    parser.add_argument("--interval-ms", default=None, type=int, help="Override the sample interval in milliseconds")
    parser.add_argument("--no-jitter", action="store_true", help="Trust modem SNR as reported (no ±1 dB jitter)")
    parser.add_argument("--seed", default=None, type=int, help="Seed for the simulated modem and jitter")

    parser.add_argument(
        "--log-level",
        default=None,
        choices=["critical", "error", "warning", "info", "debug"],
        help="Log level (default: from settings).",
    )
    parser.add_argument("--log-dir", default=None, help="Log directory (default: from settings)")
    parser.add_argument("--console-log", action="store_true", help="Also log to stderr")

    args = parser.parse_args(argv)

    if args.ticks < 1:
        parser.error("--ticks must be >= 1")

    if args.config:
        SystemConfigSettings.use_config_file(args.config)

    LoggerConfigurator(
        log_dir         =   args.log_dir or SystemConfigSettings.log_dir(),
        log_filename    =   FileNameStr(SystemConfigSettings.log_filename()),
        level           =   args.log_level or SystemConfigSettings.log_level(),
        to_console      =   args.console_log or SystemConfigSettings.log_to_console(),
        rotate          =   SystemConfigSettings.log_rotate(),
    )
    logger = logging.getLogger("pycarrier.cli")

    config = SystemConfigSettings.monitor_config()
    if args.interval_ms is not None:
        config = config.merged({"sample_interval_ms": args.interval_ms})

    jitter: MeasurementJitter = NoJitter() if args.no_jitter else UniformJitter(seed=args.seed)

    logger.info(f"Running {args.ticks} ticks over {config.num_carriers} carriers @ {config.sample_interval_ms} ms")
    summary = asyncio.run(run_monitor(config, args.ticks, jitter, seed=args.seed))

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
