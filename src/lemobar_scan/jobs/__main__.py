from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path

from devkit.observability import configure_logging, configure_otel

from lemobar_scan.core.centers import select_centers
from lemobar_scan.core.exceptions import ConfigError, ExportError, PersistenceError
from lemobar_scan.core.models import Center, ScanReport
from lemobar_scan.core.settings import DEFAULT_CONFIG_FILE, ScanSettings, load_settings, store_setting
from lemobar_scan.jobs.export import collect_stats, export_csv
from lemobar_scan.jobs.orchestrator import run_scan
from lemobar_scan.jobs.sqlite_store import SqliteAreaStore
from lemobar_scan.monitoring.app import create_monitoring_app
from lemobar_scan.monitoring.server import MonitoringServer
from lemobar_scan.monitoring.state import scan_metrics

logger = logging.getLogger(__name__)

SERVICE_NAME = "lemobar-scan"
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lemobar-scan", description="Spiral scan of lemobar areas around city centers")
    parser.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="path to the json config file")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="scan all (or the selected) centers")
    scan.add_argument("--city", action="append", dest="cities", metavar="NAME", help="only scan this center, repeatable")
    scan.add_argument("--export", action="store_true", help="export the store to csv once the scan finished")
    scan.add_argument("--metrics-port", type=int, default=None, help="serve /metrics on this port while scanning")

    export = commands.add_parser("export", help="export stored areas to csv")
    export.add_argument("--output", default=None, help="csv path (default: output_export from the config)")

    commands.add_parser("stats", help="show stored area counts")

    config = commands.add_parser("config", help="show or change the configuration")
    config_commands = config.add_subparsers(dest="config_command", required=True)
    config_commands.add_parser("show", help="print the current configuration")
    config_set = config_commands.add_parser("set", help="change one setting and save the config file")
    config_set.add_argument("key", choices=sorted(ScanSettings.model_fields))
    config_set.add_argument("value")
    return parser


def _load_settings_or_default(config_file: str) -> ScanSettings:
    try:
        return load_settings(config_file)
    except ConfigError as exc:
        logger.warning("settings_load_failed", extra={"config_file": config_file, "error": str(exc)})
        return ScanSettings()


def _print_settings(settings: ScanSettings) -> None:
    print(f"authorization:  {settings.masked_authorization()}")
    print(f"interval:       {settings.interval:g}s")
    print(f"duration:       {settings.duration:g}s")
    print(f"max_blocks:     {settings.max_blocks}")
    print(f"output_db:      {settings.output_db}")
    print(f"output_export:  {settings.output_export}")


def _print_report(report: ScanReport) -> None:
    for summary in report.summaries:
        print(
            f"{summary.center}: {summary.points_scanned} points, {summary.records_saved} new areas, "
            f"{summary.failed_points} failed, {summary.elapsed_seconds / 60.0:.2f} min ({summary.stop_reason})"
        )
    for center in report.failed_centers:
        print(f"{center}: worker crashed, see log")
    print(f"scan finished: {report.records_saved} new areas, total {report.elapsed_seconds / 60.0:.2f} min")


def _install_stop_signals(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except (NotImplementedError, RuntimeError):
            logger.debug("stop_signal_unsupported", extra={"signal": int(signum)})


async def _scan(settings: ScanSettings, centers: list[Center], metrics_port: int | None) -> ScanReport:
    store = SqliteAreaStore(settings.output_db)
    stop_event = asyncio.Event()
    _install_stop_signals(stop_event)
    server: MonitoringServer | None = None
    try:
        if metrics_port is not None:
            server = MonitoringServer(create_monitoring_app(scan_metrics), port=metrics_port)
            await server.start()
        return await run_scan(settings, store, centers=centers, metrics=scan_metrics, stop_event=stop_event)
    finally:
        if server is not None:
            await server.stop()
        await store.close()


async def _export(output_db: str, output_path: str) -> int:
    store = SqliteAreaStore(output_db, create_tables=False)
    try:
        return await export_csv(store, output_path)
    finally:
        await store.close()


def _cmd_scan(settings: ScanSettings, args: argparse.Namespace) -> int:
    try:
        settings.require_authorization()
        centers = select_centers(args.cities)
    except (ConfigError, ValueError) as exc:
        print(f"error: {exc}")
        return EXIT_USAGE
    print(f"scanning {len(centers)} centers, press Ctrl+C to stop early")
    try:
        report = asyncio.run(_scan(settings, centers, args.metrics_port))
    except ConfigError as exc:
        print(f"error: {exc}")
        return EXIT_USAGE
    _print_report(report)
    if args.export:
        return _run_export(settings.output_db, settings.output_export)
    return EXIT_OK if not report.failed_centers else EXIT_FAILURE


def _run_export(output_db: str, output_path: str) -> int:
    try:
        count = asyncio.run(_export(output_db, output_path))
    except (ExportError, PersistenceError) as exc:
        print(f"export failed: {exc}")
        return EXIT_FAILURE
    print(f"exported {count} areas to {Path(output_path).resolve()}")
    return EXIT_OK


async def _stats(output_db: str) -> None:
    store = SqliteAreaStore(output_db, create_tables=False)
    try:
        stats = await collect_stats(store)
    finally:
        await store.close()
    if not stats.table_exists:
        print("no area table yet, run a scan first")
        return
    print(f"total areas: {stats.total}")
    print(f"by name prefix (top {len(stats.by_prefix)}):")
    for prefix, count in stats.by_prefix:
        print(f"  {prefix}: {count}")


def _cmd_config(settings: ScanSettings, args: argparse.Namespace) -> int:
    if args.config_command == "show":
        _print_settings(settings)
        return EXIT_OK
    try:
        store_setting(args.config, args.key, args.value)
    except ConfigError as exc:
        print(f"error: {exc}")
        return EXIT_USAGE
    print(f"{args.key} updated and saved to {args.config}")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    configure_otel(SERVICE_NAME)
    settings = _load_settings_or_default(args.config)

    if args.command == "scan":
        return _cmd_scan(settings, args)
    if args.command == "export":
        return _run_export(settings.output_db, args.output or settings.output_export)
    if args.command == "stats":
        try:
            asyncio.run(_stats(settings.output_db))
        except PersistenceError as exc:
            print(f"stats failed: {exc}")
            return EXIT_FAILURE
        return EXIT_OK
    return _cmd_config(settings, args)


if __name__ == "__main__":
    raise SystemExit(main())
