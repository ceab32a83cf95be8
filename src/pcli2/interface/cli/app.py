from __future__ import annotations

"""
Command Line Interface (CLI) Application Controller.

Orchestrates the CLI lifecycle: logging bootstrap, configuration loading
and validation, client construction, command dispatch under cooperative
SIGINT/SIGTERM cancellation, report rendering and exit code selection.

Exit policy: a failed item never aborts a batch unless --fail-fast is
given. Once every item has been processed the partial report is printed
and the command exits 65 if any item failed, or 0 with --continue-on-error.
A cancelled batch exits 130 after printing the results collected so far.
"""

import argparse
import json
import sys
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from pcli2.core.batch.executor import cancel_on_signals
from pcli2.core.services.common import BatchOptions
from pcli2.core.services.dependencies import asset_dependencies, folder_dependencies
from pcli2.core.services.downloads import download_assets, download_folder
from pcli2.core.services.matching import asset_geometric_match, folder_geometric_match
from pcli2.core.services.metadata import infer_metadata
from pcli2.core.services.uploads import upload_folder
from pcli2.core.validator import (
    require_connection_settings,
    validate_batch_options,
    validate_config,
    validate_threshold,
)
from pcli2.domain.config import get_default_config, load_app_state, load_config, masked, save_config
from pcli2.domain.errors import ConfigurationError, ExitCode, PcliError
from pcli2.domain.models import StatisticsReport
from pcli2.infra.fs import normalize_path
from pcli2.infra.logging import LoggingConfig, configure_logging, get_logger
from pcli2.infra.network.api_client import PhysnaApiClient
from pcli2.interface.cli import args as cli_args
from pcli2.interface.cli import render

logger = get_logger(__name__)

Handler = Callable[
    [argparse.Namespace, PhysnaApiClient, Dict[str, Any], BatchOptions, threading.Event],
    Tuple[StatisticsReport, str],
]

# -----------------------------------------------------------------------------
# ENTRYPOINT ORCHESTRATOR
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """
    Execute the main CLI application workflow.

    Args:
        argv: Optional list of command line arguments. Defaults to sys.argv.

    Returns:
        int: Process exit code (see ExitCode).
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8")

    # 1. Argument parsing phase
    parser = cli_args.build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return int(ExitCode.SUCCESS) if not e.code else int(ExitCode.USAGE)

    # 2. Resolve configuration (defaults, persisted state, environment)
    raw_conf = load_config()

    # 3. Logging bootstrap (stderr, optional rotating file)
    log_file = args.log_file or raw_conf.get("log_file") or None
    configure_logging(LoggingConfig(level="DEBUG" if args.debug else "INFO", console=True, log_file=log_file))

    conf, warnings = validate_config(raw_conf, strict=False)
    for w in warnings:
        logger.warning(f"Configuration Constraint: {w}")

    try:
        if args.resource == "config":
            return _run_config_command(args, conf)
        return _run_batch_command(args, conf)
    except KeyboardInterrupt:
        logger.warning("Interrupted.")
        return int(ExitCode.INTERRUPTED)

# -----------------------------------------------------------------------------
# BATCH COMMANDS
# -----------------------------------------------------------------------------

def _run_batch_command(args: argparse.Namespace, conf: Dict[str, Any]) -> int:
    handler = _HANDLERS[(args.resource, args.command)]
    options = cli_args.args_to_options(args, conf)
    cancel_event = threading.Event()

    try:
        require_connection_settings(conf)
        client = PhysnaApiClient.from_config(conf)
        with cancel_on_signals(cancel_event):
            report, text = handler(args, client, conf, options, cancel_event)
    except PcliError as e:
        logger.error(str(e))
        print(f"ERROR: {e}", file=sys.stderr)
        return int(e.exit_code)
    except Exception as e:
        logger.critical(f"Unexpected failure: {e}", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return int(ExitCode.SOFTWARE)

    sys.stdout.write(text)
    sys.stdout.flush()
    logger.info(render.summary_line(report))
    return int(exit_code_for(report, options, cancelled=cancel_event.is_set()))


def exit_code_for(report: StatisticsReport, options: BatchOptions, *, cancelled: bool = False) -> ExitCode:
    """
    Map a finished batch to the process exit code.

    Args:
        report: Final statistics snapshot.
        options: Options the batch ran with.
        cancelled: Whether a termination signal stopped the batch.

    Returns:
        ExitCode: INTERRUPTED, DATA or SUCCESS.
    """
    if cancelled:
        return ExitCode.INTERRUPTED
    if report.failed and (options.fail_fast or not options.continue_on_error):
        return ExitCode.DATA
    return ExitCode.SUCCESS


def _folder_download(args, client, conf, options, cancel_event):
    output_dir = normalize_path(args.output_dir, ".")
    outcome = download_folder(client, args.folders, output_dir, options, cancel_event=cancel_event)
    return outcome.report, render.render_batch(outcome, cli_args.resolve_format(args, conf))


def _asset_download(args, client, conf, options, cancel_event):
    output_dir = normalize_path(args.output_dir, ".")
    outcome = download_assets(client, args.assets, output_dir, options, cancel_event=cancel_event)
    return outcome.report, render.render_batch(outcome, cli_args.resolve_format(args, conf))


def _folder_upload(args, client, conf, options, cancel_event):
    local_dir = normalize_path(args.local_dir, ".")
    outcome = upload_folder(client, local_dir, args.remote_folder, options, cancel_event=cancel_event)
    return outcome.report, render.render_batch(outcome, cli_args.resolve_format(args, conf))


def _folder_match(args, client, conf, options, cancel_event):
    match = folder_geometric_match(
        client,
        args.folders,
        cli_args.resolve_threshold(args, conf),
        options,
        exclusive=args.exclusive,
        cancel_event=cancel_event,
    )
    return match.outcome.report, render.render_matches(match, cli_args.resolve_format(args, conf))


def _asset_match(args, client, conf, options, cancel_event):
    match = asset_geometric_match(
        client, args.assets, cli_args.resolve_threshold(args, conf), options, cancel_event=cancel_event
    )
    return match.outcome.report, render.render_matches(match, cli_args.resolve_format(args, conf))


def _folder_dependencies(args, client, conf, options, cancel_event):
    outcome = folder_dependencies(client, args.folders, options, cancel_event=cancel_event)
    return outcome.report, render.render_dependencies(outcome, cli_args.resolve_format(args, conf))


def _asset_dependencies(args, client, conf, options, cancel_event):
    outcome = asset_dependencies(client, args.assets, options, cancel_event=cancel_event)
    return outcome.report, render.render_dependencies(outcome, cli_args.resolve_format(args, conf))


def _metadata_inference(args, client, conf, options, cancel_event):
    result = infer_metadata(
        client,
        args.reference,
        cli_args.field_names(args),
        cli_args.resolve_threshold(args, conf),
        options,
        exclusive=args.exclusive,
        cancel_event=cancel_event,
    )
    return result.outcome.report, render.render_metadata(result, cli_args.resolve_format(args, conf))


_HANDLERS: Dict[Tuple[str, str], Handler] = {
    ("folder", "download"): _folder_download,
    ("folder", "upload"): _folder_upload,
    ("folder", "geometric-match"): _folder_match,
    ("folder", "dependencies"): _folder_dependencies,
    ("asset", "download"): _asset_download,
    ("asset", "geometric-match"): _asset_match,
    ("asset", "dependencies"): _asset_dependencies,
    ("asset", "metadata-inference"): _metadata_inference,
}

# -----------------------------------------------------------------------------
# CONFIG COMMANDS
# -----------------------------------------------------------------------------

def _run_config_command(args: argparse.Namespace, conf: Dict[str, Any]) -> int:
    if args.command == "show":
        print(json.dumps(masked(conf), ensure_ascii=False, indent=2))
        return int(ExitCode.SUCCESS)

    try:
        stored = set_config_value(args.key, args.value)
    except ConfigurationError as e:
        logger.error(str(e))
        print(f"ERROR: {e}", file=sys.stderr)
        return int(e.exit_code)

    shown = masked({args.key: stored[args.key]})[args.key]
    print(f"{args.key} = {shown}")
    return int(ExitCode.SUCCESS)


def set_config_value(key: str, value: str) -> Dict[str, Any]:
    """
    Validate and persist one setting.

    Only the stored settings are written; environment overrides are never
    copied into the file.

    Returns:
        Dict[str, Any]: The settings as saved.

    Raises:
        ConfigurationError: Unknown key or invalid value.
    """
    if key not in get_default_config():
        raise ConfigurationError(f"Unknown setting '{key}'. Valid keys: {', '.join(sorted(get_default_config()))}")

    stored = dict(load_app_state().get("settings", {}))
    stored[key] = _coerce(key, value)
    clean, _ = validate_config(stored, strict=True)

    if key in ("concurrent", "delay"):
        validate_batch_options(clean["concurrent"], clean["delay"])
    elif key == "threshold":
        validate_threshold(clean["threshold"])

    save_config(clean)
    logger.debug(f"Setting '{key}' updated.")
    return clean


def _coerce(key: str, value: str) -> Any:
    """Convert a command-line string to the type of the setting's default."""
    default = get_default_config()[key]
    if isinstance(default, (int, float)):
        try:
            return type(default)(value.strip())
        except ValueError:
            raise ConfigurationError(f"Setting '{key}' expects a number, got '{value}'.") from None
    return value

# -----------------------------------------------------------------------------
# CLI ENTRYPOINT
# -----------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
