from __future__ import annotations

"""
CLI Argument Definition and Mapping.

Defines the command-line schema (resource groups, subcommands and the
shared batch flags) and translates parsed namespaces into BatchOptions.
Numeric batch flags default to None so the persisted configuration can
supply the value; bounds are validated later, before any work starts.
"""

import argparse
from typing import Any, Dict, List, Optional

from pcli2.core.services.common import BatchOptions
from pcli2.domain.constants import (
    MAX_CONCURRENCY,
    MAX_DELAY_SECONDS,
    MIN_CONCURRENCY,
    OUTPUT_FORMATS,
)
from pcli2.infra.logging import get_default_log_path

PROG = "pcli2"
VERSION = "0.1.0"

# -----------------------------------------------------------------------------
# ARGUMENT DEFINITION
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """
    Construct the argument parser for the pcli2 CLI.

    Returns:
        argparse.ArgumentParser: Configured parser instance.
    """
    p = argparse.ArgumentParser(
        prog=PROG,
        description="Batch client for the 3D asset management service.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    # --- Diagnostics ---
    p.add_argument(
        "--debug",
        action="store_true",
        help="Elevate logging verbosity to DEBUG.",
    )
    p.add_argument(
        "--log-file",
        dest="log_file",
        nargs="?",
        const=get_default_log_path(),
        default=None,
        help="Write a rotating diagnostic log (default location when no path is given).",
    )

    resources = p.add_subparsers(dest="resource", metavar="RESOURCE")
    resources.required = True

    _add_folder_commands(resources)
    _add_asset_commands(resources)
    _add_config_commands(resources)

    return p


def _add_folder_commands(resources: Any) -> None:
    folder = resources.add_parser("folder", help="Batch operations over folders.")
    commands = folder.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    download = commands.add_parser("download", help="Download every finished asset of a folder tree.")
    _add_folder_refs(download)
    download.add_argument(
        "-o", "--output",
        dest="output_dir",
        default=".",
        help="Local directory receiving the files (default: current directory).",
    )
    download.add_argument(
        "--resume",
        action="store_true",
        help="Skip assets whose destination file already exists.",
    )
    _add_batch_flags(download)

    upload = commands.add_parser("upload", help="Upload a local directory into a remote folder.")
    upload.add_argument("local_dir", help="Local directory to upload.")
    upload.add_argument("remote_folder", help="Remote folder path receiving the files.")
    upload.add_argument(
        "--skip-existing",
        action="store_true",
        help="Skip files whose remote path already holds an asset.",
    )
    _add_batch_flags(upload)

    match = commands.add_parser("geometric-match", help="Find geometric matches for every asset of a folder.")
    _add_folder_refs(match)
    _add_threshold(match)
    match.add_argument(
        "--exclusive",
        action="store_true",
        help="Only report matches located in the requested folders.",
    )
    match.add_argument(
        "--recursive",
        action="store_true",
        help="Include the assets of nested subfolders.",
    )
    _add_batch_flags(match, recursive=False)

    deps = commands.add_parser("dependencies", help="Resolve the dependency tree of every assembly in a folder.")
    _add_folder_refs(deps)
    _add_batch_flags(deps)


def _add_asset_commands(resources: Any) -> None:
    asset = resources.add_parser("asset", help="Operations on explicit assets.")
    commands = asset.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    deps = commands.add_parser("dependencies", help="Resolve the dependency tree of assets.")
    _add_asset_refs(deps)
    _add_batch_flags(deps)

    download = commands.add_parser("download", help="Download explicit assets.")
    _add_asset_refs(download)
    download.add_argument("-o", "--output", dest="output_dir", default=".", help="Local destination directory.")
    download.add_argument("--resume", action="store_true", help="Skip files that already exist locally.")
    _add_batch_flags(download, recursive=False)

    match = commands.add_parser("geometric-match", help="Find geometric matches for explicit assets.")
    _add_asset_refs(match)
    _add_threshold(match)
    _add_batch_flags(match, recursive=False)

    infer = commands.add_parser(
        "metadata-inference",
        help="Copy metadata fields from a reference asset to its geometric matches.",
    )
    infer.add_argument("reference", help="UUID or path of the reference asset.")
    infer.add_argument(
        "--name",
        dest="field_names",
        action="append",
        required=True,
        help="Metadata field to propagate (repeatable, or comma-separated).",
    )
    _add_threshold(infer)
    infer.add_argument(
        "--exclusive",
        action="store_true",
        help="Only update matches located in the reference's folder.",
    )
    _add_batch_flags(infer)


def _add_config_commands(resources: Any) -> None:
    config = resources.add_parser("config", help="Inspect or change persisted settings.")
    commands = config.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    commands.add_parser("show", help="Print the active settings (secrets masked).")
    setter = commands.add_parser("set", help="Persist one setting.")
    setter.add_argument("key", help="Setting name (e.g. tenant, client_id, concurrent).")
    setter.add_argument("value", help="New value.")


# -----------------------------------------------------------------------------
# SHARED FLAGS
# -----------------------------------------------------------------------------

def _add_folder_refs(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "folders",
        nargs="+",
        metavar="FOLDER",
        help="Folder UUID or '/'-separated path (repeatable).",
    )


def _add_asset_refs(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "assets",
        nargs="+",
        metavar="ASSET",
        help="Asset UUID or full path (repeatable).",
    )


def _add_threshold(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Minimum match percentage, 0 to 100 (default from config, 80).",
    )


def _add_batch_flags(parser: argparse.ArgumentParser, *, recursive: bool = True) -> None:
    """Attach the flags shared by every batch command."""
    parser.add_argument(
        "--concurrent",
        type=int,
        default=None,
        help=f"Operations in flight, {MIN_CONCURRENCY} to {MAX_CONCURRENCY} (default from config, 1).",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help=f"Seconds to wait after each non-skipped item, up to {MAX_DELAY_SECONDS:g}.",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show progress bars on stderr.",
    )
    parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Exit 0 even when some items failed.",
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Stop starting new items after the first failure.",
    )
    if recursive:
        parser.add_argument(
            "--recursive",
            action="store_true",
            help="Expand every level instead of direct results only.",
        )
    parser.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default=None,
        help="Output format (default from config, json).",
    )


# -----------------------------------------------------------------------------
# ARGUMENT MAPPING
# -----------------------------------------------------------------------------

def args_to_options(args: argparse.Namespace, config: Optional[Dict[str, Any]] = None) -> BatchOptions:
    """
    Translate the argparse Namespace into BatchOptions.

    Flags left unset fall back to the persisted settings. Values are not
    range-checked here.

    Args:
        args: Parsed command-line arguments.
        config: Validated configuration supplying defaults.

    Returns:
        BatchOptions: Options for the batch command.
    """
    conf = config or {}
    concurrent = args.concurrent if getattr(args, "concurrent", None) is not None else conf.get("concurrent", 1)
    delay = args.delay if getattr(args, "delay", None) is not None else conf.get("delay", 0.0)

    return BatchOptions(
        concurrent=concurrent,
        delay=delay,
        progress=bool(getattr(args, "progress", False)),
        resume=bool(getattr(args, "resume", False)),
        skip_existing=bool(getattr(args, "skip_existing", False)),
        continue_on_error=bool(getattr(args, "continue_on_error", False)),
        fail_fast=bool(getattr(args, "fail_fast", False)),
        recursive=bool(getattr(args, "recursive", False)),
    )


def resolve_format(args: argparse.Namespace, config: Optional[Dict[str, Any]] = None) -> str:
    fmt = getattr(args, "format", None)
    return fmt or (config or {}).get("format") or OUTPUT_FORMATS[0]


def resolve_threshold(args: argparse.Namespace, config: Optional[Dict[str, Any]] = None) -> Any:
    threshold = getattr(args, "threshold", None)
    return threshold if threshold is not None else (config or {}).get("threshold")


def field_names(args: argparse.Namespace) -> List[str]:
    """Flatten repeated and comma-separated --name values."""
    out: List[str] = []
    for value in getattr(args, "field_names", None) or []:
        out.extend(_split_csv(value) or [])
    return out

# -----------------------------------------------------------------------------
# HELPERS
# -----------------------------------------------------------------------------

def _split_csv(value: Optional[str]) -> Optional[List[str]]:
    """
    Convert a comma-separated string into a list of sanitized strings.
    """
    if value is None:
        return None
    parts = [x.strip() for x in value.split(",")]
    return [x for x in parts if x]
