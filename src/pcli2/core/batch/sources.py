from __future__ import annotations

"""
Work Item Sources.

Enumerate the complete target set of a batch before any processing
begins, so the total is known for progress and statistics. Folder listings
are paginated eagerly by the client. Any enumeration failure (unknown
folder, permission denied, unreadable local directory) is fatal for the
whole command and surfaces as a ConfigurationError.
"""

import logging
import os
from collections import deque
from typing import Callable, Deque, Iterable, List, Optional, Tuple

from pcli2.domain.errors import ConfigurationError, ExitCode, PcliError
from pcli2.domain.models import KIND_FILE, Asset, Folder, WorkItem
from pcli2.infra.fs import iter_local_files, join_remote_path
from pcli2.infra.network.api_client import PhysnaApiClient
from pcli2.infra.network.common import looks_like_uuid

logger = logging.getLogger(__name__)

AssetFilter = Callable[[Asset], bool]


# -----------------------------------------------------------------------------
# REMOTE SOURCES
# -----------------------------------------------------------------------------

def list_folder_assets(
        client: PhysnaApiClient,
        folder_refs: Iterable[str],
        *,
        recursive: bool = False,
) -> List[Tuple[Asset, str]]:
    """
    List the assets of one or more folders.

    Subfolders are walked breadth-first when recursive is set. Each asset is
    returned with its folder path relative to the requested root so callers
    can mirror the hierarchy locally.

    Args:
        client: API client.
        folder_refs: Folder UUIDs or '/'-separated folder paths.
        recursive: Include the assets of every nested subfolder.

    Returns:
        List[Tuple[Asset, str]]: (asset, relative folder path) in listing order.

    Raises:
        ConfigurationError: If a folder cannot be resolved or listed.
    """
    out: List[Tuple[Asset, str]] = []
    for ref in folder_refs:
        root = _guard(f"folder '{ref}'", lambda: client.resolve_folder(ref))
        queue: Deque[Tuple[Folder, str]] = deque([(root, "")])

        while queue:
            folder, rel = queue.popleft()
            assets = _guard(f"folder '{folder.path or folder.uuid}'", lambda: client.list_folder_assets(folder.uuid))
            out.extend((asset, rel) for asset in assets)
            logger.debug(f"Listed {len(assets)} asset(s) in '{folder.path or folder.uuid}'")

            if recursive:
                subfolders = _guard(
                    f"subfolders of '{folder.path or folder.uuid}'",
                    lambda: client.list_subfolders(folder.uuid, folder.path),
                )
                for sub in subfolders:
                    queue.append((sub, join_remote_path(rel, sub.name)))

    logger.info(f"Enumerated {len(out)} asset(s)")
    return out


def folder_asset_items(
        client: PhysnaApiClient,
        folder_refs: Iterable[str],
        *,
        recursive: bool = False,
        include: Optional[AssetFilter] = None,
        target_for: Optional[Callable[[Asset, str], str]] = None,
) -> List[WorkItem]:
    """
    Build one WorkItem per asset of the given folders.

    Args:
        client: API client.
        folder_refs: Folder UUIDs or paths.
        recursive: Walk nested subfolders.
        include: Optional filter (e.g. only finished assets).
        target_for: Optional mapping (asset, relative folder) -> item target.

    Returns:
        List[WorkItem]: The enumerated items, possibly empty.
    """
    items: List[WorkItem] = []
    for asset, rel in list_folder_assets(client, folder_refs, recursive=recursive):
        if include is not None and not include(asset):
            logger.debug(f"Excluded {asset.path} (state '{asset.state}')")
            continue
        target = target_for(asset, rel) if target_for else ""
        items.append(WorkItem.for_asset(asset, target=target))
    return items


def explicit_asset_items(client: PhysnaApiClient, asset_refs: Iterable[str]) -> List[WorkItem]:
    """
    Resolve explicitly named assets (UUIDs or paths) into WorkItems.

    Raises:
        ConfigurationError: If an asset cannot be found.
    """
    items: List[WorkItem] = []
    for ref in asset_refs:
        asset = resolve_asset(client, ref)
        items.append(WorkItem.for_asset(asset))
    return items


def resolve_asset(client: PhysnaApiClient, ref: str) -> Asset:
    """Fetch one asset by UUID or path, failing the command when absent."""
    if looks_like_uuid(ref):
        return _guard(f"asset '{ref}'", lambda: client.get_asset(ref))

    asset = _guard(f"asset '{ref}'", lambda: client.get_asset_by_path(ref))
    if asset is None:
        raise ConfigurationError(f"Asset not found: {ref}", exit_code=ExitCode.NOT_FOUND)
    return asset


# -----------------------------------------------------------------------------
# LOCAL SOURCES
# -----------------------------------------------------------------------------

def local_file_items(local_dir: str, remote_folder: str) -> List[WorkItem]:
    """
    Build one WorkItem per local file awaiting upload.

    Args:
        local_dir: Directory whose files are uploaded (recursively).
        remote_folder: Remote folder path receiving the files.

    Returns:
        List[WorkItem]: Items whose target is the remote asset path.

    Raises:
        ConfigurationError: If local_dir is not a readable directory.
    """
    if not os.path.isdir(local_dir):
        raise ConfigurationError(f"Local directory not found: {local_dir}", exit_code=ExitCode.NO_INPUT)

    try:
        files = list(iter_local_files(local_dir))
    except OSError as e:
        raise ConfigurationError(f"Cannot read '{local_dir}': {e}", exit_code=ExitCode.NO_INPUT) from e

    items = [
        WorkItem(kind=KIND_FILE, path=full, target=join_remote_path(remote_folder, rel))
        for full, rel in files
    ]
    logger.info(f"Enumerated {len(items)} local file(s) under {local_dir}")
    return items


# -----------------------------------------------------------------------------
# PRIVATE HELPERS
# -----------------------------------------------------------------------------

def _guard(label: str, call: Callable):
    """Run an enumeration call, converting failures into a ConfigurationError."""
    try:
        return call()
    except ConfigurationError:
        raise
    except PcliError as e:
        raise ConfigurationError(f"Cannot access {label}: {e}", exit_code=e.exit_code) from e
