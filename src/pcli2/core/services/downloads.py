from __future__ import annotations

"""
Download Commands.

Mirror remote folders (or explicit assets) onto the local filesystem.
Only assets in the finished state are downloaded; assemblies are fetched
as zip archives. With --resume, files already present locally are skipped
without contacting the service.
"""

import logging
import os
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from pcli2.core.batch.skip import download_skip_predicate
from pcli2.core.batch.sources import folder_asset_items, resolve_asset
from pcli2.core.batch.statistics import StatisticsAggregator
from pcli2.core.services.common import BatchOptions, build_executor
from pcli2.domain.constants import ASSEMBLY_ARCHIVE_SUFFIX, ASSET_STATE_FINISHED
from pcli2.domain.errors import LocalIOError
from pcli2.domain.models import Asset, BatchOutcome, Failed, WorkItem
from pcli2.infra.fs import join_remote_path
from pcli2.infra.network.api_client import PhysnaApiClient

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# DESTINATIONS
# -----------------------------------------------------------------------------

def local_file_name(asset: Asset) -> str:
    """File name of a downloaded asset (assemblies become '<stem>.zip')."""
    if asset.is_assembly:
        stem, _ = os.path.splitext(asset.name)
        return stem + ASSEMBLY_ARCHIVE_SUFFIX
    return asset.name


def download_target(asset: Asset, relative_folder: str) -> str:
    """Relative local path preserving the remote subfolder structure."""
    return join_remote_path(relative_folder, local_file_name(asset))


def is_downloadable(asset: Asset) -> bool:
    return asset.state.lower() == ASSET_STATE_FINISHED


def destination_resolver(output_dir: str) -> Callable[[WorkItem], str]:
    base = os.path.abspath(output_dir)

    def _destination(item: WorkItem) -> str:
        return os.path.join(base, *item.target.split("/"))

    return _destination


# -----------------------------------------------------------------------------
# COMMANDS
# -----------------------------------------------------------------------------

def download_folder(
        client: PhysnaApiClient,
        folder_refs: Iterable[str],
        output_dir: str,
        options: BatchOptions,
        *,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
) -> BatchOutcome:
    """
    Download every finished asset of the given folders and their subfolders.

    Args:
        client: API client.
        folder_refs: Folder UUIDs or paths.
        output_dir: Local directory receiving the mirrored hierarchy.
        options: Batch options (--resume enables the local skip check).
        cancel_event: Cooperative cancellation flag.
        sleep: Sleep used for retry and throttle waits.

    Returns:
        BatchOutcome: Report and one result per downloadable asset.
    """
    destination_for = destination_resolver(output_dir)
    executor = build_executor(
        options,
        description="Downloading",
        skip=download_skip_predicate(options.resume, destination_for),
        cancel_event=cancel_event,
        sleep=sleep,
    )

    items = folder_asset_items(
        client,
        folder_refs,
        recursive=True,
        include=is_downloadable,
        target_for=download_target,
    )
    return executor.execute(items, _download_operation(client, destination_for))


def download_assets(
        client: PhysnaApiClient,
        asset_refs: Iterable[str],
        output_dir: str,
        options: BatchOptions,
        *,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
) -> BatchOutcome:
    """
    Download explicitly named assets into output_dir (flat layout).

    An asset named twice is downloaded once. Two different assets whose
    file names coincide cannot share the flat directory: the first keeps
    the name and the later ones are reported as failed without a request.
    """
    destination_for = destination_resolver(output_dir)
    executor = build_executor(
        options,
        description="Downloading",
        skip=download_skip_predicate(options.resume, destination_for),
        cancel_event=cancel_event,
        sleep=sleep,
    )

    assets = [resolve_asset(client, ref) for ref in asset_refs]
    items, collisions = _flat_layout(assets)

    stats = StatisticsAggregator(planned=len(items) + len(collisions))
    for failure in collisions:
        stats.add(failure)
    results = executor.run(items, _download_operation(client, destination_for), stats)
    return BatchOutcome(report=stats.report(), results=tuple(collisions) + tuple(results))


def _flat_layout(assets: Iterable[Asset]) -> Tuple[List[WorkItem], List[Failed]]:
    """Split assets into unique-target work items and collision failures."""
    items: List[WorkItem] = []
    collisions: List[Failed] = []
    owners: Dict[str, WorkItem] = {}
    seen: Set[str] = set()

    for asset in assets:
        if asset.uuid in seen:
            logger.debug(f"Asset {asset.path} named more than once; downloading it once")
            continue
        seen.add(asset.uuid)

        item = WorkItem.for_asset(asset, target=download_target(asset, ""))
        owner = owners.get(item.target)
        if owner is None:
            owners[item.target] = item
            items.append(item)
            continue

        error = f"Destination collision: {item.path} and {owner.path} both map to {item.target}"
        logger.error(error)
        collisions.append(Failed(item=item, error=error, attempts=0, error_type=LocalIOError.__name__))
    return items, collisions


def _download_operation(
        client: PhysnaApiClient,
        destination_for: Callable[[WorkItem], str],
) -> Callable[[WorkItem], Dict[str, Any]]:
    def _download(item: WorkItem) -> Dict[str, Any]:
        destination = destination_for(item)
        size = client.download_asset(item.uuid or "", destination)
        logger.info(f"Downloaded {item.path} -> {destination}")
        return {"assetPath": item.path, "assetUuid": item.uuid, "file": destination, "bytes": size}

    return _download
