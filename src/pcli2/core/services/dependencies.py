from __future__ import annotations

"""
Dependency Commands.

Both the single-asset and the folder-level command run every root through
the bounded executor, so they share the same retry, throttle and
cancellation behaviour. Only assemblies have dependencies, so the folder
command enumerates assembly assets only.
"""

import logging
import threading
import time
from typing import Callable, Iterable, Optional

from pcli2.core.batch.sources import explicit_asset_items, folder_asset_items
from pcli2.core.dependencies.resolver import DependencyResolver
from pcli2.core.services.common import BatchOptions, build_executor
from pcli2.domain.models import Asset, BatchOutcome
from pcli2.infra.network.api_client import PhysnaApiClient

logger = logging.getLogger(__name__)


def asset_dependencies(
        client: PhysnaApiClient,
        asset_refs: Iterable[str],
        options: BatchOptions,
        *,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
) -> BatchOutcome:
    """
    Resolve the dependency tree of explicitly named assets.

    Args:
        client: API client.
        asset_refs: Asset UUIDs or paths (one tree per asset).
        options: Batch options; --recursive expands every level.
        cancel_event: Cooperative cancellation flag.
        sleep: Sleep used for retry and throttle waits.

    Returns:
        BatchOutcome: One DependencyNode payload per resolved root.
    """
    executor = build_executor(options, description="Resolving", cancel_event=cancel_event, sleep=sleep)
    items = explicit_asset_items(client, asset_refs)
    return executor.execute(items, _resolver(client, options, sleep))


def folder_dependencies(
        client: PhysnaApiClient,
        folder_refs: Iterable[str],
        options: BatchOptions,
        *,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
) -> BatchOutcome:
    """Resolve one dependency tree per assembly found in the given folders."""
    executor = build_executor(options, description="Resolving", cancel_event=cancel_event, sleep=sleep)
    items = folder_asset_items(client, folder_refs, recursive=False, include=_is_assembly)
    logger.info(f"Found {len(items)} assembly root(s)")
    return executor.execute(items, _resolver(client, options, sleep))


def _is_assembly(asset: Asset) -> bool:
    return asset.is_assembly


def _resolver(client: PhysnaApiClient, options: BatchOptions, sleep: Callable[[float], None]) -> DependencyResolver:
    return DependencyResolver(client.list_dependencies, recursive=options.recursive, sleep=sleep)
