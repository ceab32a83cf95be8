from __future__ import annotations

"""
Upload Commands.

Upload every regular file under a local directory into a remote folder,
mirroring the relative directory structure. With --skip-existing, a file
whose remote path already holds an asset is skipped.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Set

from pcli2.core.batch.skip import upload_skip_predicate
from pcli2.core.batch.sources import local_file_items
from pcli2.core.services.common import BatchOptions, build_executor
from pcli2.domain.errors import PermanentRemoteError
from pcli2.domain.models import BatchOutcome, WorkItem
from pcli2.infra.fs import join_remote_path
from pcli2.infra.network.api_client import PhysnaApiClient

logger = logging.getLogger(__name__)


class RemoteNameIndex:
    """
    Cached asset names per remote folder, used for the skip-existing check.

    Each folder is listed at most once per command, however many local
    files target it. Lookup errors propagate so the skip predicate can
    treat them as "not skippable".
    """

    def __init__(self, client: PhysnaApiClient) -> None:
        self._client = client
        self._lock = threading.Lock()
        self._names: Dict[str, Set[str]] = {}
        self._folder_locks: Dict[str, threading.Lock] = {}

    def exists(self, remote_path: str) -> bool:
        folder_path, _, name = remote_path.strip("/").rpartition("/")
        return name in self._folder_names(folder_path)

    def _folder_names(self, folder_path: str) -> Set[str]:
        with self._lock:
            cached = self._names.get(folder_path)
            if cached is not None:
                return cached
            folder_lock = self._folder_locks.setdefault(folder_path, threading.Lock())

        # One listing per folder; other folders are looked up in parallel
        with folder_lock:
            with self._lock:
                cached = self._names.get(folder_path)
            if cached is not None:
                return cached

            try:
                folder = self._client.resolve_folder(folder_path)
            except PermanentRemoteError as e:
                if e.status_code != 404:
                    raise
                # Missing folders are created by the upload itself
                names: Set[str] = set()
            else:
                names = {asset.name for asset in self._client.list_folder_assets(folder.uuid)}

            with self._lock:
                self._names[folder_path] = names
            return names


def upload_folder(
        client: PhysnaApiClient,
        local_dir: str,
        remote_folder: str,
        options: BatchOptions,
        *,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
) -> BatchOutcome:
    """
    Upload a local directory tree into a remote folder.

    Args:
        client: API client.
        local_dir: Directory whose files are uploaded.
        remote_folder: Remote folder path receiving the files.
        options: Batch options (--skip-existing enables the remote check).
        cancel_event: Cooperative cancellation flag.
        sleep: Sleep used for retry and throttle waits.

    Returns:
        BatchOutcome: Report and one result per local file.
    """
    index = RemoteNameIndex(client)
    executor = build_executor(
        options,
        description="Uploading",
        skip=upload_skip_predicate(options.skip_existing, index.exists),
        cancel_event=cancel_event,
        sleep=sleep,
    )

    items = local_file_items(local_dir, join_remote_path(remote_folder))
    return executor.execute(items, _upload_operation(client))


def _upload_operation(client: PhysnaApiClient) -> Callable[[WorkItem], Dict[str, Any]]:
    def _upload(item: WorkItem) -> Dict[str, Any]:
        asset = client.upload_asset(item.path, item.target)
        logger.info(f"Uploaded {item.path} -> {item.target}")
        return {"file": item.path, "assetPath": asset.path or item.target, "assetUuid": asset.uuid or None}

    return _upload
