from __future__ import annotations

"""
Recursive Hierarchical Resolver.

Expands an assembly into a DependencyNode tree by repeatedly asking the
service for direct dependencies. Cycle detection uses the active path only
(the ancestors of the node being expanded): a component shared by two
branches is expanded under each of them, while a component that reappears
on its own ancestor chain is emitted once as an unexpanded leaf. Entries
that are neither assemblies nor flagged with dependencies are leaves and
cost no request.

A failed fetch for a nested node is recorded on that node and its siblings
continue. A failed fetch for the root propagates, so the caller (usually
the bounded executor) can apply its retry policy to the whole item.
"""

import logging
import time
from typing import Callable, List, Optional

from pcli2.core.batch.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from pcli2.domain.constants import NIL_UUID
from pcli2.domain.errors import PcliError
from pcli2.domain.models import Dependency, DependencyNode, RetryAfter, WorkItem

logger = logging.getLogger(__name__)

FetchDependencies = Callable[[str], List[Dependency]]


class DependencyResolver:
    """
    Builds dependency trees for one root at a time.

    Args:
        fetch_dependencies: Returns the direct dependencies of an asset UUID.
        recursive: Expand every level; otherwise only the root's direct
            dependencies are listed.
        retry_policy: Applied to nested fetches before a node is annotated
            with its error.
        sleep: Injectable sleep used between nested fetch retries.
    """

    def __init__(
            self,
            fetch_dependencies: FetchDependencies,
            *,
            recursive: bool = True,
            retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
            sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._fetch = fetch_dependencies
        self.recursive = recursive
        self._policy = retry_policy
        self._sleep = sleep

    def resolve(self, root: WorkItem) -> DependencyNode:
        """
        Resolve the dependency tree of one root asset.

        Args:
            root: Work item naming the root asset.

        Returns:
            DependencyNode: The root node (parent_path None).

        Raises:
            PcliError: If the root's own dependencies cannot be fetched.
        """
        logger.debug(f"Resolving dependencies of {root.path} (recursive={self.recursive})")
        return self._expand(
            asset_path=root.path,
            asset_uuid=root.uuid or NIL_UUID,
            state=root.state,
            parent_path=None,
            active_path=[],
        )

    def __call__(self, item: WorkItem) -> DependencyNode:
        return self.resolve(item)

    # -------------------------------------------------------------------------
    # TRAVERSAL
    # -------------------------------------------------------------------------

    def _expand(
            self,
            asset_path: str,
            asset_uuid: str,
            state: str,
            parent_path: Optional[str],
            active_path: List[str],
    ) -> DependencyNode:
        is_root = not active_path
        identity = _identity(asset_uuid, asset_path)

        if asset_uuid == NIL_UUID and not is_root:
            return DependencyNode(asset_path, asset_uuid, state, parent_path)

        try:
            dependencies = self._fetch_for(asset_uuid, propagate=is_root)
        except PcliError as e:
            if is_root:
                raise
            logger.warning(f"Dependencies of {asset_path} unavailable: {e}")
            return DependencyNode(asset_path, asset_uuid, state, parent_path, error=str(e))

        active_path.append(identity)
        try:
            children = []
            for dep in dependencies:
                child_identity = _identity(dep.uuid, dep.path)

                if child_identity in active_path:
                    logger.info(f"Cycle detected: {dep.path} is an ancestor of {asset_path}")
                    children.append(DependencyNode(dep.path, dep.uuid, dep.state, asset_path, cycle=True))
                elif self.recursive and dep.may_have_dependencies:
                    children.append(self._expand(dep.path, dep.uuid, dep.state, asset_path, active_path))
                else:
                    children.append(DependencyNode(dep.path, dep.uuid, dep.state, asset_path))
        finally:
            active_path.pop()

        return DependencyNode(asset_path, asset_uuid, state, parent_path, children=tuple(children))

    def _fetch_for(self, asset_uuid: str, propagate: bool) -> List[Dependency]:
        """Fetch direct dependencies, retrying transient errors for nested nodes."""
        if propagate:
            return self._fetch(asset_uuid)

        attempt = 0
        while True:
            attempt += 1
            try:
                return self._fetch(asset_uuid)
            except PcliError as e:
                decision = self._policy.classify(e)
                if not self._policy.should_retry(decision, attempt):
                    raise
                if isinstance(decision, RetryAfter):
                    self._sleep(decision.delay)


def _identity(asset_uuid: str, asset_path: str) -> str:
    """Missing assets share the nil UUID, so they are identified by path."""
    return asset_path if asset_uuid == NIL_UUID else asset_uuid
