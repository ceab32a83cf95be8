from __future__ import annotations

"""
Network Communication Infrastructure.

Exposes the tenant-scoped REST client and the client-credentials token
provider it authenticates with.
"""

from pcli2.infra.network.api_client import PhysnaApiClient
from pcli2.infra.network.auth_client import (
    AccessToken,
    ClientCredentialsTokenProvider,
    fetch_access_token,
)
from pcli2.infra.network.common import looks_like_uuid

__all__ = [
    "PhysnaApiClient",
    "AccessToken",
    "ClientCredentialsTokenProvider",
    "fetch_access_token",
    "looks_like_uuid",
]
