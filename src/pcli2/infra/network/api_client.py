from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

import requests

from pcli2.domain.constants import DEPENDENCY_PAGE_SIZE, FOLDER_PAGE_SIZE, SEARCH_PAGE_SIZE
from pcli2.domain.errors import (
    AuthenticationError,
    LocalIOError,
    NetworkError,
    PermanentRemoteError,
    remote_error_from_status,
)
from pcli2.domain.models import Asset, Dependency, Folder, GeometricMatch
from pcli2.infra.fs import commit_download, discard_partial, prepare_destination
from pcli2.infra.network.auth_client import ClientCredentialsTokenProvider
from pcli2.infra.network.common import CHUNK_SIZE, DEFAULT_TIMEOUT, USER_AGENT, looks_like_uuid

logger = logging.getLogger(__name__)

ROOT_FOLDER_ID = "root"
AUTH_REJECTED_STATUSES = (401, 403)


class PhysnaApiClient:
    """
    Tenant-scoped client for the asset service REST API.

    Every request carries a bearer token from the token provider. A 401/403
    response triggers one token refresh and one repeat of the request; HTTP
    errors are raised as the RemoteError taxonomy and transport failures
    as NetworkError, leaving retry decisions to the batch engine.
    """

    def __init__(
            self,
            base_url: str,
            tenant: str,
            token_provider: ClientCredentialsTokenProvider,
            *,
            timeout: int = DEFAULT_TIMEOUT,
            session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.tenant = tenant
        self.timeout = timeout
        self._tokens = token_provider
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "PhysnaApiClient":
        """Build a client from validated settings."""
        provider = ClientCredentialsTokenProvider(
            config["client_id"], config["client_secret"], config["auth_url"]
        )
        return cls(config["api_base_url"], config["tenant"], provider, timeout=int(config["timeout"]))

    # -------------------------------------------------------------------------
    # FOLDERS
    # -------------------------------------------------------------------------

    def resolve_folder(self, ref: str) -> Folder:
        """Resolve a folder UUID or '/'-separated path ('' or '/' is the root)."""
        path = ref.strip().strip("/")
        if not path:
            return Folder(uuid=ROOT_FOLDER_ID, name="", path="")
        if looks_like_uuid(path):
            data = self._get_json(f"folders/{path}")
            return Folder.from_api(data.get("folder", data))

        current = Folder(uuid=ROOT_FOLDER_ID, name="", path="")
        for segment in path.split("/"):
            match = next((f for f in self.list_subfolders(current.uuid, current.path) if f.name == segment), None)
            if match is None:
                raise PermanentRemoteError(404, f"Folder not found: /{path}")
            current = match
        return current

    def list_subfolders(self, folder_uuid: str, parent_path: str = "") -> List[Folder]:
        """List the direct subfolders of a folder (all pages)."""
        params: Dict[str, Any] = {"contentType": "folders"}
        if folder_uuid and folder_uuid != ROOT_FOLDER_ID:
            params["parentFolderId"] = folder_uuid
        return [
            Folder.from_api(raw, parent_path)
            for raw in self._paginate("GET", "folders", "folders", params=params, per_page=FOLDER_PAGE_SIZE)
        ]

    def list_folder_assets(self, folder_uuid: str) -> List[Asset]:
        """List the assets directly contained in a folder (all pages)."""
        folder_id = folder_uuid or ROOT_FOLDER_ID
        return [
            Asset.from_api(raw)
            for raw in self._paginate(
                "GET", f"folders/{folder_id}/contents", "assets",
                params={"contentType": "assets"}, per_page=FOLDER_PAGE_SIZE,
            )
        ]

    # -------------------------------------------------------------------------
    # ASSETS
    # -------------------------------------------------------------------------

    def get_asset(self, asset_uuid: str) -> Asset:
        data = self._get_json(f"assets/{asset_uuid}")
        return Asset.from_api(data.get("asset", data))

    def get_asset_by_path(self, asset_path: str) -> Optional[Asset]:
        """Find an asset by its full path; None when no such asset exists."""
        parent, _, name = asset_path.strip("/").rpartition("/")
        try:
            folder = self.resolve_folder(parent)
        except PermanentRemoteError as e:
            if e.status_code == 404:
                return None
            raise
        for asset in self.list_folder_assets(folder.uuid):
            if asset.name == name:
                return asset
        return None

    def download_asset(self, asset_uuid: str, destination: str) -> int:
        """
        Stream an asset's file to destination.

        The body is written to a temporary sibling file and renamed into
        place only when complete, so an interrupted download never looks
        like a finished one to the resume check.

        Returns:
            int: Number of bytes written.

        Raises:
            LocalIOError: If the destination cannot be written.
        """
        temp_path = prepare_destination(destination)
        written = 0
        response = self._request("GET", f"assets/{asset_uuid}/file", stream=True)
        try:
            with response, open(temp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        except OSError as e:
            discard_partial(temp_path)
            raise LocalIOError(f"Cannot write '{destination}': {e}") from e
        except requests.exceptions.RequestException as e:
            discard_partial(temp_path)
            raise NetworkError(f"Download interrupted for asset {asset_uuid}: {e}") from e

        commit_download(temp_path, destination)
        logger.debug(f"Downloaded {written} bytes to {destination}")
        return written

    def upload_asset(self, local_path: str, remote_path: str) -> Asset:
        """Create an asset at remote_path from a local file (missing folders are created)."""
        form = {
            "path": remote_path,
            "metadata": "",
            "createMissingFolders": "true",
        }
        try:
            with open(local_path, "rb") as fh:
                files = {"file": (remote_path.rsplit("/", 1)[-1], fh)}
                response = self._request("POST", "assets", data=form, files=files)
        except OSError as e:
            raise LocalIOError(f"Cannot read '{local_path}': {e}") from e

        data = _json_or_empty(response)
        return Asset.from_api(data.get("asset", data) or {"path": remote_path})

    def update_asset_metadata(self, asset_uuid: str, metadata: Dict[str, Any]) -> None:
        self._request("PATCH", f"assets/{asset_uuid}", json={"metadata": metadata}).close()

    def list_dependencies(self, asset_uuid: str) -> List[Dependency]:
        """List an asset's direct dependencies; an empty list when it has none."""
        try:
            return [
                Dependency.from_api(raw)
                for raw in self._paginate(
                    "GET", f"assets/{asset_uuid}/dependencies", "dependencies",
                    per_page=DEPENDENCY_PAGE_SIZE, per_page_param="per_page",
                )
            ]
        except PermanentRemoteError as e:
            # The service answers 404 for assets without dependencies
            if e.status_code == 404:
                return []
            raise

    def geometric_search(self, asset_uuid: str, threshold: float) -> List[GeometricMatch]:
        """Run the service-side geometric search for one asset (all pages)."""
        body = {
            "searchQuery": "",
            "filters": {"folders": [], "metadata": {}, "extensions": []},
            "minThreshold": threshold,
        }
        return [
            GeometricMatch.from_api(raw)
            for raw in self._paginate(
                "POST", f"assets/{asset_uuid}/geometric-search", "matches",
                body=body, per_page=SEARCH_PAGE_SIZE,
            )
        ]

    # -------------------------------------------------------------------------
    # TRANSPORT
    # -------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}/tenants/{self.tenant}/{path}"

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return _json_or_empty(self._request("GET", path, params=params))

    def _paginate(
            self,
            method: str,
            path: str,
            key: str,
            *,
            params: Optional[Dict[str, Any]] = None,
            body: Optional[Dict[str, Any]] = None,
            per_page: int,
            per_page_param: str = "perPage",
    ) -> Iterator[Dict[str, Any]]:
        """Yield the `key` entries of every page until currentPage >= lastPage."""
        page = 1
        while True:
            if body is not None:
                response = self._request(method, path, json={**body, "page": page, "perPage": per_page})
            else:
                query = dict(params or {})
                query.update({"page": page, per_page_param: per_page})
                response = self._request(method, path, params=query)

            data = _json_or_empty(response)
            entries = data.get(key) or []
            yield from entries

            page_data = data.get("pageData")
            if not page_data or not entries:
                return
            current = int(page_data.get("currentPage", page))
            last = int(page_data.get("lastPage", current))
            if current >= last:
                return
            page = current + 1

    def _request(
            self,
            method: str,
            path: str,
            *,
            params: Optional[Dict[str, Any]] = None,
            json: Optional[Dict[str, Any]] = None,
            data: Optional[Dict[str, Any]] = None,
            files: Optional[Dict[str, Any]] = None,
            stream: bool = False,
    ) -> requests.Response:
        """
        Send one authenticated request, refreshing the token once on 401/403.

        Raises:
            AuthenticationError: 401 persisted after the refresh.
            RemoteError: Any other non-2xx status (Transient for 409/429).
            NetworkError: Connection failure or timeout.
        """
        url = self._url(path)
        token = self._tokens.get_token()

        for auth_attempt in range(2):
            if auth_attempt and files:
                _rewind(files)
            try:
                response = self._session.request(
                    method,
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                    params=params,
                    json=json,
                    data=data,
                    files=files,
                    stream=stream,
                    timeout=self.timeout,
                )
            except requests.exceptions.Timeout as e:
                raise NetworkError(f"Request timed out: {method} {url}") from e
            except requests.exceptions.RequestException as e:
                raise NetworkError(f"Request failed: {method} {url}: {e}") from e

            if response.status_code in AUTH_REJECTED_STATUSES and auth_attempt == 0:
                logger.info(f"Access token rejected ({response.status_code}); refreshing and retrying once.")
                response.close()
                token = self._tokens.get_token(force_refresh=True, stale=token)
                continue
            break

        if response.status_code == 401:
            raise AuthenticationError(_error_detail(response), status_code=401)
        if not response.ok:
            detail = _error_detail(response)
            response.close()
            raise remote_error_from_status(response.status_code, detail)

        logger.debug(f"{method} {url} -> {response.status_code}")
        return response


# -----------------------------------------------------------------------------
# HELPERS
# -----------------------------------------------------------------------------

def _json_or_empty(response: requests.Response) -> Dict[str, Any]:
    """Decode a JSON object body; empty or non-object bodies yield {}."""
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            if payload.get(key):
                return str(payload[key])
    return (response.text or "").strip()[:200] or str(response.reason or "error")


def _rewind(files: Dict[str, Any]) -> None:
    for entry in files.values():
        handle = entry[1] if isinstance(entry, tuple) else entry
        if hasattr(handle, "seek"):
            handle.seek(0)
