# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import quote

import requests

from mxops.core.constants import (
    CANONICAL_ENVIRONMENT_NAMES,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_PLATFORM_URL,
)
from mxops.core.exceptions import ErrorKindEnum, PlatformError

if TYPE_CHECKING:
    from mxops.core.models import MendixCredentialModel

logger = logging.getLogger(__name__)


def normalize_environment_name(name: str) -> str:
    """Normalize an environment name the way the deploy API expects it.

    >>> normalize_environment_name("production")
    'Production'
    >>> normalize_environment_name("my-custom-env")
    'My-custom-env'
    """
    for canonical in CANONICAL_ENVIRONMENT_NAMES:
        if name.lower() == canonical.lower():
            return canonical
    if not name:
        return name
    return name[0].upper() + name[1:].lower()


def _quote(value: str) -> str:
    return quote(str(value), safe="")


class PlatformClient:
    """Client of the Mendix deployment platform API.

    Every method performs a single HTTP call. Retrying is left to the caller.
    """

    def __init__(
        self,
        credential: MendixCredentialModel,
        base_url: str = DEFAULT_PLATFORM_URL,
        timeout: int = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(self._auth_headers(credential))

    @staticmethod
    def _auth_headers(credential: MendixCredentialModel) -> dict[str, str]:
        headers = {
            "Mendix-Username": credential.username,
            "Mendix-ApiKey": credential.api_key or credential.pat or "",
        }
        if credential.pat:
            headers["Authorization"] = f"MxToken {credential.pat}"
        return headers

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(
                method, url, json=json, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise PlatformError(
                operation, body=str(e), kind=ErrorKindEnum.UNKNOWN
            ) from e
        if not response.ok:
            raise PlatformError(operation, response.status_code, response.text)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    def _app_path(self, app_id: str) -> str:
        return f"/1/apps/{_quote(app_id)}"

    def _environment_path(self, app_id: str, environment_name: str) -> str:
        return (
            f"{self._app_path(app_id)}/environments/"
            f"{_quote(normalize_environment_name(environment_name))}"
        )

    def _snapshots_path(self, project_id: str, environment_id: str) -> str:
        return (
            f"/v2/apps/{_quote(project_id)}/environments/"
            f"{_quote(environment_id)}/snapshots"
        )

    # Environments

    def start(self, app_id: str, environment_name: str) -> dict[str, Any]:
        return self._request(
            "start",
            "POST",
            f"{self._environment_path(app_id, environment_name)}/start",
            json={"AutoSyncDb": True},
        )

    def stop(self, app_id: str, environment_name: str) -> dict[str, Any]:
        return self._request(
            "stop", "POST", f"{self._environment_path(app_id, environment_name)}/stop"
        )

    def environment_status(self, app_id: str, environment_name: str) -> dict[str, Any]:
        """Get an environment, including its `Status` and `EnvironmentId`."""
        return self._request(
            "environment status",
            "GET",
            self._environment_path(app_id, environment_name),
        )

    def get_environment_package(
        self, app_id: str, environment_name: str
    ) -> dict[str, Any]:
        """Get the package deployed on an environment."""
        return self._request(
            "environment package",
            "GET",
            f"{self._environment_path(app_id, environment_name)}/package",
        )

    # Packages

    def create_package(
        self,
        app_id: str,
        *,
        branch: str,
        revision: str,
        version: str,
        description: str,
    ) -> dict[str, Any]:
        """Build a deployment package, returns the `PackageId`."""
        return self._request(
            "create package",
            "POST",
            f"{self._app_path(app_id)}/packages",
            json={
                "Branch": branch,
                "Revision": revision,
                "Version": version,
                "Description": description,
            },
        )

    def get_package(self, app_id: str, package_id: str) -> dict[str, Any]:
        return self._request(
            "package status",
            "GET",
            f"{self._app_path(app_id)}/packages/{_quote(package_id)}",
        )

    def list_packages(self, app_id: str) -> list[dict[str, Any]]:
        packages = self._request(
            "list packages", "GET", f"{self._app_path(app_id)}/packages"
        )
        return packages if isinstance(packages, list) else []

    def transport(
        self,
        app_id: str,
        environment_name: str,
        package_id: str,
    ) -> dict[str, Any]:
        return self._request(
            "transport",
            "POST",
            f"{self._environment_path(app_id, environment_name)}/transport",
            json={"PackageId": package_id},
        )

    # Snapshots

    def create_backup(
        self, project_id: str, environment_id: str, comment: str
    ) -> dict[str, Any]:
        """Request a snapshot of an environment, returns the `snapshot_id`."""
        return self._request(
            "create backup",
            "POST",
            self._snapshots_path(project_id, environment_id),
            json={"comment": comment},
        )

    def get_backup(
        self, project_id: str, environment_id: str, backup_id: str
    ) -> dict[str, Any]:
        return self._request(
            "backup status",
            "GET",
            f"{self._snapshots_path(project_id, environment_id)}/{_quote(backup_id)}",
        )

    def list_backups(
        self, project_id: str, environment_id: str
    ) -> list[dict[str, Any]]:
        data = self._request(
            "list backups", "GET", self._snapshots_path(project_id, environment_id)
        )
        if isinstance(data, dict):
            return data.get("snapshots") or []
        return data if isinstance(data, list) else []
