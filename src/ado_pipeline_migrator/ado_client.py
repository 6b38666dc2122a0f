"""REST access to the definitions of one Azure DevOps project."""

from __future__ import annotations

import base64
import copy
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import requests

from .exceptions import CreationError, ListingError
from .models import EntityKind, Mapping, TaskGroup, definition_from_payload

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .config import EndpointConfig
    from .models import Definition

logger: logging.Logger = logging.getLogger(__name__)

CONTINUATION_HEADER: Final[str] = "x-ms-continuationtoken"
DEFAULT_TIMEOUT: Final[int] = 60

# Read-only top-level fields rejected or ignored by create calls
_READ_ONLY_FIELDS: Final[tuple[str, ...]] = (
    "id",
    "_links",
    "url",
    "uri",
    "revision",
    "createdBy",
    "createdOn",
    "modifiedBy",
    "modifiedOn",
)

# Fields in _READ_ONLY_FIELDS that a kind needs on create; a service
# connection's url is the address of the service it connects to
_WRITABLE_FIELDS: Final[dict[EntityKind, frozenset[str]]] = {
    EntityKind.SERVICE_CONNECTION: frozenset({"url"}),
}


@dataclass(frozen=True)
class ApiPath:
    """Where definitions of a kind live in the REST API."""

    path: str
    api_version: str
    release_host: bool = False
    """Release management lives on the vsrm host of dev.azure.com organizations."""
    fetch_each: bool = False
    """The list call returns references only; each definition is fetched by id."""
    organization_scoped_create: bool = False
    """Created at organization level and shared with the project by reference."""


API_PATHS: Final[dict[EntityKind, ApiPath]] = {
    EntityKind.SERVICE_CONNECTION: ApiPath(
        "serviceendpoint/endpoints", "6.0-preview.4", organization_scoped_create=True
    ),
    EntityKind.VARIABLE_GROUP: ApiPath(
        "distributedtask/variablegroups", "6.0-preview.2", organization_scoped_create=True
    ),
    EntityKind.TASK_GROUP: ApiPath("distributedtask/taskgroups", "6.0-preview.1"),
    EntityKind.BUILD_DEFINITION: ApiPath("build/definitions", "6.0", fetch_each=True),
    EntityKind.RELEASE_DEFINITION: ApiPath("release/definitions", "6.0", release_host=True, fetch_each=True),
    EntityKind.AGENT_POOL: ApiPath("distributedtask/queues", "6.0-preview.1"),
    EntityKind.DEPLOYMENT_GROUP: ApiPath("distributedtask/deploymentgroups", "6.0-preview.1"),
    EntityKind.GIT_REPO: ApiPath("git/repositories", "6.0"),
}


def _release_url(organization_url: str) -> str:
    # https://dev.azure.com/org -> https://vsrm.dev.azure.com/org; on-premises servers use one host
    return organization_url.replace("://dev.azure.com", "://vsrm.dev.azure.com", 1)


def _strip_read_only(kind: EntityKind, payload: dict[str, Any]) -> dict[str, Any]:
    body = copy.deepcopy(payload)
    kept = _WRITABLE_FIELDS.get(kind, frozenset())
    for key in _READ_ONLY_FIELDS:
        if key not in kept:
            body.pop(key, None)
    return body


def get_session(token: str | None) -> requests.Session:
    """Get a requests session authenticating with a personal access token."""
    session = requests.Session()
    session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})
    if token:
        encoded = base64.b64encode(f":{token}".encode()).decode()
        session.headers["Authorization"] = f"Basic {encoded}"
    return session


class AzureDevOpsEndpoint:
    """One Azure DevOps project, as source or target of a migration."""

    _config: EndpointConfig
    _session: requests.Session
    _timeout: int
    _project_id: str | None

    def __init__(
        self,
        config: EndpointConfig,
        session: requests.Session | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self._config = config
        self._session = session or get_session(config.token)
        self._timeout = timeout
        self._project_id = None

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def project(self) -> str:
        return self._config.project

    def _base_url(self, api: ApiPath, *, with_project: bool = True) -> str:
        organization_url = self._config.organization_url.rstrip("/")
        if api.release_host:
            organization_url = _release_url(organization_url)
        if with_project:
            return f"{organization_url}/{self._config.project}/_apis/{api.path}"
        return f"{organization_url}/_apis/{api.path}"

    def _get_json(self, url: str, params: dict[str, str]) -> requests.Response:
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            msg = f"GET {url} failed on {self.name}: {e}"
            raise ListingError(msg) from e
        return response

    def list_definitions(self, kind: EntityKind) -> list[Definition]:
        """List all definitions of a kind, following continuation tokens."""
        api = API_PATHS[kind]
        url = self._base_url(api)
        params: dict[str, str] = {"api-version": api.api_version}

        payloads: list[dict[str, Any]] = []
        while True:
            response = self._get_json(url, params)
            payloads.extend(response.json().get("value", []))
            token = response.headers.get(CONTINUATION_HEADER)
            if not token:
                break
            params = {**params, "continuationToken": token}

        if api.fetch_each:
            payloads = [
                self._get_json(f"{url}/{payload['id']}", {"api-version": api.api_version}).json()
                for payload in payloads
            ]

        logger.debug(f"Listed {len(payloads)} {kind}(s) from {self.name}")
        return [definition_from_payload(kind, payload) for payload in payloads]

    def _get_project_id(self) -> str:
        if self._project_id is None:
            organization_url = self._config.organization_url.rstrip("/")
            response = self._get_json(
                f"{organization_url}/_apis/projects/{self._config.project}", {"api-version": "6.0"}
            )
            self._project_id = str(response.json()["id"])
        return self._project_id

    def _creation_body(self, kind: EntityKind, definition: Definition) -> dict[str, Any]:
        body = _strip_read_only(kind, definition.payload)
        if kind == EntityKind.SERVICE_CONNECTION:
            body["serviceEndpointProjectReferences"] = [
                {
                    "name": definition.name,
                    "description": body.get("description") or "",
                    "projectReference": {"id": self._get_project_id(), "name": self._config.project},
                }
            ]
        elif kind == EntityKind.VARIABLE_GROUP:
            for reference in body.get("variableGroupProjectReferences") or []:
                reference.setdefault("projectReference", {})["id"] = self._get_project_id()
        return body

    def create_definitions(self, kind: EntityKind, definitions: Sequence[Definition]) -> list[Mapping]:
        """Create definitions one by one, failing on the first rejected one."""
        api = API_PATHS[kind]
        url = self._base_url(api, with_project=not api.organization_scoped_create)
        params = {"api-version": api.api_version}

        mappings: list[Mapping] = []
        for definition in definitions:
            body = self._creation_body(kind, definition)
            try:
                response = self._session.post(url, params=params, json=body, timeout=self._timeout)
                response.raise_for_status()
            except requests.RequestException as e:
                detail = e.response.text if e.response is not None else ""
                msg = f"Failed to create {kind} '{definition.name}' in {self.name}: {e} {detail}".rstrip()
                raise CreationError(msg) from e

            created = response.json()
            mappings.append(Mapping(source_id=definition.id, target_id=str(created["id"]), name=definition.name))
            logger.debug(f"Created {kind} '{definition.name}' ({definition.id} -> {created['id']})")

        logger.info(f"Created {len(mappings)} {kind}(s) in {self.name}")
        return mappings

    def update_task_group_versions(
        self,
        targets: Sequence[TaskGroup],
        root_targets: Sequence[TaskGroup],
        updates: Sequence[TaskGroup],
    ) -> list[TaskGroup]:
        """Publish each update as a new major version of the target root with the same name.

        Returns:
            The updates that were skipped because no target root has their name
        """
        api = API_PATHS[EntityKind.TASK_GROUP]
        roots = {task_group.name.lower(): task_group for task_group in root_targets}
        revisions: dict[str, int] = {}
        skipped: list[TaskGroup] = []
        for task_group in targets:
            revision = task_group.payload.get("revision")
            if isinstance(revision, int):
                revisions[task_group.id] = max(revisions.get(task_group.id, 0), revision)

        for update in updates:
            root = roots.get(update.name.lower())
            if root is None:
                logger.debug(f"No target root task group named {update.name} for version {update.major_version}")
                skipped.append(update)
                continue

            body = _strip_read_only(EntityKind.TASK_GROUP, update.payload)
            body["id"] = root.id
            if root.id in revisions:
                body["revision"] = revisions[root.id]
            url = f"{self._base_url(api)}/{root.id}"
            try:
                response = self._session.put(
                    url, params={"api-version": api.api_version}, json=body, timeout=self._timeout
                )
                response.raise_for_status()
            except requests.RequestException as e:
                msg = f"Failed to apply version {update.major_version} of task group '{update.name}': {e}"
                raise CreationError(msg) from e

            updated = response.json()
            if isinstance(updated.get("revision"), int):
                revisions[root.id] = updated["revision"]
            logger.debug(f"Applied version {update.major_version} of task group '{update.name}' onto {root.id}")

        return skipped
