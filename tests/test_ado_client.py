"""Tests for the Azure DevOps REST endpoint."""

import base64
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from ado_pipeline_migrator.ado_client import CONTINUATION_HEADER, AzureDevOpsEndpoint, get_session
from ado_pipeline_migrator.config import EndpointConfig
from ado_pipeline_migrator.exceptions import CreationError, ListingError
from ado_pipeline_migrator.models import (
    BuildDefinition,
    EntityKind,
    Mapping,
    ReleaseDefinition,
    ServiceConnection,
    TaskGroup,
)

ORG = "https://dev.azure.com/org"


def _response(payload: Any, headers: dict[str, str] | None = None) -> MagicMock:  # noqa: ANN401
    response = MagicMock()
    response.json.return_value = payload
    response.headers = headers or {}
    return response


def _error_response(text: str) -> MagicMock:
    response = MagicMock()
    response.text = text
    response.raise_for_status.side_effect = requests.HTTPError("400 Client Error", response=response)
    return response


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def endpoint(session: MagicMock) -> AzureDevOpsEndpoint:
    return AzureDevOpsEndpoint(EndpointConfig(ORG, "Project", token="pat"), session=session)


@pytest.mark.unit
class TestGetSession:
    def test_basic_auth_with_empty_user(self) -> None:
        session = get_session("pat")

        expected = base64.b64encode(b":pat").decode()
        assert session.headers["Authorization"] == f"Basic {expected}"

    def test_anonymous(self) -> None:
        assert "Authorization" not in get_session(None).headers


@pytest.mark.unit
class TestListDefinitions:
    def test_follows_continuation_tokens(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        session.get.side_effect = [
            _response({"value": [{"id": "a", "name": "A"}]}, {CONTINUATION_HEADER: "next-page"}),
            _response({"value": [{"id": "b", "name": "B"}]}),
        ]

        definitions = endpoint.list_definitions(EntityKind.TASK_GROUP)

        assert [d.id for d in definitions] == ["a", "b"]
        assert all(isinstance(d, TaskGroup) for d in definitions)
        first, second = session.get.call_args_list
        assert first.args == (f"{ORG}/Project/_apis/distributedtask/taskgroups",)
        assert "continuationToken" not in first.kwargs["params"]
        assert second.kwargs["params"]["continuationToken"] == "next-page"

    def test_builds_are_fetched_one_by_one(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        session.get.side_effect = [
            _response({"value": [{"id": 1, "name": "ci"}]}),
            _response({"id": 1, "name": "ci", "process": {"phases": []}}),
        ]

        definitions = endpoint.list_definitions(EntityKind.BUILD_DEFINITION)

        assert isinstance(definitions[0], BuildDefinition)
        assert "process" in definitions[0].payload
        assert session.get.call_args_list[1].args == (f"{ORG}/Project/_apis/build/definitions/1",)

    def test_releases_use_the_release_host(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        session.get.side_effect = [
            _response({"value": [{"id": 4, "name": "cd"}]}),
            _response({"id": 4, "name": "cd", "environments": []}),
        ]

        definitions = endpoint.list_definitions(EntityKind.RELEASE_DEFINITION)

        assert isinstance(definitions[0], ReleaseDefinition)
        release_url = "https://vsrm.dev.azure.com/org/Project/_apis/release/definitions"
        assert session.get.call_args_list[0].args == (release_url,)

    def test_on_premises_releases_share_the_host(self, session: MagicMock) -> None:
        endpoint = AzureDevOpsEndpoint(EndpointConfig("https://tfs.example.com/tfs/Coll", "P"), session=session)
        session.get.side_effect = [_response({"value": []})]

        endpoint.list_definitions(EntityKind.RELEASE_DEFINITION)

        assert session.get.call_args.args == ("https://tfs.example.com/tfs/Coll/P/_apis/release/definitions",)

    def test_http_error_becomes_listing_error(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        session.get.return_value = _error_response("no access")

        with pytest.raises(ListingError, match="GET"):
            endpoint.list_definitions(EntityKind.VARIABLE_GROUP)


@pytest.mark.unit
class TestCreateDefinitions:
    def test_service_connection_is_shared_with_the_project(
        self, endpoint: AzureDevOpsEndpoint, session: MagicMock
    ) -> None:
        session.get.return_value = _response({"id": "project-guid", "name": "Project"})
        session.post.return_value = _response({"id": "new-sc"})
        connection = ServiceConnection(
            {
                "id": "old-sc",
                "name": "Prod",
                "type": "azurerm",
                "url": "https://management.azure.com/",
                "createdBy": {"id": "x"},
            }
        )

        mappings = endpoint.create_definitions(EntityKind.SERVICE_CONNECTION, [connection])

        assert mappings == [Mapping("old-sc", "new-sc", "Prod")]
        (url,) = session.post.call_args.args
        assert url == f"{ORG}/_apis/serviceendpoint/endpoints"
        body = session.post.call_args.kwargs["json"]
        assert "id" not in body
        assert "createdBy" not in body
        assert body["url"] == "https://management.azure.com/"
        assert body["serviceEndpointProjectReferences"][0]["projectReference"] == {
            "id": "project-guid",
            "name": "Project",
        }
        # The definition handed in is not modified
        assert connection.id == "old-sc"

    def test_project_id_is_looked_up_once(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        session.get.return_value = _response({"id": "project-guid"})
        session.post.side_effect = [_response({"id": "n1"}), _response({"id": "n2"})]
        connections = [ServiceConnection({"id": "a", "name": "A"}), ServiceConnection({"id": "b", "name": "B"})]

        endpoint.create_definitions(EntityKind.SERVICE_CONNECTION, connections)

        assert session.get.call_count == 1

    def test_task_group_is_created_in_the_project(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        session.post.return_value = _response({"id": "tg-new"})

        endpoint.create_definitions(EntityKind.TASK_GROUP, [TaskGroup({"id": "tg-old", "name": "Deploy"})])

        assert session.post.call_args.args == (f"{ORG}/Project/_apis/distributedtask/taskgroups",)
        session.get.assert_not_called()

    def test_build_definition_drops_its_own_url(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        session.post.return_value = _response({"id": 77})
        build = BuildDefinition(
            {"id": 1, "name": "ci", "url": "https://dev.azure.com/org/_apis/build/1", "revision": 5}
        )

        endpoint.create_definitions(EntityKind.BUILD_DEFINITION, [build])

        body = session.post.call_args.kwargs["json"]
        assert body == {"name": "ci"}

    def test_rejected_definition_raises(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        session.post.return_value = _error_response("TF400898: name already exists")

        with pytest.raises(CreationError, match="name already exists"):
            endpoint.create_definitions(EntityKind.TASK_GROUP, [TaskGroup({"id": "tg-old", "name": "Deploy"})])


@pytest.mark.unit
class TestUpdateTaskGroupVersions:
    def test_update_is_put_onto_root_with_revision(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        root = TaskGroup({"id": "t1", "name": "Deploy", "revision": 3, "version": {"major": 1}})
        update = TaskGroup({"id": "s2", "name": "deploy", "revision": 9, "version": {"major": 2}})
        session.put.return_value = _response({"id": "t1", "revision": 4})

        endpoint.update_task_group_versions([root], [root], [update])

        assert session.put.call_args.args == (f"{ORG}/Project/_apis/distributedtask/taskgroups/t1",)
        body = session.put.call_args.kwargs["json"]
        assert body["id"] == "t1"
        assert body["revision"] == 3
        assert body["version"] == {"major": 2}

    def test_successive_updates_use_returned_revision(
        self, endpoint: AzureDevOpsEndpoint, session: MagicMock
    ) -> None:
        root = TaskGroup({"id": "t1", "name": "Deploy", "revision": 3, "version": {"major": 1}})
        updates = [
            TaskGroup({"id": "s2", "name": "Deploy", "version": {"major": 2}}),
            TaskGroup({"id": "s3", "name": "Deploy", "version": {"major": 3}}),
        ]
        session.put.side_effect = [_response({"id": "t1", "revision": 4}), _response({"id": "t1", "revision": 5})]

        endpoint.update_task_group_versions([root], [root], updates)

        assert session.put.call_args_list[1].kwargs["json"]["revision"] == 4

    def test_missing_root_is_returned(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        root = TaskGroup({"id": "t1", "name": "Deploy", "revision": 3, "version": {"major": 1}})
        orphan = TaskGroup({"id": "s2", "name": "Other", "version": {"major": 2}})
        update = TaskGroup({"id": "s3", "name": "Deploy", "version": {"major": 2}})
        session.put.return_value = _response({"id": "t1", "revision": 4})

        skipped = endpoint.update_task_group_versions([root], [root], [orphan, update])

        assert skipped == [orphan]
        assert session.put.call_count == 1

    def test_applied_updates_return_nothing(self, endpoint: AzureDevOpsEndpoint, session: MagicMock) -> None:
        root = TaskGroup({"id": "t1", "name": "Deploy", "version": {"major": 1}})
        session.put.return_value = _response({"id": "t1"})

        update = TaskGroup({"id": "s2", "name": "Deploy", "version": {"major": 2}})
        assert endpoint.update_task_group_versions([root], [root], [update]) == []
