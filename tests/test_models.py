"""Tests for definition views over REST payloads."""

import pytest
from fakes import build_definition, build_step, deploy_phase, environment, release_definition, task_group, workflow_task

from ado_pipeline_migrator.models import (
    BuildDefinition,
    EntityKind,
    ReleaseDefinition,
    TaskGroup,
    VariableGroup,
    definition_from_payload,
    is_meta_task,
)


@pytest.mark.unit
class TestDefinition:
    def test_ids_are_exposed_as_strings(self) -> None:
        group = VariableGroup({"id": 42, "name": "shared"})
        assert group.id == "42"
        assert group.name == "shared"

    def test_missing_id_and_name(self) -> None:
        group = VariableGroup({})
        assert group.id == ""
        assert group.name == ""

    def test_copy_is_deep(self) -> None:
        original = BuildDefinition(build_definition(1, "ci", variable_groups=[5]))
        clone = original.copy()
        clone.payload["variableGroups"][0]["id"] = 99

        assert original.payload["variableGroups"][0]["id"] == 5
        assert isinstance(clone, BuildDefinition)

    def test_definition_from_payload_picks_view_class(self) -> None:
        definition = definition_from_payload(EntityKind.TASK_GROUP, task_group("tg-1", "Deploy"))
        assert isinstance(definition, TaskGroup)
        assert definition.kind == EntityKind.TASK_GROUP


@pytest.mark.unit
class TestTaskGroup:
    def test_major_version(self) -> None:
        assert TaskGroup(task_group("tg-1", "Deploy", major=3)).major_version == 3

    def test_major_version_missing(self) -> None:
        assert TaskGroup({"id": "tg-1", "name": "Deploy"}).major_version is None
        assert TaskGroup({"id": "tg-1", "version": "1.0"}).major_version is None


@pytest.mark.unit
class TestIsMetaTask:
    @pytest.mark.parametrize("value", ["metaTask", "METATASK", "metatask"])
    def test_meta_task(self, value: str) -> None:
        assert is_meta_task(value)

    @pytest.mark.parametrize("value", ["task", "", None, 1])
    def test_not_meta_task(self, value: object) -> None:
        assert not is_meta_task(value)


@pytest.mark.unit
class TestBuildDefinitionReferences:
    def test_no_references(self) -> None:
        definition = BuildDefinition(build_definition(1, "ci", steps=[build_step("Build", "task-1")]))
        assert not definition.has_task_group_reference()
        assert not definition.has_variable_group_reference()

    def test_task_group_reference(self) -> None:
        definition = BuildDefinition(build_definition(1, "ci", steps=[build_step("Deploy", "tg-1", meta=True)]))
        assert definition.has_task_group_reference()

    def test_variable_group_reference(self) -> None:
        definition = BuildDefinition(build_definition(1, "ci", variable_groups=[7]))
        assert definition.has_variable_group_reference()

    def test_process_without_phases(self) -> None:
        definition = BuildDefinition({"id": 1, "name": "yaml", "process": {"type": 2, "yamlFilename": "ci.yml"}})
        assert list(definition.steps()) == []
        assert not definition.has_task_group_reference()


@pytest.mark.unit
class TestReleaseDefinitionReferences:
    def test_task_group_reference_in_workflow_task(self) -> None:
        definition = ReleaseDefinition(
            release_definition(
                1,
                "deploy",
                environments=[
                    environment(
                        "prod",
                        phases=[
                            deploy_phase("agentBasedDeployment", 3, tasks=[workflow_task("tg", "tg-1", meta=True)])
                        ],
                    )
                ],
            )
        )
        assert definition.has_task_group_reference()
        assert not definition.has_variable_group_reference()

    def test_variable_group_reference_on_environment(self) -> None:
        definition = ReleaseDefinition(
            release_definition(1, "deploy", environments=[environment("prod", variable_groups=[4])])
        )
        assert definition.has_variable_group_reference()

    def test_variable_group_reference_on_definition(self) -> None:
        definition = ReleaseDefinition(release_definition(1, "deploy", variable_groups=[4]))
        assert definition.has_variable_group_reference()
