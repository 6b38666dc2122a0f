"""Tests for excluding pipelines whose dependency kinds were not migrated."""

import pytest
from fakes import build_definition, build_step

from ado_pipeline_migrator.gate import admit
from ado_pipeline_migrator.mapping import MappingTable
from ado_pipeline_migrator.models import BuildDefinition, EntityKind


def _plain(id_: int) -> BuildDefinition:
    return BuildDefinition(build_definition(id_, f"plain-{id_}", steps=[build_step("Build", "task-1")]))


def _with_task_group(id_: int) -> BuildDefinition:
    return BuildDefinition(build_definition(id_, f"tg-{id_}", steps=[build_step("Deploy", "tg-1", meta=True)]))


def _with_variable_group(id_: int) -> BuildDefinition:
    return BuildDefinition(build_definition(id_, f"vg-{id_}", variable_groups=[9]))


@pytest.mark.unit
class TestAdmit:
    def test_excludes_exactly_the_task_group_user(self) -> None:
        candidates = [_plain(1), _with_task_group(2), _plain(3)]

        admitted, warnings = admit(candidates, None, MappingTable(EntityKind.VARIABLE_GROUP))

        assert [d.id for d in admitted] == ["1", "3"]
        assert len(warnings) == 1
        assert warnings[0].entity_id == "2"
        assert warnings[0].category == "capability_absent"
        assert warnings[0].dependency_kind == EntityKind.TASK_GROUP

    def test_excludes_variable_group_user_with_its_own_predicate(self) -> None:
        candidates = [_plain(1), _with_variable_group(2), _with_task_group(3)]

        admitted, warnings = admit(candidates, MappingTable(EntityKind.TASK_GROUP), None)

        assert [d.id for d in admitted] == ["1", "3"]
        assert [w.dependency_kind for w in warnings] == [EntityKind.VARIABLE_GROUP]

    def test_both_tables_absent(self) -> None:
        candidates = [_plain(1), _with_variable_group(2), _with_task_group(3)]

        admitted, warnings = admit(candidates, None, None)

        assert [d.id for d in admitted] == ["1"]
        assert len(warnings) == 2

    def test_empty_tables_do_not_exclude(self) -> None:
        candidates = [_with_variable_group(1), _with_task_group(2)]

        admitted, warnings = admit(
            candidates, MappingTable(EntityKind.TASK_GROUP), MappingTable(EntityKind.VARIABLE_GROUP)
        )

        assert admitted == candidates
        assert warnings == []
