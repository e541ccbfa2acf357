"""OrganizationalUnitService 与空间上下文单元测试"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from workbench.core.exceptions import ValidationError
from workbench.core.models import OrganizationalUnit, Repository
from workbench.core.registry import ConfiguredRepositories
from workbench.services.context import SpacesAPI, WorkspaceProjectContext
from workbench.services.org_unit_service import OrganizationalUnitService


@pytest.fixture()
def registry() -> ConfiguredRepositories:
    return ConfiguredRepositories()


@pytest.fixture()
def units(tmp_path: Path, registry) -> OrganizationalUnitService:
    return OrganizationalUnitService(tmp_path / "org_units.yml", registry)


class TestOrganizationalUnitService:
    def test_create_defaults_space_to_name(self, units) -> None:
        ou = units.create_organizational_unit("team-a", owner="alice")
        assert (ou.name, ou.space, ou.owner) == ("team-a", "team-a", "alice")

    def test_create_in_explicit_space(self, units) -> None:
        assert units.create_organizational_unit("ops", space="team-a").space == "team-a"

    @pytest.mark.parametrize("name", ["", "team-a"])
    def test_create_rejects_empty_or_duplicate(self, units, name: str) -> None:
        units.create_organizational_unit("team-a")
        with pytest.raises(ValidationError):
            units.create_organizational_unit(name)

    def test_repositories_resolved_from_registry(self, units, registry) -> None:
        ou = units.create_organizational_unit("team-a")
        repo = Repository(alias="core", space="team-a")
        registry.add("team-a", repo)
        units.add_repository(ou, repo)
        units.add_repository(ou, repo)

        loaded = units.get_organizational_unit("team-a")
        assert loaded.repository_aliases() == ["core"]
        assert loaded.repositories[0] is repo

    def test_unknown_alias_kept_as_placeholder(self, units) -> None:
        ou = units.create_organizational_unit("team-a")
        units.add_repository(ou, Repository(alias="gone", space="team-a"))
        placeholder = units.get_organizational_unit("team-a").repositories[0]
        assert placeholder.alias == "gone"
        assert not placeholder.is_initialized()

    def test_remove_repository(self, units) -> None:
        ou = units.create_organizational_unit("team-a")
        repo = Repository(alias="core", space="team-a")
        units.add_repository(ou, repo)
        units.remove_repository(ou, repo)
        assert ou.repositories == []
        assert units.get_organizational_unit("team-a").repositories == []

    def test_add_to_missing_unit_raises(self, units) -> None:
        with pytest.raises(ValidationError, match="不存在"):
            units.add_repository(OrganizationalUnit("ghost"), Repository(alias="core", space="ghost"))

    def test_persistence_and_removal(self, tmp_path: Path, units, registry) -> None:
        units.create_organizational_unit("team-a")
        reloaded = OrganizationalUnitService(tmp_path / "org_units.yml", registry)
        assert [ou.name for ou in reloaded.get_all_organizational_units()] == ["team-a"]
        assert reloaded.remove_organizational_unit("team-a") is True
        assert reloaded.remove_organizational_unit("team-a") is False
        assert reloaded.get_organizational_unit("team-a") is None


class TestWorkspaceProjectContext:
    def test_set_and_clear(self) -> None:
        ctx = WorkspaceProjectContext()
        ctx.set_active_organizational_unit(OrganizationalUnit("team-a"))
        assert ctx.get_active_organizational_unit().name == "team-a"
        ctx.clear()
        assert ctx.get_active_organizational_unit() is None

    def test_activate_restores_previous(self) -> None:
        ctx = WorkspaceProjectContext()
        ctx.set_active_organizational_unit(OrganizationalUnit("team-a"))
        try:
            with ctx.activate(OrganizationalUnit("team-b")):
                assert ctx.get_active_organizational_unit().name == "team-b"
            assert ctx.get_active_organizational_unit().name == "team-a"
        finally:
            ctx.clear()

    def test_tasks_do_not_leak_context(self) -> None:
        """不同 asyncio 任务各自持有活动组织单元"""
        ctx = WorkspaceProjectContext()
        ctx.clear()

        async def worker(name: str) -> str:
            ctx.set_active_organizational_unit(OrganizationalUnit(name))
            await asyncio.sleep(0)
            return ctx.get_active_organizational_unit().name

        async def main() -> list[str]:
            return list(await asyncio.gather(worker("a"), worker("b")))

        assert asyncio.run(main()) == ["a", "b"]
        assert ctx.get_active_organizational_unit() is None


class TestSpacesAPI:
    def test_get_space_is_stable(self) -> None:
        spaces = SpacesAPI()
        assert spaces.get_space("team-a") is spaces.get_space("team-a")
        assert [s.name for s in spaces.get_spaces()] == ["team-a"]
