"""RepositoryService 单元测试

使用内存版本文件系统 + 临时目录中的 YAML 存储，通过 ServiceContainer 装配。
"""

from __future__ import annotations

import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from workbench.core.config import Config
from workbench.core.exceptions import (
    MissingDefaultBranchError,
    NoActiveSpaceInContextError,
    RepositoryAlreadyExistsError,
    RepositoryNotFoundError,
    RepositoryServiceError,
    ValidationError,
)
from workbench.core.models import (
    INIT,
    ORIGIN,
    SECURITY_GROUPS,
    ConfigType,
    NewRepositoryEvent,
    RepositoryEnvironmentConfigurations,
    RepositoryRemovedEvent,
    RepositoryUpdatedEvent,
)
from workbench.services.authz import Identity
from workbench.services.container import ServiceContainer

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture()
def container(tmp_path: Path):
    c = ServiceContainer(Config.under(tmp_path, vfs_backend="memory")).start()
    yield c
    c.context.clear()
    c.stop()


@pytest.fixture()
def ou(container):
    unit = container.org_units.create_organizational_unit("team-a", owner="alice")
    container.context.set_active_organizational_unit(unit)
    return unit


@pytest.fixture()
def svc(container, ou):
    return container.repository_service


def _commit(container, repo, n: int) -> list:
    return [
        container.vfs.commit(
            repo.default_branch.path, author=f"dev{i}", comment=f"change {i}",
            timestamp=T0 + timedelta(minutes=i),
        )
        for i in range(n)
    ]


def _uninitialized_env() -> RepositoryEnvironmentConfigurations:
    return RepositoryEnvironmentConfigurations({INIT: False})


class TestCreateRepository:
    def test_create_registers_everywhere(self, container, svc, ou) -> None:
        env = RepositoryEnvironmentConfigurations({ORIGIN: "https://example.com/core.git"})
        repo = svc.create_repository(ou, "git", "core", env)

        assert repo.identifier == "team-a/core"
        assert repo.default_branch.name == "master"
        assert svc.get_repository("core") is repo
        assert svc.get_repository_by_root_path(repo.root_path) is repo
        group = container.config_store.find_configuration(
            ConfigType.REPOSITORY, "core", namespace="team-a",
        )
        assert group.get_value("scheme") == "git"
        assert group.get_value(SECURITY_GROUPS) == []
        assert group.get_value("space") == "team-a"
        assert container.org_units.get_organizational_unit("team-a").repository_aliases() == ["core"]
        assert "core" in ou.repository_aliases()
        assert container.vfs.origins["team-a/core"] == "https://example.com/core.git"

    def test_scheme_from_env_wins(self, container, svc, ou) -> None:
        env = RepositoryEnvironmentConfigurations({"scheme": "hg"})
        repo = svc.create_repository(ou, "git", "core", env)
        assert repo.scheme == "hg"
        assert repo.root_path == "hg://master@team-a/core"

    def test_secured_items_are_tokenised(self, container, svc, ou) -> None:
        env = RepositoryEnvironmentConfigurations()
        env.add("token", "s3cret", secured=True)
        env.add("ci", "jenkins")
        repo = svc.create_repository(ou, "git", "core", env)

        group = container.config_store.find_configuration(
            ConfigType.REPOSITORY, "core", namespace="team-a",
        )
        item = group.get_item("token")
        assert item.secured and item.value != "s3cret"
        assert container.config_factory.reveal(item) == "s3cret"
        assert repo.environment["ci"] == "jenkins"

    def test_event_fired_once(self, container, svc, ou) -> None:
        seen: list = []
        container.events.subscribe(NewRepositoryEvent, seen.append)
        repo = svc.create_repository(ou, "git", "core")
        assert seen == [NewRepositoryEvent(repo)]

    def test_duplicate_alias_conflicts_without_side_effects(self, container, svc, ou) -> None:
        svc.create_repository(ou, "git", "core")
        seen: list = []
        container.events.subscribe(NewRepositoryEvent, seen.append)
        before = container.config_store.get_configuration(ConfigType.REPOSITORY)

        with pytest.raises(RepositoryAlreadyExistsError):
            svc.create_repository(ou, "git", "core")

        assert container.config_store.get_configuration(ConfigType.REPOSITORY) == before
        assert container.repositories.size() == 1
        assert seen == []

    def test_same_alias_in_two_spaces(self, container, svc, ou) -> None:
        a = svc.create_repository(ou, "git", "core")
        other = container.org_units.create_organizational_unit("team-b")
        with container.context.activate(other):
            b = svc.create_repository(other, "git", "core")
            assert svc.get_repository("core") is b
        assert svc.get_repository("core") is a
        assert a.root_path != b.root_path
        assert len(container.config_store.get_configuration(ConfigType.REPOSITORY)) == 2

    def test_ou_from_other_space_rejected(self, container, svc) -> None:
        other = container.org_units.create_organizational_unit("team-b")
        with pytest.raises(ValidationError, match="不一致"):
            svc.create_repository(other, "git", "core")
        assert container.repositories.size() == 0

    @pytest.mark.parametrize("alias", ["", "my repo", "a/b", "core!"])
    def test_invalid_alias_rejected(self, svc, ou, alias: str) -> None:
        with pytest.raises(ValidationError):
            svc.create_repository(ou, "git", alias)

    def test_infrastructure_failure_is_wrapped(self, container, svc, ou, monkeypatch) -> None:
        monkeypatch.setattr(
            container.vfs, "write_origin_metadata", MagicMock(side_effect=OSError("disk full")),
        )
        with pytest.raises(RepositoryServiceError) as exc_info:
            svc.create_repository(ou, "git", "core")
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_without_active_space(self, container, ou) -> None:
        container.context.clear()
        with pytest.raises(NoActiveSpaceInContextError):
            container.repository_service.get_repository("core")


class TestRepositoryHistory:
    def test_all_records_newest_first(self, container, svc, ou) -> None:
        repo = svc.create_repository(ou, "git", "core")
        records = _commit(container, repo, 12)
        history = svc.get_repository_history("core", 0, -1)
        assert history == list(reversed(records))
        stamps = [r.timestamp for r in history]
        assert stamps == sorted(stamps, reverse=True)
        assert len(set(stamps)) == 12

    def test_start_not_before_end_is_empty(self, container, svc, ou) -> None:
        repo = svc.create_repository(ou, "git", "core")
        _commit(container, repo, 10)
        assert svc.get_repository_history("core", 5, 3) == []
        assert svc.get_repository_history("core", 4, 4) == []

    def test_bounds_are_clamped(self, container, svc, ou) -> None:
        repo = svc.create_repository(ou, "git", "core")
        _commit(container, repo, 7)
        assert svc.get_repository_history("core", -2, 1000) == svc.get_repository_history("core", 0, 7)

    def test_start_past_end_of_history(self, container, svc, ou) -> None:
        repo = svc.create_repository(ou, "git", "core")
        _commit(container, repo, 3)
        assert svc.get_repository_history("core", 3, 10) == []

    def test_window(self, container, svc, ou) -> None:
        repo = svc.create_repository(ou, "git", "core")
        records = _commit(container, repo, 5)
        assert svc.get_repository_history("core", 1, 3) == [records[3], records[2]]

    def test_page_and_all(self, container, svc, ou) -> None:
        repo = svc.create_repository(ou, "git", "core")
        records = _commit(container, repo, 25)
        assert svc.get_repository_history_page("core", 10) == list(reversed(records))[10:20]
        assert len(svc.get_repository_history_all("core")) == 25

    def test_missing_repository_returns_empty(self, svc) -> None:
        assert svc.get_repository_history("ghost", 0, -1) == []

    def test_initialized_repository_does_not_raise(self, container, svc, ou) -> None:
        """有默认分支时正常返回历史（回归：默认分支判断条件曾被写反）"""
        repo = svc.create_repository(ou, "git", "core")
        assert repo.default_branch is not None
        _commit(container, repo, 1)
        assert len(svc.get_repository_history("core", 0, -1)) == 1

    def test_repository_without_default_branch_raises(self, svc, ou) -> None:
        """没有默认分支时抛 MissingDefaultBranchError（回归：默认分支判断条件曾被写反）"""
        repo = svc.create_repository(ou, "git", "bare", _uninitialized_env())
        assert repo.default_branch is None
        with pytest.raises(MissingDefaultBranchError):
            svc.get_repository_history("bare", 0, -1)

    def test_vfs_failure_is_wrapped(self, container, svc, ou, monkeypatch) -> None:
        svc.create_repository(ou, "git", "core")
        monkeypatch.setattr(svc.vfs, "history_of", MagicMock(side_effect=OSError("io")))
        with pytest.raises(RepositoryServiceError):
            svc.get_repository_history("core", 0, -1)


class TestRepositoryInfo:
    def test_info(self, container, svc, ou) -> None:
        env = RepositoryEnvironmentConfigurations({"public-uri": ["https://git.example.com/core"]})
        repo = svc.create_repository(ou, "git", "core", env)
        records = _commit(container, repo, 12)

        info = svc.get_repository_info("core")
        assert info.identifier == "team-a/core"
        assert info.owner == "team-a"
        assert info.root == repo.root_path
        assert info.public_uris == ["https://git.example.com/core"]
        assert info.initial_history == list(reversed(records))[:10]

    def test_uninitialized_repository_has_empty_history(self, svc, ou) -> None:
        svc.create_repository(ou, "git", "bare", _uninitialized_env())
        info = svc.get_repository_info("bare")
        assert info.root is None
        assert info.initial_history == []

    def test_missing_repository(self, svc) -> None:
        with pytest.raises(RepositoryNotFoundError):
            svc.get_repository_info("ghost")


class TestRemoveRepository:
    def test_remove_clears_everything(self, container, svc, ou) -> None:
        env = RepositoryEnvironmentConfigurations({ORIGIN: "https://example.com/core.git"})
        repo = svc.create_repository(ou, "git", "core", env)
        second = container.org_units.create_organizational_unit("team-a-ops", space="team-a")
        container.org_units.add_repository(second, repo)
        seen: list = []
        container.events.subscribe(RepositoryRemovedEvent, seen.append)

        svc.remove_repository("core")

        assert svc.get_repository("core") is None
        assert container.config_store.get_configuration(ConfigType.REPOSITORY) == []
        for unit in container.org_units.get_all_organizational_units():
            assert "core" not in unit.repository_aliases()
        assert container.vfs.branches_of(repo.root_path) == []
        assert "team-a/core" not in container.vfs.origins
        assert seen == [RepositoryRemovedEvent(repo)]

    def test_remove_discards_secrets(self, container, svc, ou) -> None:
        env = RepositoryEnvironmentConfigurations()
        env.add("token", "s3cret", secured=True)
        svc.create_repository(ou, "git", "core", env)
        item = container.config_store.find_configuration(
            ConfigType.REPOSITORY, "core", namespace="team-a",
        ).get_item("token")

        svc.remove_repository("core")

        assert container.secrets.reveal(item.value) is None

    def test_remove_leaves_other_space_untouched(self, container, svc, ou) -> None:
        svc.create_repository(ou, "git", "core")
        other = container.org_units.create_organizational_unit("team-b")
        with container.context.activate(other):
            b = svc.create_repository(other, "git", "core")
        svc.remove_repository("core")
        assert container.repositories.get_by_alias("team-b", "core") is b
        assert container.org_units.get_organizational_unit("team-b").repository_aliases() == ["core"]

    def test_remove_keeps_origin_of_same_alias_in_other_space(self, container, svc, ou) -> None:
        svc.create_repository(ou, "git", "core", RepositoryEnvironmentConfigurations(
            {ORIGIN: "https://a.example.com/core.git"},
        ))
        other = container.org_units.create_organizational_unit("team-b")
        with container.context.activate(other):
            svc.create_repository(other, "git", "core", RepositoryEnvironmentConfigurations(
                {ORIGIN: "https://b.example.com/core.git"},
            ))

        svc.remove_repository("core")

        assert container.vfs.origins == {"team-b/core": "https://b.example.com/core.git"}

    def test_remove_tolerates_missing_config(self, container, svc, ou) -> None:
        repo = svc.create_repository(ou, "git", "core")
        container.config_store.remove_configuration(
            container.config_store.find_configuration(
                ConfigType.REPOSITORY, "core", namespace="team-a",
            ),
        )
        svc.remove_repository("core")
        assert svc.get_repository("core") is None
        assert container.vfs.branches_of(repo.root_path) == []

    def test_remove_without_default_branch_raises(self, container, svc, ou) -> None:
        svc.create_repository(ou, "git", "bare", _uninitialized_env())
        with pytest.raises(MissingDefaultBranchError):
            svc.remove_repository("bare")
        assert svc.get_repository("bare") is None

    def test_remove_unknown_alias_is_noop(self, container, svc, ou) -> None:
        svc.remove_repository("ghost")
        assert container.repositories.size() == 0


class TestSecurityGroups:
    def test_add_and_remove_group(self, container, svc, ou) -> None:
        repo = svc.create_repository(ou, "git", "core")
        seen: list = []
        container.events.subscribe(RepositoryUpdatedEvent, seen.append)

        updated = svc.add_group(repo, "devs")
        svc.add_group(updated, "devs")
        assert svc.get_repository("core").security_groups == ["devs"]
        group = container.config_store.find_configuration(
            ConfigType.REPOSITORY, "core", namespace="team-a",
        )
        assert group.get_value(SECURITY_GROUPS) == ["devs"]

        svc.remove_group(svc.get_repository("core"), "devs")
        assert svc.get_repository("core").security_groups == []
        assert len(seen) == 3

    def test_missing_config_raises(self, container, svc, ou) -> None:
        repo = svc.create_repository(ou, "git", "core")
        container.config_store.remove_configuration(
            container.config_store.find_configuration(
                ConfigType.REPOSITORY, "core", namespace="team-a",
            ),
        )
        with pytest.raises(RepositoryNotFoundError, match="Repository core not found"):
            svc.add_group(repo, "devs")

    def test_authorization_filter(self, container, svc, ou) -> None:
        core = svc.create_repository(ou, "git", "core")
        svc.create_repository(ou, "git", "docs")
        svc.add_group(core, "devs")

        def visible(identity: Identity) -> list[str]:
            return sorted(r.alias for r in svc.get_repositories(identity))

        assert visible(Identity("bob")) == ["docs"]
        assert visible(Identity("carol", frozenset({"devs"}))) == ["core", "docs"]
        assert visible(Identity("root", frozenset({"admin"}))) == ["core", "docs"]


class TestRepositoryNames:
    @pytest.mark.parametrize(("raw", "expected"), [
        ("core", "core"),
        ("my repo", "my-repo"),
        ("  spaced   out ", "spaced-out"),
        ("a/b:c", "abc"),
        ("v1.2_beta-3", "v1.2_beta-3"),
    ])
    def test_normalize(self, svc, raw: str, expected: str) -> None:
        assert svc.normalize_repository_name(raw) == expected

    def test_validate(self, svc) -> None:
        assert svc.validate_repository_name("core")
        assert not svc.validate_repository_name("my repo")
        assert not svc.validate_repository_name("")
        assert not svc.validate_repository_name(None)

    @pytest.mark.parametrize("name", [".", "..", ".git"])
    def test_validate_rejects_dot_names(self, svc, name: str) -> None:
        assert not svc.validate_repository_name(name)
        with pytest.raises(ValidationError):
            svc.create_repository(svc.context.get_active_organizational_unit(), "git", name)


@pytest.mark.skipif(shutil.which("git") is None, reason="需要 git")
class TestGitBackedRemoval:
    @pytest.fixture()
    def git_container(self, tmp_path: Path):
        c = ServiceContainer(Config.under(tmp_path, vfs_backend="git")).start()
        unit = c.org_units.create_organizational_unit("team-a")
        c.context.set_active_organizational_unit(unit)
        yield c
        c.context.clear()
        c.stop()

    @pytest.mark.parametrize("alias", ["..", "."])
    def test_dot_alias_cannot_reach_other_repositories(self, git_container, tmp_path, alias) -> None:
        svc = git_container.repository_service
        unit = git_container.org_units.get_organizational_unit("team-a")
        core = svc.create_repository(unit, "git", "core")

        with pytest.raises(ValidationError):
            svc.create_repository(unit, "git", alias)
        svc.remove_repository(alias)

        assert (tmp_path / "repositories" / "team-a" / "core" / ".git").is_dir()
        assert svc.get_repository("core") is core
        assert len(svc.get_repository_history_all("core")) == 1


class TestRegistryRecovery:
    def test_restart_restores_registry(self, container, svc, ou) -> None:
        svc.create_repository(ou, "git", "core")
        restarted = ServiceContainer(container.config)
        restarted._instances["vfs"] = container.vfs
        restarted.start()
        repo = restarted.repositories.get_by_alias("team-a", "core")
        assert repo is not None and repo.default_branch.name == "master"
        restarted.stop()
