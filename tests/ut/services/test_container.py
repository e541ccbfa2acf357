"""ServiceContainer 单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

import workbench.core.config as cfgmod
from workbench.core.vfs import GitVersionedFileSystem, InMemoryVersionedFileSystem
from workbench.services.container import (
    ServiceContainer,
    get_container,
    reset_container,
)


@pytest.fixture(autouse=True)
def _setup_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """确保测试有独立的配置和数据目录"""
    monkeypatch.setattr(cfgmod, "_current", cfgmod.Config.under(tmp_path, vfs_backend="memory"))
    reset_container()
    yield
    reset_container()


class TestServiceContainer:
    def test_lazy_loading(self) -> None:
        c = ServiceContainer()
        assert len(c._instances) == 0
        _ = c.org_units
        assert "org_units" in c._instances
        assert "repositories" in c._instances
        assert "config_store" not in c._instances

    def test_shared_instances(self) -> None:
        c = ServiceContainer()
        assert c.repository_service is c.repository_service
        svc = c.repository_service
        assert svc.repositories is c.repositories
        assert svc.vfs is c.vfs
        assert svc.config_store is c.config_store
        assert c.repository_factory.vfs is c.vfs

    def test_repository_service_starts_registry(self) -> None:
        c = ServiceContainer()
        assert not c.repositories.started
        _ = c.repository_service
        assert c.repositories.started
        c.stop()
        assert not c.repositories.started

    def test_vfs_backend_selection(self, tmp_path: Path) -> None:
        assert isinstance(ServiceContainer().vfs, InMemoryVersionedFileSystem)
        git = ServiceContainer(cfgmod.Config.under(tmp_path / "g", vfs_backend="git"))
        assert isinstance(git.vfs, GitVersionedFileSystem)

    def test_flow_kernel(self) -> None:
        c = ServiceContainer(cfgmod.Config.under("unused", step_timeout=2.5))
        assert c.flow_executor.step_timeout == 2.5
        assert ServiceContainer().flow_executor.step_timeout is None
        assert c.process_factory is c.process_factory


class TestGlobalContainer:
    def test_singleton(self) -> None:
        assert get_container() is get_container()

    def test_reset(self) -> None:
        c1 = get_container()
        reset_container()
        assert get_container() is not c1
