"""版本化文件系统实现

分支根路径格式（与 URI 类似，便于在配置与日志中辨认）:

    <scheme>://<branch>@<space>/<alias>

同一 (space, alias) 的所有分支属于同一个文件系统，delete_all 会整体删除。

两种实现:
  - InMemoryVersionedFileSystem: 纯内存，测试与演示使用
  - GitVersionedFileSystem: 每个代码仓一个本地 git 仓库，历史来自 git log
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from workbench.core.exceptions import ValidationError
from workbench.core.models import VersionRecord
from workbench.core.yaml_registry import YamlRegistry
from workbench.utils.shell import CommandExecutor, LocalExecutor, run_checked

logger = logging.getLogger(__name__)

_PATH_RE = re.compile(
    r"^(?P<scheme>[a-z][a-z0-9+.-]*)://(?P<branch>[^@/]+)@(?P<space>[^/]+)/(?P<alias>[^/]+)$",
)


@dataclass(frozen=True)
class BranchPath:
    """解析后的分支根路径"""

    scheme: str
    branch: str
    space: str
    alias: str

    @property
    def fs_key(self) -> str:
        return f"{self.space}/{self.alias}"

    def __str__(self) -> str:
        return f"{self.scheme}://{self.branch}@{self.space}/{self.alias}"


def branch_path(scheme: str, space: str, alias: str, branch: str) -> str:
    return str(BranchPath(scheme=scheme, branch=branch, space=space, alias=alias))


def parse_branch_path(path: str) -> BranchPath:
    m = _PATH_RE.match(path)
    if not m:
        raise ValidationError(f"非法的分支路径: {path}")
    # space / alias 直接映射为目录名，不允许 "." 开头
    if m["space"].startswith(".") or m["alias"].startswith("."):
        raise ValidationError(f"非法的分支路径: {path}")
    return BranchPath(**m.groupdict())


# =========================================================================
# VCS 来源元数据
# =========================================================================


class GitMetadataStore(YamlRegistry):
    """代码仓标识（space/alias） -> 来源（克隆源 URL）"""

    section_key = "origins"

    def write(self, alias: str, origin: str) -> None:
        self._put(alias, {"origin": origin or ""})

    def read(self, alias: str) -> str | None:
        entry = self._get_raw(alias)
        return None if entry is None else entry.get("origin", "")

    def delete(self, alias: str) -> bool:
        return self._remove(alias)


# =========================================================================
# 内存实现
# =========================================================================


class InMemoryVersionedFileSystem:
    """内存版本文件系统：{fs_key: {branch: [VersionRecord, ...]}}"""

    def __init__(self) -> None:
        self._filesystems: dict[str, dict[str, list[VersionRecord]]] = {}
        self.origins: dict[str, str] = {}
        self._seq = 0

    def init_filesystem(self, path: str) -> None:
        bp = parse_branch_path(path)
        self._filesystems.setdefault(bp.fs_key, {}).setdefault(bp.branch, [])

    def branches_of(self, path: str) -> list[str]:
        bp = parse_branch_path(path)
        return list(self._filesystems.get(bp.fs_key, {}))

    def exists(self, path: str) -> bool:
        return parse_branch_path(path).fs_key in self._filesystems

    def commit(
        self,
        path: str,
        *,
        author: str,
        email: str = "",
        comment: str = "",
        timestamp: datetime | None = None,
    ) -> VersionRecord:
        """在分支上追加一条提交记录"""
        bp = parse_branch_path(path)
        branches = self._filesystems.get(bp.fs_key)
        if branches is None or bp.branch not in branches:
            raise ValidationError(f"分支不存在: {path}")
        self._seq += 1
        record = VersionRecord(
            id=f"{self._seq:08x}",
            author=author,
            email=email,
            comment=comment,
            timestamp=timestamp or datetime.now(tz=timezone.utc),
            uri=f"{path}#{self._seq:08x}",
        )
        branches[bp.branch].append(record)
        return record

    def history_of(self, path: str) -> list[VersionRecord]:
        bp = parse_branch_path(path)
        return list(self._filesystems.get(bp.fs_key, {}).get(bp.branch, []))

    def delete_all(self, path: str) -> None:
        bp = parse_branch_path(path)
        self._filesystems.pop(bp.fs_key, None)

    def write_origin_metadata(self, alias: str, origin: str) -> None:
        self.origins[alias] = origin or ""

    def delete_origin_metadata(self, alias: str) -> None:
        self.origins.pop(alias, None)


# =========================================================================
# Git 实现
# =========================================================================

# 字段分隔符 \x1f，记录分隔符 \x1e
_LOG_FORMAT = "%H%x1f%an%x1f%ae%x1f%aI%x1f%s%x1e"

_SYSTEM_IDENTITY = ["-c", "user.name=workbench", "-c", "user.email=workbench@localhost"]


class GitVersionedFileSystem:
    """基于本地 git 仓库的版本文件系统

    (space, alias) 对应目录 <root>/<space>/<alias>，每个分支是一个 git 分支。
    """

    def __init__(
        self,
        root: str | Path,
        metadata: GitMetadataStore,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.root = Path(root)
        self.metadata = metadata
        self.executor = executor or LocalExecutor()

    def _dir(self, bp: BranchPath) -> Path:
        """代码仓目录，必须位于 root 之下"""
        root = self.root.resolve()
        workdir = (root / bp.space / bp.alias).resolve()
        if workdir == root or root not in workdir.parents:
            raise ValidationError(f"代码仓目录越出根目录: {workdir}")
        return workdir

    def _git(self, workdir: Path, *args: str, label: str = "git") -> str:
        r = run_checked(
            self.executor, ["git", *_SYSTEM_IDENTITY, *args],
            cwd=str(workdir), label=label,
        )
        return r.stdout

    def init_filesystem(self, path: str) -> None:
        bp = parse_branch_path(path)
        workdir = self._dir(bp)
        if (workdir / ".git").exists():
            return
        workdir.mkdir(parents=True, exist_ok=True)
        self._git(workdir, "init", "-q", "-b", bp.branch, label="git init")
        self._git(
            workdir, "commit", "-q", "--allow-empty", "-m", "Initial commit",
            label="git commit",
        )
        logger.info("版本文件系统已初始化: %s -> %s", path, workdir)

    def branches_of(self, path: str) -> list[str]:
        workdir = self._dir(parse_branch_path(path))
        if not (workdir / ".git").exists():
            return []
        out = self._git(
            workdir, "for-each-ref", "--format=%(refname:short)", "refs/heads",
            label="git for-each-ref",
        )
        return [line.strip() for line in out.splitlines() if line.strip()]

    def commit(
        self,
        path: str,
        *,
        author: str,
        email: str = "",
        comment: str = "",
        files: dict[str, str] | None = None,
    ) -> None:
        """在分支上写入文件并提交"""
        bp = parse_branch_path(path)
        workdir = self._dir(bp)
        self._git(workdir, "checkout", "-q", bp.branch, label="git checkout")
        for rel, content in (files or {}).items():
            target = workdir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        self._git(workdir, "add", "-A", label="git add")
        self._git(
            workdir, "commit", "-q", "--allow-empty",
            f"--author={author} <{email}>", "-m", comment or "update",
            label="git commit",
        )

    def history_of(self, path: str) -> list[VersionRecord]:
        bp = parse_branch_path(path)
        workdir = self._dir(bp)
        if not (workdir / ".git").exists():
            return []
        out = self._git(
            workdir, "log", "--reverse", f"--format={_LOG_FORMAT}", bp.branch,
            label="git log",
        )
        records: list[VersionRecord] = []
        for chunk in out.split("\x1e"):
            chunk = chunk.strip("\n")
            if not chunk:
                continue
            sha, author, email, date, subject = chunk.split("\x1f", 4)
            records.append(VersionRecord(
                id=sha,
                author=author,
                email=email,
                comment=subject,
                timestamp=datetime.fromisoformat(date),
                uri=f"{path}#{sha}",
            ))
        return records

    def delete_all(self, path: str) -> None:
        workdir = self._dir(parse_branch_path(path))
        if workdir.exists():
            shutil.rmtree(workdir)
            logger.info("版本文件系统已删除: %s", workdir)

    def write_origin_metadata(self, alias: str, origin: str) -> None:
        self.metadata.write(alias, origin)

    def delete_origin_metadata(self, alias: str) -> None:
        self.metadata.delete(alias)
