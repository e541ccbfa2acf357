"""统一异常体系

所有业务异常继承 WorkbenchError，按错误类别划分：
  - 领域冲突: RepositoryAlreadyExistsError
  - 资源不存在: RepositoryNotFoundError
  - 前置条件不满足: MissingDefaultBranchError
  - 上下文缺失: NoActiveSpaceInContextError
  - 基础设施包装: RepositoryServiceError

Web 层据 code 映射 HTTP 状态码，CLI 层据此输出友好提示。
"""

from __future__ import annotations


class WorkbenchError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(WorkbenchError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(WorkbenchError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ExecutionError(WorkbenchError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"


# =========================================================================
# 代码仓领域异常
# =========================================================================


class RepositoryAlreadyExistsError(WorkbenchError):
    """同一空间内别名已被占用"""

    code = "REPOSITORY_ALREADY_EXISTS"

    def __init__(self, alias: str) -> None:
        super().__init__(f"代码仓已存在: {alias}")
        self.alias = alias


class RepositoryNotFoundError(WorkbenchError, ValueError):
    """代码仓或其配置组不存在"""

    code = "REPOSITORY_NOT_FOUND"

    def __init__(self, alias: str) -> None:
        super().__init__(f"Repository {alias} not found")
        self.alias = alias


class MissingDefaultBranchError(WorkbenchError, RuntimeError):
    """代码仓尚未初始化（没有默认分支）"""

    code = "MISSING_DEFAULT_BRANCH"

    def __init__(self, alias: str = "") -> None:
        super().__init__(
            f"Repository {alias} should have at least one branch."
            if alias else "Repository should have at least one branch."
        )
        self.alias = alias


class NoActiveSpaceInContextError(WorkbenchError, RuntimeError):
    """当前上下文中没有激活的组织单元/空间"""

    code = "NO_ACTIVE_SPACE"

    def __init__(self, message: str = "当前上下文中没有激活的空间") -> None:
        super().__init__(message)


class RepositoryServiceError(WorkbenchError, RuntimeError):
    """配置存储或版本文件系统层的异常包装"""

    code = "REPOSITORY_SERVICE_ERROR"


# =========================================================================
# 流程编排异常
# =========================================================================


class FlowError(WorkbenchError):
    """流程定义或执行错误"""

    code = "FLOW_ERROR"


class StepCompletionError(FlowError):
    """步骤完成回调被重复调用"""

    code = "STEP_COMPLETION_ERROR"


class FlowTimeoutError(FlowError):
    """步骤在超时时间内未完成"""

    code = "FLOW_TIMEOUT"


def handle_exception(exc: BaseException) -> WorkbenchError:
    """将任意异常统一映射到领域异常体系

    领域异常原样返回；其他异常包装为 RepositoryServiceError 并保留 __cause__。
    """
    if isinstance(exc, WorkbenchError):
        return exc
    wrapped = RepositoryServiceError(f"{type(exc).__name__}: {exc}")
    wrapped.__cause__ = exc
    return wrapped
