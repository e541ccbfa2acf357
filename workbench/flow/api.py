"""AppFlow 组合 API

AppFlow[IN, OUT] 是一个不可变的流程描述：接受 IN，最终（可能异步地）产出 OUT。
只能通过组合子构造，内部是下面五种标签变体之一:

  AtomicStep(step)            外部实现的原子步骤
  Transformation(fn)          纯函数变换
  Sequence(first, second)     顺序组合，first 的输出作为 second 的输入
  Prefix(fn, flow)            在 flow 前先做一次变换
  Transition(source, chooser) 运行时按 source 的输出选择后续流程

Transition 的语义: chooser 在每次遍历中恰好执行一次，参数为 source 的输出；
被选中的流程以 source 收到的同一个输入运行（与 chooser 的返回类型 AppFlow[IN, T] 对应）。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar, Union

logger = logging.getLogger(__name__)

IN = TypeVar("IN")
OUT = TypeVar("OUT")
T = TypeVar("T")


# =========================================================================
# 辅助类型
# =========================================================================


class Unit:
    """无意义值（流程不需要输入或输出时使用）"""

    _instance: Unit | None = None

    def __new__(cls) -> Unit:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Unit"


UNIT = Unit()


class CrudOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NONE = "none"


@dataclass(frozen=True)
class Command(Generic[T]):
    """列表视图等交互步骤的输出：操作类型 + 操作对象"""

    command_type: CrudOperation
    value: T


# =========================================================================
# 步骤
# =========================================================================


class Completion(Protocol[T]):
    """步骤完成回调；每次调用必须且只能完成一次"""

    def __call__(self, output: T) -> None:
        ...

    def fail(self, exc: BaseException) -> None:
        ...


class Step(ABC, Generic[IN, OUT]):
    """原子步骤

    invoke 可以立即调用 completion，也可以挂起任意时长
    （例如等待用户操作）后再从任意线程调用。
    """

    name: str = ""

    @abstractmethod
    def invoke(self, value: IN, completion: Completion[OUT]) -> None:
        ...

    def __repr__(self) -> str:
        return f"Step({self.name or type(self).__name__})"


class FunctionStep(Step[IN, OUT]):
    """把同步函数或协程函数包装成步骤"""

    def __init__(self, fn: Callable[[IN], Any], name: str = "") -> None:
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "step")
        self._tasks: set[asyncio.Task] = set()

    def invoke(self, value: IN, completion: Completion[OUT]) -> None:
        if not inspect.iscoroutinefunction(self.fn):
            completion(self.fn(value))
            return

        task = asyncio.get_running_loop().create_task(self.fn(value))
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                completion.fail(asyncio.CancelledError())
            elif t.exception() is not None:
                completion.fail(t.exception())  # type: ignore[arg-type]
            else:
                completion(t.result())

        task.add_done_callback(_done)


def step(name: str = "") -> Callable[[Callable[[Any], Any]], FunctionStep]:
    """装饰器：函数 -> FunctionStep

        @step("load")
        async def load(_: Unit) -> list[Item]: ...
    """
    def wrap(fn: Callable[[Any], Any]) -> FunctionStep:
        return FunctionStep(fn, name=name)
    return wrap


# =========================================================================
# 流程描述变体
# =========================================================================


@dataclass(frozen=True)
class AtomicStep:
    step: Step


@dataclass(frozen=True)
class Transformation:
    fn: Callable[[Any], Any]


@dataclass(frozen=True)
class Sequence:
    first: FlowNode
    second: FlowNode


@dataclass(frozen=True)
class Prefix:
    fn: Callable[[Any], Any]
    flow: FlowNode


@dataclass(frozen=True)
class Transition:
    source: FlowNode
    chooser: Callable[[Any], AppFlow]


FlowNode = Union[AtomicStep, Transformation, Sequence, Prefix, Transition]


def _identity(value: Any) -> Any:
    return value


class AppFlow(Generic[IN, OUT]):
    """不可变流程描述；所有组合子都返回新的 AppFlow"""

    __slots__ = ("_node",)

    def __init__(self, node: FlowNode) -> None:
        self._node = node

    @property
    def node(self) -> FlowNode:
        return self._node

    def __repr__(self) -> str:
        return f"AppFlow({self._node!r})"

    # ---- 组合子 ----

    def and_then(
        self, nxt: Step[OUT, T] | AppFlow[OUT, T] | Callable[[OUT], T],
    ) -> AppFlow[IN, T]:
        """顺序追加步骤 / 流程 / 变换"""
        return AppFlow(Sequence(self._node, _lift(nxt)))

    def but_first(
        self, prev: Step[T, IN] | AppFlow[T, IN] | Callable[[T], IN],
    ) -> AppFlow[T, OUT]:
        """在流程最前面插入步骤 / 流程 / 变换"""
        if isinstance(prev, (Step, AppFlow)):
            return AppFlow(Sequence(_lift(prev), self._node))
        if callable(prev):
            return AppFlow(Prefix(prev, self._node))
        raise TypeError(f"无法前置: {prev!r}")

    def transition(self, chooser: Callable[[OUT], AppFlow[IN, T]]) -> AppFlow[IN, T]:
        """按本流程的输出在运行时选择后续流程（以本流程的输入运行）"""
        if not callable(chooser):
            raise TypeError(f"chooser 必须可调用: {chooser!r}")
        return AppFlow(Transition(self._node, chooser))

    def and_then_supplier(self, supplier: Callable[[], AppFlow[OUT, T]]) -> AppFlow[IN, T]:
        """延迟获取后续流程：每次遍历时调用 supplier"""
        return self.transition(
            lambda output: supplier().but_first(lambda _ignored: output),
        )

    def and_then_flow(self, nxt: AppFlow[OUT, T]) -> AppFlow[IN, T]:
        return self.and_then_supplier(lambda: nxt)


def _lift(value: Any) -> FlowNode:
    if isinstance(value, AppFlow):
        return value.node
    if isinstance(value, Step):
        return AtomicStep(value)
    if callable(value):
        return Transformation(value)
    raise TypeError(f"无法组合到流程中: {value!r}")


def start(first: Step[IN, OUT] | Callable[[IN], OUT]) -> AppFlow[IN, OUT]:
    """以步骤或变换开始一个流程"""
    return AppFlow(_lift(first))


def identity() -> AppFlow[Any, Any]:
    return AppFlow(Transformation(_identity))
