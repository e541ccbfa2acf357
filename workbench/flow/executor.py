"""流程执行器

每次执行把 AppFlow 实现为新的 ProcessNode 链并逐节点推进。
步骤通过 completion 回调交回输出，执行器为每次挂起注册一个 asyncio Future，
不占用线程等待，因此可以同时挂起任意多个流程实例。

约束:
  - 一个流程实例内步骤串行执行
  - completion 只能调用一次，重复调用抛 StepCompletionError
  - 可从其他线程调用 completion（经 call_soon_threadsafe 回到事件循环）
  - step_timeout 为步骤级超时，超时抛 FlowTimeoutError；None 表示无限等待
  - FlowRun.cancel() 放弃执行，挂起中的步骤之后再调用 completion 会被忽略
  - 分支拼接进来的节点默认保留到执行结束（FlowRun.nodes() 可回看整条路径）；
    release_completed=True 时拼接后释放之前已完成的节点
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections.abc import Callable
from enum import Enum
from typing import Any

from workbench.core.exceptions import FlowError, FlowTimeoutError, StepCompletionError
from workbench.flow.api import AppFlow
from workbench.flow.nodes import (
    BranchNode,
    NodeState,
    ProcessChain,
    ProcessNode,
    StepProcessNode,
    TransformationNode,
    realize,
)

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepCompletion:
    """交给步骤的一次性完成回调"""

    def __init__(
        self, loop: asyncio.AbstractEventLoop, future: asyncio.Future, step_name: str,
    ) -> None:
        self._loop = loop
        self._future = future
        self._step_name = step_name
        self._lock = threading.Lock()
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled

    def __call__(self, output: Any = None) -> None:
        self._settle(lambda: self._future.set_result(output))

    def fail(self, exc: BaseException) -> None:
        self._settle(lambda: self._future.set_exception(exc))

    def _settle(self, apply: Callable[[], None]) -> None:
        with self._lock:
            if self._settled:
                raise StepCompletionError(f"步骤 {self._step_name} 的完成回调被重复调用")
            self._settled = True

        def _apply() -> None:
            if not self._future.done():
                apply()

        try:
            self._loop.call_soon_threadsafe(_apply)
        except RuntimeError:
            logger.debug("事件循环已关闭，忽略步骤 %s 的迟到完成", self._step_name)


class FlowRun:
    """一次流程执行的句柄"""

    def __init__(self, flow: AppFlow, value: Any) -> None:
        self.run_id = uuid.uuid4().hex[:8]
        self.flow = flow
        self.input = value
        self.chain: ProcessChain = realize(flow.node)
        self.status = RunStatus.PENDING
        self.output: Any = None
        self.error: BaseException | None = None
        self.task: asyncio.Task | None = None

    def nodes(self) -> list[ProcessNode]:
        return list(self.chain)

    def cancel(self) -> bool:
        """放弃执行；已结束的执行返回 False"""
        if self.task is None or self.task.done():
            return False
        return self.task.cancel()

    async def result(self) -> Any:
        if self.task is None:
            raise FlowError(f"流程 {self.run_id} 尚未启动")
        return await self.task

    @property
    def done(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)

    def _on_task_done(self, task: asyncio.Task) -> None:
        # 在首个步骤之前取消时 _drive 不会执行
        if task.cancelled() and self.status is RunStatus.PENDING:
            self.status = RunStatus.CANCELLED
            logger.info("流程在启动前已取消: %s", self.run_id, extra={"run_id": self.run_id})


class FlowExecutor:
    """AppFlow 解释执行器"""

    def __init__(
        self, step_timeout: float | None = None, *, release_completed: bool = False,
    ) -> None:
        self.step_timeout = step_timeout
        # True: 分支拼接后释放其之前已完成的节点
        self.release_completed = release_completed

    def start(self, flow: AppFlow, value: Any) -> FlowRun:
        """在当前事件循环中启动执行，立即返回句柄"""
        run = FlowRun(flow, value)
        run.task = asyncio.get_running_loop().create_task(self._drive(run))
        run.task.add_done_callback(run._on_task_done)
        return run

    async def execute(self, flow: AppFlow, value: Any) -> Any:
        return await self.start(flow, value).result()

    def run_sync(self, flow: AppFlow, value: Any) -> Any:
        """在新事件循环中同步执行（CLI、脚本使用）"""
        return asyncio.run(self.execute(flow, value))

    async def _drive(self, run: FlowRun) -> Any:
        extra = {"run_id": run.run_id}
        run.status = RunStatus.RUNNING
        logger.debug("流程开始: %s", run.run_id, extra=extra)
        try:
            run.output = await self._run_chain(run.chain, run.input, run)
        except asyncio.CancelledError:
            run.status = RunStatus.CANCELLED
            logger.info("流程已取消: %s", run.run_id, extra=extra)
            raise
        except Exception as e:
            run.status = RunStatus.FAILED
            run.error = e
            logger.error("流程失败: %s: %s", run.run_id, e, extra=extra)
            raise
        run.status = RunStatus.COMPLETED
        logger.debug("流程完成: %s", run.run_id, extra=extra)
        return run.output

    async def _run_chain(self, chain: ProcessChain, value: Any, run: FlowRun) -> Any:
        node = chain.head
        while node is not None:
            value = await self._run_node(chain, node, value, run)
            node = node.next
        return value

    async def _run_node(
        self, chain: ProcessChain, node: ProcessNode, value: Any, run: FlowRun,
    ) -> Any:
        node.state = NodeState.RUNNING
        node.input = value
        try:
            if isinstance(node, TransformationNode):
                output = node.fn(value)
            elif isinstance(node, StepProcessNode):
                output = await self._invoke_step(node, value, run)
            elif isinstance(node, BranchNode):
                output = await self._run_branch(chain, node, value, run)
            else:
                raise FlowError(f"未知的节点类型: {type(node).__name__}")
        except BaseException as e:
            node.state = NodeState.FAILED
            node.error = e
            raise
        node.state = NodeState.COMPLETED
        node.output = output
        return output

    async def _run_branch(
        self, chain: ProcessChain, node: BranchNode, value: Any, run: FlowRun,
    ) -> Any:
        node.selection = await self._run_chain(node.source, value, run)
        chosen = node.chooser(node.selection)
        if not isinstance(chosen, AppFlow):
            raise FlowError(f"chooser 必须返回 AppFlow，实际为 {type(chosen).__name__}")
        realized = realize(chosen.node)
        node.chosen = list(realized)
        logger.debug(
            "分支选择: %s -> %d 个节点", node.label, len(node.chosen),
            extra={"run_id": run.run_id, "node": node.label},
        )
        chain.splice_after(node, realized)
        if self.release_completed:
            chain.release_before(node)
        return value

    async def _invoke_step(self, node: StepProcessNode, value: Any, run: FlowRun) -> Any:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        completion = StepCompletion(loop, future, node.label)
        node.step.invoke(value, completion)

        if self.step_timeout is None:
            return await future
        try:
            return await asyncio.wait_for(future, self.step_timeout)
        except asyncio.TimeoutError:
            raise FlowTimeoutError(
                f"步骤 {node.label} 在 {self.step_timeout}s 内未完成 (run={run.run_id})",
            ) from None
