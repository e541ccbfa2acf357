"""步骤与流程的命名注册表

步骤、流程按名称注册，流程之间通过 get_process_flow(name) 互相引用。
引用是延迟绑定的：只有在执行到该位置时才查找名称，
所以流程可以在注册前被引用，也可以按名称引用自身实现循环。

    factory = ProcessFactory()
    factory.register_step(load_items, "load")
    factory.register_step(edit_item, "edit")

    main = (
        factory.start_process(factory.get_step("load"))
        .and_then(factory.get_step("edit"))
        .transition(lambda cmd: factory.get_process_flow("main")
                    if cmd.command_type != CrudOperation.NONE else identity())
    )
    factory.register_process("main", main)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from workbench.core.exceptions import FlowError
from workbench.flow.api import AppFlow, FunctionStep, Step, identity, start

logger = logging.getLogger(__name__)


class ProcessFactory:
    """步骤 / 流程注册表"""

    def __init__(self) -> None:
        self._steps: dict[str, Step] = {}
        self._processes: dict[str, AppFlow] = {}
        self._lock = threading.Lock()

    # ---- 步骤 ----

    def register_step(self, step: Step | Callable[[Any], Any], name: str = "") -> Step:
        """注册步骤；普通函数会被包装成 FunctionStep"""
        if not isinstance(step, Step):
            step = FunctionStep(step, name=name)
        key = name or step.name
        if not key:
            raise FlowError("步骤名称不能为空")
        with self._lock:
            if key in self._steps:
                logger.warning("步骤被覆盖: %s", key)
            self._steps[key] = step
        logger.debug("步骤已注册: %s", key)
        return step

    def get_step(self, name: str) -> Step:
        with self._lock:
            found = self._steps.get(name)
        if found is None:
            raise FlowError(f"未注册的步骤: {name}")
        return found

    def step_names(self) -> list[str]:
        with self._lock:
            return sorted(self._steps)

    # ---- 流程 ----

    @staticmethod
    def start_process(first: Step | Callable[[Any], Any]) -> AppFlow:
        return start(first)

    def register_process(self, name: str, flow: AppFlow) -> None:
        if not isinstance(flow, AppFlow):
            raise FlowError(f"流程 {name} 必须是 AppFlow，实际为 {type(flow).__name__}")
        with self._lock:
            self._processes[name] = flow
        logger.debug("流程已注册: %s", name)

    def has_process(self, name: str) -> bool:
        with self._lock:
            return name in self._processes

    def process_names(self) -> list[str]:
        with self._lock:
            return sorted(self._processes)

    def get_process_flow(self, name: str) -> AppFlow:
        """返回对已注册流程的延迟引用

        每次遍历到该位置时才按名称查找，找不到时在执行期抛 FlowError。
        """
        def _lookup(_value: Any) -> AppFlow:
            with self._lock:
                flow = self._processes.get(name)
            if flow is None:
                raise FlowError(f"未注册的流程: {name}")
            return flow

        _lookup.__name__ = f"process:{name}"
        return identity().transition(_lookup)
