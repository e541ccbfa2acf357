"""ProcessFactory 单元测试：命名注册、延迟引用与递归流程"""

from __future__ import annotations

import asyncio

import pytest

from workbench.core.exceptions import FlowError
from workbench.flow import (
    AppFlow,
    Command,
    CrudOperation,
    FlowExecutor,
    ProcessFactory,
    identity,
)


@pytest.fixture()
def factory() -> ProcessFactory:
    return ProcessFactory()


class TestSteps:
    def test_register_function_and_lookup(self, factory) -> None:
        registered = factory.register_step(lambda x: x + 1, "inc")
        assert factory.get_step("inc") is registered
        assert factory.step_names() == ["inc"]

    def test_unknown_step(self, factory) -> None:
        with pytest.raises(FlowError, match="未注册的步骤"):
            factory.get_step("ghost")

    def test_start_process(self, factory) -> None:
        factory.register_step(lambda x: x * 3, "triple")
        flow = factory.start_process(factory.get_step("triple"))
        assert FlowExecutor().run_sync(flow, 2) == 6


class TestProcesses:
    def test_register_and_reference(self, factory) -> None:
        factory.register_process("triple", identity().and_then(lambda x: x * 3))
        flow = factory.start_process(lambda x: x + 1).and_then(factory.get_process_flow("triple"))
        assert FlowExecutor().run_sync(flow, 1) == 6
        assert factory.has_process("triple")
        assert factory.process_names() == ["triple"]

    def test_reference_is_late_bound(self, factory) -> None:
        flow = factory.get_process_flow("later")
        factory.register_process("later", identity().and_then(str))
        assert FlowExecutor().run_sync(flow, 7) == "7"

    def test_unknown_process_fails_at_run_time(self, factory) -> None:
        flow = factory.get_process_flow("ghost")
        with pytest.raises(FlowError, match="未注册的流程"):
            FlowExecutor().run_sync(flow, 1)

    def test_register_rejects_non_flow(self, factory) -> None:
        with pytest.raises(FlowError):
            factory.register_process("bad", lambda x: x)  # type: ignore[arg-type]

    def test_recursive_flow(self, factory) -> None:
        """流程按名称引用自身实现循环，执行链逐轮拼接而不是嵌套"""
        inc = factory.register_step(lambda x: x + 1, "inc")
        loop = factory.start_process(inc).and_then(
            identity().transition(
                lambda v: factory.get_process_flow("loop") if v < 500 else identity(),
            ),
        )
        factory.register_process("loop", loop)

        async def go():
            run = FlowExecutor().start(factory.get_process_flow("loop"), 0)
            return run, await run.result()

        run, out = asyncio.run(go())
        assert out == 500
        assert sum(1 for n in run.nodes() if n.label == "inc") == 500

    def test_recursive_flow_releases_completed_nodes(self, factory) -> None:
        """开启 release_completed 后循环流程的链长度不随轮数增长"""
        inc = factory.register_step(lambda x: x + 1, "inc")
        loop = factory.start_process(inc).and_then(
            identity().transition(
                lambda v: factory.get_process_flow("loop") if v < 500 else identity(),
            ),
        )
        factory.register_process("loop", loop)

        async def go():
            run = FlowExecutor(release_completed=True).start(factory.get_process_flow("loop"), 0)
            return run, await run.result()

        run, out = asyncio.run(go())
        assert out == 500
        assert len(run.nodes()) < 5
        assert all(n.label != "inc" for n in run.nodes())

    def test_list_view_style_loop(self, factory) -> None:
        """列表视图模式：每轮产出 Command，NONE 时结束"""
        commands = iter([
            Command(CrudOperation.CREATE, "core"),
            Command(CrudOperation.CREATE, "docs"),
            Command(CrudOperation.DELETE, "core"),
            Command(CrudOperation.NONE, None),
        ])
        factory.register_step(lambda items: (items, next(commands)), "list")

        def apply(pair):
            items, cmd = pair
            if cmd.command_type is CrudOperation.CREATE:
                return [*items, cmd.value]
            if cmd.command_type is CrudOperation.DELETE:
                return [i for i in items if i != cmd.value]
            return items

        def choose(pair) -> AppFlow:
            _items, cmd = pair
            if cmd.command_type is CrudOperation.NONE:
                return identity()
            return identity().and_then(apply).and_then(factory.get_process_flow("crud"))

        crud = factory.start_process(factory.get_step("list")).and_then(
            identity().transition(choose),
        ).and_then(lambda pair: pair[0] if isinstance(pair, tuple) else pair)
        factory.register_process("crud", crud)

        assert FlowExecutor().run_sync(factory.get_process_flow("crud"), []) == ["docs"]
