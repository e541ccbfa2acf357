"""AppFlow 流程组合内核

    from workbench.flow import FlowExecutor, ProcessFactory, start

    flow = start(load).and_then(render).transition(choose_next)
    output = FlowExecutor().run_sync(flow, UNIT)
"""

from workbench.flow.api import (
    UNIT,
    AppFlow,
    Command,
    Completion,
    CrudOperation,
    FunctionStep,
    Step,
    Unit,
    identity,
    start,
    step,
)
from workbench.flow.executor import FlowExecutor, FlowRun, RunStatus, StepCompletion
from workbench.flow.factory import ProcessFactory
from workbench.flow.nodes import NodeState, ProcessChain, realize

__all__ = [
    "UNIT",
    "AppFlow",
    "Command",
    "Completion",
    "CrudOperation",
    "FlowExecutor",
    "FlowRun",
    "FunctionStep",
    "NodeState",
    "ProcessChain",
    "ProcessFactory",
    "RunStatus",
    "Step",
    "StepCompletion",
    "Unit",
    "identity",
    "realize",
    "start",
    "step",
]
