"""流程实现节点（ProcessNode 链）

执行前把 AppFlow 描述实现为一条双向链表:
  - Sequence / Prefix 被展平，所以 a.and_then(b).and_then(c)
    与 a.and_then(b.and_then(c)) 实现为完全相同的链
  - AtomicStep -> StepProcessNode
  - Transformation / Prefix 的函数 -> TransformationNode
  - Transition -> BranchNode（source 实现为独立子链）

链及其节点归一次执行所有，执行结束后不再复用。
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from enum import Enum
from typing import Any

from workbench.flow.api import (
    AppFlow,
    AtomicStep,
    FlowNode,
    Prefix,
    Sequence,
    Step,
    Transformation,
    Transition,
)


class NodeState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessNode:
    """链上的一个节点：消费一个输入，产出一个输出"""

    kind = "node"

    def __init__(self, label: str = "") -> None:
        self.label = label
        self.prev: ProcessNode | None = None
        self.next: ProcessNode | None = None
        self.state = NodeState.IDLE
        self.input: Any = None
        self.output: Any = None
        self.error: BaseException | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.label!r}, {self.state.value})"


class StepProcessNode(ProcessNode):
    kind = "step"

    def __init__(self, step: Step) -> None:
        super().__init__(step.name or type(step).__name__)
        self.step = step


class TransformationNode(ProcessNode):
    kind = "transformation"

    def __init__(self, fn: Callable[[Any], Any]) -> None:
        super().__init__(getattr(fn, "__name__", "transformation"))
        self.fn = fn


class BranchNode(ProcessNode):
    """运行 source 子链，以其输出调用 chooser，再把选中的流程拼接到自己之后

    节点自身的输出等于输入，拼接进来的链因此以同一个输入开始。
    """

    kind = "branch"

    def __init__(self, source: ProcessChain, chooser: Callable[[Any], AppFlow]) -> None:
        super().__init__(getattr(chooser, "__name__", "chooser"))
        self.source = source
        self.chooser = chooser
        self.selection: Any = None
        self.chosen: list[ProcessNode] = []


class ProcessChain:
    """ProcessNode 双向链表"""

    def __init__(self) -> None:
        self.head: ProcessNode | None = None
        self.tail: ProcessNode | None = None

    def append(self, node: ProcessNode) -> ProcessChain:
        node.prev = self.tail
        node.next = None
        if self.tail is None:
            self.head = node
        else:
            self.tail.next = node
        self.tail = node
        return self

    def extend(self, other: ProcessChain) -> ProcessChain:
        if other.head is None:
            return self
        if self.tail is None:
            self.head, self.tail = other.head, other.tail
        else:
            self.tail.next = other.head
            other.head.prev = self.tail
            self.tail = other.tail
        other.head = other.tail = None
        return self

    def splice_after(self, anchor: ProcessNode, other: ProcessChain) -> None:
        """把 other 整条链插入 anchor 之后"""
        if other.head is None or other.tail is None:
            return
        following = anchor.next
        anchor.next = other.head
        other.head.prev = anchor
        other.tail.next = following
        if following is None:
            self.tail = other.tail
        else:
            following.prev = other.tail

    def release_before(self, anchor: ProcessNode) -> int:
        """断开 anchor 之前的全部节点，anchor 成为新的表头，返回释放的节点数"""
        released = 0
        node = anchor.prev
        while node is not None:
            released += 1
            node = node.prev
        if released:
            anchor.prev.next = None  # type: ignore[union-attr]
            anchor.prev = None
            self.head = anchor
        return released

    def __iter__(self) -> Iterator[ProcessNode]:
        node = self.head
        while node is not None:
            yield node
            node = node.next

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def kinds(self) -> list[str]:
        return [n.kind for n in self]


def realize(node: FlowNode) -> ProcessChain:
    """把流程描述实现为一条新的 ProcessNode 链"""
    if isinstance(node, AtomicStep):
        return ProcessChain().append(StepProcessNode(node.step))
    if isinstance(node, Transformation):
        return ProcessChain().append(TransformationNode(node.fn))
    if isinstance(node, Sequence):
        return realize(node.first).extend(realize(node.second))
    if isinstance(node, Prefix):
        return ProcessChain().append(TransformationNode(node.fn)).extend(realize(node.flow))
    if isinstance(node, Transition):
        return ProcessChain().append(BranchNode(realize(node.source), node.chooser))
    raise TypeError(f"未知的流程节点: {node!r}")
