from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..core import node_types as nt
from ..core.process_graph import Edge, Node, ProcessGraph

CLASSICAL_TASK_TYPES = (nt.SERVICE_TASK, nt.SCRIPT_TASK)

# 可以被合并执行的建模元素
SUPPORTED_CONSTRUCTS = (
    nt.EXCLUSIVE_GATEWAY,
    nt.SERVICE_TASK,
    nt.SCRIPT_TASK,
    nt.QUANTUM_CIRCUIT_EXECUTION_TASK,
)


@dataclass
class Candidate:
    """
    循环候选 | Loop candidate

    contained_elements 按遍历顺序保存节点与边的 id：
    [entry, edge, node, edge, ..., exit, edge, ..., edge]，最后一条边回到 entry。
    由 CandidateDetector 返回后只读，GraphRewriter 重写后即失效。
    """
    entry_id: str
    exit_id: Optional[str] = None
    contained_elements: List[str] = field(default_factory=list)
    expression: Optional[str] = None
    current_id: Optional[str] = None
    image: Optional[str] = None

    def __contains__(self, element_id: str) -> bool:
        return element_id in self.contained_elements

    def contained_nodes(self, graph: ProcessGraph) -> List[Node]:
        return [graph.nodes[i] for i in self.contained_elements if i in graph.nodes]

    def contained_edges(self, graph: ProcessGraph) -> List[Edge]:
        return [graph.edges[i] for i in self.contained_elements if i in graph.edges]

    def task_order(self, graph: ProcessGraph) -> Tuple[List[str], List[str]]:
        """
        返回循环网关（exit）之前与之后的经典任务 id 列表。
        """
        before_loop, after_loop = [], []
        passed_exit = False
        for node in self.contained_nodes(graph):
            if node.id == self.exit_id:
                passed_exit = True
            if node.type in CLASSICAL_TASK_TYPES:
                (after_loop if passed_exit else before_loop).append(node.id)
        return before_loop, after_loop

    def invalid_modeling_construct(self, graph: ProcessGraph) -> Optional[str]:
        """返回第一个不支持合并执行的节点 id，全部支持时返回 None"""
        for node in self.contained_nodes(graph):
            if node.type not in SUPPORTED_CONSTRUCTS:
                return node.id
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "exit_id": self.exit_id,
            "contained_elements": list(self.contained_elements),
            "expression": self.expression,
        }
