import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..CandidateDetector.candidate import Candidate
from ..core import node_types as nt
from ..core.process_graph import Bounds, GraphConsistencyError, ProcessGraph
from ..LayoutEngine.layout_engine import LayoutEngine

logger = logging.getLogger(__name__)

AMBIGUOUS_REWRITE_ERROR = (
    "Loop has more than one outgoing sequence flow. "
    "Unable to determine the condition of the coalesced node!"
)


@dataclass
class CoalescingNodeSpec:
    node_type: str = nt.SERVICE_TASK
    name: str = "Invoke Hybrid Program"
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RewriteResult:
    result: str
    error: Optional[str] = None
    new_node_id: Optional[str] = None
    skipped_removals: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.result == "success"


class GraphRewriter:
    """
    循环重写器 | Graph rewriter

    用一个合并节点替换整个循环候选，保持候选与外部的连接关系：
    入口的外部入边改为指向新节点，出口的外部出边改为从新节点发出。
    """

    def __init__(self, layout_engine: Optional[LayoutEngine] = None):
        self.layout_engine = layout_engine if layout_engine is not None else LayoutEngine()

    def rewrite(
        self,
        graph: ProcessGraph,
        candidate: Candidate,
        new_node_spec: Optional[CoalescingNodeSpec] = None,
    ) -> RewriteResult:
        """
        用合并节点替换候选。

        参数 | Args:
            graph: 被修改的流程图
            candidate: CandidateDetector 返回的候选（重写后失效）
            new_node_spec: 合并节点的类型、名称与属性

        返回 | Returns:
            RewriteResult: result 为 "success" 或 "error"；
            删除被宿主图拒绝的元素记录在 skipped_removals 中
        """
        spec = new_node_spec if new_node_spec is not None else CoalescingNodeSpec()

        # === 0. 修改前校验 ===
        error = self._validate(graph, candidate)
        if error is not None:
            logger.warning("Rewrite of candidate at '%s' aborted: %s", candidate.entry_id, error)
            return RewriteResult(result="error", error=error)

        entry = graph.nodes[candidate.entry_id]
        exit_point = graph.nodes[candidate.exit_id]
        contained = set(candidate.contained_elements)

        # === 1. 插入位置：入口与出口的中点 ===
        x = (entry.bounds.x + exit_point.bounds.x) / 2
        y = (entry.bounds.y + exit_point.bounds.y) / 2
        width, height = nt.default_size(spec.node_type)

        # === 2. 插入合并节点 ===
        attributes = dict(spec.attributes)
        attributes["name"] = spec.name
        if candidate.expression is not None:
            attributes.setdefault("loop_condition", candidate.expression)
        new_node = graph.add_node(
            spec.node_type,
            parent_id=entry.parent_id,
            bounds=Bounds(x, y, float(width), float(height)),
            attributes=attributes,
        )
        logger.info("Added coalescing node '%s' for loop '%s' -> '%s'", new_node.id, entry.id, exit_point.id)

        # === 3. 入口的外部入边指向新节点 ===
        for edge in graph.incoming_flows(entry.id):
            if edge.id not in contained:
                graph.reconnect_target(edge.id, new_node.id)
                logger.debug("Redirected incoming flow '%s' from '%s'", edge.id, edge.source_id)

        # === 4. 出口的外部出边从新节点发出 ===
        for edge in graph.outgoing_flows(exit_point.id):
            if edge.id not in contained:
                graph.reconnect_source(edge.id, new_node.id)
                edge.expression = None
                logger.debug("Redirected outgoing flow '%s' to '%s'", edge.id, edge.target_id)

        # === 5. 先删边，再删节点 ===
        skipped = []
        for element_id in candidate.contained_elements:
            if graph.is_edge(element_id):
                skipped.extend(self._remove(graph, element_id, graph.remove_edge))
        for element_id in candidate.contained_elements:
            if element_id in graph.nodes:
                skipped.extend(self._remove(graph, element_id, graph.remove_node))

        # === 6. 重新布局 ===
        self.layout_engine.layout(graph, entry.parent_id)

        return RewriteResult(result="success", new_node_id=new_node.id, skipped_removals=skipped)

    def _validate(self, graph: ProcessGraph, candidate: Candidate) -> Optional[str]:
        if candidate.exit_id is None:
            return "Candidate has no exit point"
        for element_id in candidate.contained_elements:
            if element_id not in graph:
                return f"Candidate element '{element_id}' no longer exists in graph"
        if candidate.entry_id not in graph.nodes or candidate.exit_id not in graph.nodes:
            return "Entry or exit point of candidate not found in graph"

        contained = set(candidate.contained_elements)
        external_outgoing = [
            edge for edge in graph.outgoing_flows(candidate.exit_id) if edge.id not in contained
        ]
        if len(external_outgoing) > 1:
            return AMBIGUOUS_REWRITE_ERROR
        return None

    @staticmethod
    def _remove(graph: ProcessGraph, element_id: str, remove) -> List[str]:
        try:
            remove(element_id)
        except GraphConsistencyError as e:
            logger.warning("Skipping removal of '%s': %s", element_id, e)
            return [element_id]
        return []


def rewrite(graph: ProcessGraph, candidate: Candidate, new_node_spec: Optional[CoalescingNodeSpec] = None) -> RewriteResult:
    return GraphRewriter().rewrite(graph, candidate, new_node_spec)
