import copy
import logging
from typing import Iterable, List, Optional

from ..core import node_types as nt
from ..core.process_graph import ProcessGraph
from .candidate import Candidate

logger = logging.getLogger(__name__)


class CandidateDetector:
    """
    循环候选检测器 | Loop candidate detector

    从入口网关（只有一条出边的排他网关）出发沿顺序流前进，
    寻找单入口、单出口、回到入口的环路：
      - 入度 != 1：若回到入口则候选完成，否则丢弃
      - 出度 != 1：只有恰有两条出边的排他网关、且尚未记录出口时才能作为出口，
        先复制候选沿第一条出边尝试，若完成则返回；否则原候选沿第二条出边继续
      - 其余节点：记录节点和出边，继续前进
    完成的候选必须同时包含 must_have_a 与 must_have_b 中的类型，否则静默丢弃。
    """

    def __init__(
        self,
        entry_gateway_type: str = nt.EXCLUSIVE_GATEWAY,
        must_have_a: Iterable[str] = (nt.QUANTUM_CIRCUIT_EXECUTION_TASK,),
        must_have_b: Iterable[str] = (nt.SERVICE_TASK, nt.SCRIPT_TASK),
    ):
        self.entry_gateway_type = entry_gateway_type
        self.must_have_a = tuple(must_have_a)
        self.must_have_b = tuple(must_have_b)

    @classmethod
    def from_config(cls, config) -> "CandidateDetector":
        return cls(
            entry_gateway_type=config.entry_gateway_type,
            must_have_a=config.must_have_a,
            must_have_b=config.must_have_b,
        )

    def find_candidates(self, graph: ProcessGraph) -> List[Candidate]:
        """
        在整张图（包括嵌套子图）中查找循环候选，按入口节点在图中的顺序返回。
        """
        candidates = []
        for node in graph.iter_nodes():
            if node.type != self.entry_gateway_type:
                continue
            outgoing = graph.outgoing_flows(node.id)
            if len(outgoing) != 1:
                continue

            candidate = Candidate(
                entry_id=node.id,
                contained_elements=[node.id, outgoing[0].id],
                current_id=outgoing[0].target_id,
            )
            result = self._extend(graph, candidate)
            if result is None:
                logger.debug("No closed loop starting at entry point '%s'", node.id)
                continue
            if result.exit_id is None:
                logger.debug("Loop starting at '%s' has no exit point, discarding", node.id)
                continue
            if not self.is_valid(graph, result):
                logger.debug("Loop starting at '%s' lacks required task types, discarding", node.id)
                continue

            candidates.append(result)

        logger.info("Found %d loop candidates", len(candidates))
        return candidates

    def is_valid(self, graph: ProcessGraph, candidate: Candidate) -> bool:
        types = {node.type for node in candidate.contained_nodes(graph)}
        if self.must_have_a and not types.intersection(self.must_have_a):
            return False
        if self.must_have_b and not types.intersection(self.must_have_b):
            return False
        return True

    def _extend(self, graph: ProcessGraph, candidate: Candidate) -> Optional[Candidate]:
        while True:
            current = graph.get_node(candidate.current_id)
            incoming = graph.incoming_flows(current.id)
            outgoing = graph.outgoing_flows(current.id)

            # 回到入口：环路闭合
            if current.id == candidate.entry_id:
                return candidate
            if len(incoming) != 1:
                return None

            if len(outgoing) != 1:
                if not self._is_exit(current.type, outgoing, candidate):
                    return None

                candidate.exit_id = current.id

                # === 第一条出边：在副本上尝试 ===
                branch = copy.deepcopy(candidate)
                branch.contained_elements += [current.id, outgoing[0].id]
                branch.expression = outgoing[0].expression
                branch.current_id = outgoing[0].target_id
                result = self._extend(graph, branch)
                if result is not None:
                    return result

                # === 第二条出边：继续使用原候选 ===
                candidate.contained_elements += [current.id, outgoing[1].id]
                candidate.expression = outgoing[1].expression
                candidate.current_id = outgoing[1].target_id
                continue

            candidate.contained_elements += [current.id, outgoing[0].id]
            candidate.current_id = outgoing[0].target_id

    def _is_exit(self, node_type: str, outgoing, candidate: Candidate) -> bool:
        return (
            node_type == self.entry_gateway_type
            and len(outgoing) == 2
            and candidate.exit_id is None
        )


def find_candidates(graph: ProcessGraph) -> List[Candidate]:
    return CandidateDetector().find_candidates(graph)
