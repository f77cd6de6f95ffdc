import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from ..core import node_types as nt
from ..core.process_graph import Bounds, Edge, GraphConsistencyError, Node, ProcessGraph

logger = logging.getLogger(__name__)


@dataclass
class SpliceResult:
    success: bool
    id_map: Dict[str, str] = field(default_factory=dict)
    inserted_node_id: Optional[str] = None


class GraphSplicer:
    """
    片段拼接器 | Graph splicer

    将片段图中的某个元素（连同其全部子元素）递归复制到目标图中，
    为每个新元素分配目标图中的 id，并在 id_map 中记录 片段 id -> 新 id。

    子元素按三轮插入，保证被引用者先于引用者存在：
      1. 普通节点（非边界事件、非注释），嵌套子图先递归完成，再处理后面的兄弟节点
      2. 边界事件（其宿主必须已经映射）
      3. 顺序流（两端通过 id_map 解析）
    注释与关联边最后插入，父节点为新插入的元素。
    """

    def __init__(self, target: ProcessGraph):
        self.target = target

    def splice(
        self,
        parent_id: Optional[str],
        fragment: ProcessGraph,
        root_id: str,
        id_map: Optional[Dict[str, str]] = None,
        replace_existing: bool = False,
        existing_node_id: Optional[str] = None,
    ) -> SpliceResult:
        """
        将片段元素 root_id 插入到目标图的 parent_id 作用域下。

        参数 | Args:
            parent_id: 目标图中的父作用域（None 表示根流程）
            fragment: 片段图（只读）
            root_id: 片段中要插入的元素 id
            id_map: 已有的 id 映射，原地更新
            replace_existing: 为 True 时原地替换 existing_node_id，接管其所有边
            existing_node_id: 被替换的目标图节点

        返回 | Returns:
            SpliceResult: success 为整棵子树所有插入结果的逻辑与
        """
        if root_id not in fragment:
            raise KeyError(f"Element '{root_id}' not found in fragment '{fragment.process_id}'.")
        if replace_existing and existing_node_id is None:
            raise ValueError("existing_node_id is required when replace_existing=True")

        id_map = {} if id_map is None else id_map
        success, inserted_id = self._insert(
            parent_id, fragment, root_id, id_map, replace_existing, existing_node_id
        )
        if not success:
            logger.warning("Splice of '%s' from fragment '%s' was not fully successful",
                           root_id, fragment.process_id)
        return SpliceResult(success=success, id_map=id_map, inserted_node_id=inserted_id)

    # ------------------------------------------------------------------

    def _insert(
        self,
        parent_id: Optional[str],
        fragment: ProcessGraph,
        element_id: str,
        id_map: Dict[str, str],
        replace_existing: bool = False,
        existing_node_id: Optional[str] = None,
    ) -> Tuple[bool, Optional[str]]:
        if element_id in id_map:
            logger.warning("Element '%s' has already been spliced as '%s'", element_id, id_map[element_id])
            return False, None

        try:
            if fragment.is_edge(element_id):
                new_id = self._insert_edge(fragment, fragment.edges[element_id], id_map)
            elif replace_existing:
                new_id = self._replace_node(fragment.nodes[element_id], existing_node_id)
            else:
                new_id = self._insert_node(parent_id, fragment.nodes[element_id], id_map)
        except GraphConsistencyError as e:
            logger.warning("Insertion of '%s' rejected by target graph: %s", element_id, e)
            return False, None

        id_map[element_id] = new_id
        if fragment.is_edge(element_id):
            return True, new_id

        success = self._insert_children(new_id, fragment, element_id, id_map)

        # === 注释与关联边最后插入 ===
        for annotation in fragment.children(element_id):
            if nt.is_artifact(annotation.type):
                ok, _ = self._insert(new_id, fragment, annotation.id, id_map)
                success = success and ok
        for edge in fragment.scope_edges(element_id):
            if edge.kind == nt.ASSOCIATION:
                ok, _ = self._insert(new_id, fragment, edge.id, id_map)
                success = success and ok

        return success, new_id

    def _insert_children(
        self,
        new_parent_id: str,
        fragment: ProcessGraph,
        source_parent_id: str,
        id_map: Dict[str, str],
    ) -> bool:
        success = True
        children = [n for n in fragment.children(source_parent_id) if not nt.is_artifact(n.type)]

        # === 1. 普通节点 ===
        for child in children:
            if child.type != nt.BOUNDARY_EVENT:
                ok, _ = self._insert(new_parent_id, fragment, child.id, id_map)
                success = success and ok

        # === 2. 边界事件 ===
        for child in children:
            if child.type == nt.BOUNDARY_EVENT:
                ok, _ = self._insert(new_parent_id, fragment, child.id, id_map)
                success = success and ok

        # === 3. 顺序流 ===
        for edge in fragment.scope_edges(source_parent_id):
            if edge.kind == nt.SEQUENCE_FLOW:
                ok, _ = self._insert(new_parent_id, fragment, edge.id, id_map)
                success = success and ok

        return success

    def _insert_node(self, parent_id: Optional[str], source: Node, id_map: Dict[str, str]) -> str:
        attached_to = None
        if source.type == nt.BOUNDARY_EVENT:
            if source.attached_to not in id_map:
                raise GraphConsistencyError(
                    f"Attachment target '{source.attached_to}' of boundary node '{source.id}' is not mapped"
                )
            attached_to = id_map[source.attached_to]

        origin_x, origin_y = 0.0, 0.0
        if parent_id is not None and parent_id in self.target.nodes:
            parent_bounds = self.target.nodes[parent_id].bounds
            origin_x, origin_y = parent_bounds.x, parent_bounds.y
        bounds = Bounds(origin_x + 50, origin_y + 50, source.bounds.width, source.bounds.height)
        if attached_to is not None:
            host = self.target.nodes[attached_to].bounds
            bounds = Bounds(
                host.x + host.width - source.bounds.width,
                host.y + host.height - source.bounds.height / 2,
                source.bounds.width,
                source.bounds.height,
            )

        node = self.target.add_node(
            source.type,
            parent_id=parent_id,
            bounds=bounds,
            attributes=copy.deepcopy(source.attributes),
            attached_to=attached_to,
        )
        logger.debug("Spliced node '%s' as '%s'", source.id, node.id)
        return node.id

    def _replace_node(self, source: Node, existing_node_id: str) -> str:
        if existing_node_id not in self.target.nodes:
            raise GraphConsistencyError(f"Node '{existing_node_id}' to replace not found in target graph")
        node = self.target.replace_node(
            existing_node_id,
            source.type,
            attributes=copy.deepcopy(source.attributes),
            size=(source.bounds.width, source.bounds.height),
        )
        logger.debug("Replaced node '%s' with fragment element '%s' as '%s'", existing_node_id, source.id, node.id)
        return node.id

    def _insert_edge(self, fragment: ProcessGraph, source: Edge, id_map: Dict[str, str]) -> str:
        for endpoint in (source.source_id, source.target_id):
            if endpoint not in id_map:
                raise GraphConsistencyError(f"Endpoint '{endpoint}' of edge '{source.id}' is not mapped")

        # 拐点与标签随源节点的位移一起平移
        old = fragment.nodes[source.source_id].bounds
        new = self.target.nodes[id_map[source.source_id]].bounds
        dx, dy = new.x - old.x, new.y - old.y
        waypoints = [(x + dx, y + dy) for x, y in source.waypoints] or None
        label = copy.deepcopy(source.label)
        if label is not None:
            label.x += dx
            label.y += dy

        edge = self.target.add_edge(
            id_map[source.source_id],
            id_map[source.target_id],
            kind=source.kind,
            waypoints=waypoints,
            expression=source.expression,
            label=label,
            attributes=copy.deepcopy(source.attributes),
        )
        logger.debug("Spliced edge '%s' as '%s'", source.id, edge.id)
        return edge.id
