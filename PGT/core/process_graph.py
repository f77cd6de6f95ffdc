import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import networkx as nx

from . import node_types as nt

logger = logging.getLogger(__name__)

Waypoint = Tuple[float, float]


class GraphConsistencyError(ValueError):
    """宿主图拒绝一次结构修改（插入/删除/重连）时抛出。"""


@dataclass
class Bounds:
    x: float = 0.0
    y: float = 0.0
    width: float = 100.0
    height: float = 80.0

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Bounds"]:
        if data is None:
            return None
        return cls(
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=float(data.get("width", 0.0)),
            height=float(data.get("height", 0.0)),
        )


@dataclass
class Node:
    id: str
    type: str
    bounds: Bounds
    attributes: Dict[str, Any] = field(default_factory=dict)
    parent_id: Optional[str] = None
    incoming: List[str] = field(default_factory=list)
    outgoing: List[str] = field(default_factory=list)
    attached_to: Optional[str] = None

    @property
    def name(self) -> Optional[str]:
        return self.attributes.get("name")


@dataclass
class Edge:
    id: str
    source_id: str
    target_id: str
    kind: str = nt.SEQUENCE_FLOW
    waypoints: List[Waypoint] = field(default_factory=list)
    label: Optional[Bounds] = None
    expression: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    parent_id: Optional[str] = None


class ProcessGraph:
    """
    流程图模型 | Process graph model

    节点与边保存在以 id 为键的注册表（arena）中，边只引用节点 id。
    `self.graph` 是与注册表保持同步的 nx.MultiDiGraph 视图（边的 key 即边 id），
    供布局、导出和同构比较使用。

    作用域（scope）由 parent_id 表示：None 为根流程，否则为某个 subgraph 节点的 id。
    节点与边共享同一个 id 空间。
    """

    def __init__(self, process_id: str = "Process_1", name: Optional[str] = None):
        self.process_id = process_id
        self.name = name
        self.nodes: Dict[str, Node] = {}
        self.edges: Dict[str, Edge] = {}
        self.graph = nx.MultiDiGraph()

    def __contains__(self, element_id: str) -> bool:
        return element_id in self.nodes or element_id in self.edges

    def __len__(self) -> int:
        return len(self.nodes)

    # ------------------------------------------------------------------
    # 查询 | lookup
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> Node:
        if node_id not in self.nodes:
            raise KeyError(f"Node '{node_id}' not found in graph.")
        return self.nodes[node_id]

    def get_edge(self, edge_id: str) -> Edge:
        if edge_id not in self.edges:
            raise KeyError(f"Edge '{edge_id}' not found in graph.")
        return self.edges[edge_id]

    def is_edge(self, element_id: str) -> bool:
        return element_id in self.edges

    def children(self, parent_id: Optional[str] = None) -> List[Node]:
        """返回某作用域下的直接子节点（保持插入顺序）"""
        return [node for node in self.nodes.values() if node.parent_id == parent_id]

    def scope_edges(self, parent_id: Optional[str] = None) -> List[Edge]:
        return [edge for edge in self.edges.values() if edge.parent_id == parent_id]

    def descendants(self, node_id: str) -> List[Node]:
        result = []
        for child in self.children(node_id):
            result.append(child)
            result.extend(self.descendants(child.id))
        return result

    def iter_nodes(self, parent_id: Optional[str] = None, recursive: bool = True) -> Iterator[Node]:
        for node in self.children(parent_id):
            yield node
            if recursive and node.type == nt.SUBGRAPH:
                yield from self.iter_nodes(node.id, recursive=True)

    def attached_boundaries(self, node_id: str) -> List[Node]:
        return [node for node in self.nodes.values() if node.attached_to == node_id]

    def incoming_flows(self, node_id: str) -> List[Edge]:
        node = self.get_node(node_id)
        return [self.edges[e] for e in node.incoming if self.edges[e].kind == nt.SEQUENCE_FLOW]

    def outgoing_flows(self, node_id: str) -> List[Edge]:
        node = self.get_node(node_id)
        return [self.edges[e] for e in node.outgoing if self.edges[e].kind == nt.SEQUENCE_FLOW]

    def get_single_flow_element(self, parent_id: Optional[str] = None) -> Optional[Node]:
        """
        返回作用域中唯一的流程元素（不含注释和边界事件），
        若数量不为 1 则返回 None。
        """
        elements = [
            node for node in self.children(parent_id)
            if not nt.is_artifact(node.type) and node.type != nt.BOUNDARY_EVENT
        ]
        if len(elements) != 1:
            return None
        return elements[0]

    def generate_id(self, prefix: str) -> str:
        """
        生成 `{prefix}_{index}` 格式的唯一 id，index 取最小的未占用值。
        """
        existing_indices = set()
        head = f"{prefix}_"
        for element_id in list(self.nodes) + list(self.edges):
            if element_id.startswith(head):
                idx_part = element_id[len(head):]
                if idx_part.isdigit():
                    existing_indices.add(int(idx_part))
        new_index = 0
        while new_index in existing_indices:
            new_index += 1
        return f"{prefix}_{new_index}"

    # ------------------------------------------------------------------
    # 插入 | insertion
    # ------------------------------------------------------------------

    def add_node(
        self,
        node_type: str,
        parent_id: Optional[str] = None,
        bounds: Optional[Bounds] = None,
        attributes: Optional[Dict[str, Any]] = None,
        node_id: Optional[str] = None,
        attached_to: Optional[str] = None,
    ) -> Node:
        if node_type not in nt.NODE_TYPES:
            raise GraphConsistencyError(f"Unknown node type: '{node_type}'")
        if node_id is None:
            node_id = self.generate_id(self._id_prefix(node_type))
        if node_id in self:
            raise GraphConsistencyError(f"Element id '{node_id}' already exists in graph.")
        if parent_id is not None:
            parent = self.nodes.get(parent_id)
            if parent is None:
                raise GraphConsistencyError(f"Unknown parent '{parent_id}' for node '{node_id}'")
            if parent.type != nt.SUBGRAPH:
                raise GraphConsistencyError(
                    f"Parent '{parent_id}' of node '{node_id}' is a '{parent.type}', not a subgraph"
                )
        self._check_attachment(node_id, node_type, parent_id, attached_to)

        if bounds is None:
            width, height = nt.default_size(node_type)
            bounds = Bounds(50.0, 50.0, float(width), float(height))

        node = Node(
            id=node_id,
            type=node_type,
            bounds=bounds,
            attributes=dict(attributes or {}),
            parent_id=parent_id,
            attached_to=attached_to,
        )
        self.nodes[node_id] = node
        self.graph.add_node(node_id, type=node_type, parent_id=parent_id)
        logger.debug("Added node '%s' (%s) under '%s'", node_id, node_type, parent_id)
        return node

    def add_edge(
        self,
        source_id: str,
        target_id: str,
        kind: str = nt.SEQUENCE_FLOW,
        edge_id: Optional[str] = None,
        waypoints: Optional[List[Waypoint]] = None,
        expression: Optional[str] = None,
        label: Optional[Bounds] = None,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Edge:
        if kind not in nt.EDGE_KINDS:
            raise GraphConsistencyError(f"Unknown edge kind: '{kind}'")
        if source_id not in self.nodes:
            raise GraphConsistencyError(f"Unknown source node: {source_id}")
        if target_id not in self.nodes:
            raise GraphConsistencyError(f"Unknown target node: {target_id}")
        source = self.nodes[source_id]
        target = self.nodes[target_id]
        if source.parent_id != target.parent_id:
            raise GraphConsistencyError(
                f"Edge endpoints '{source_id}' and '{target_id}' live in different scopes"
            )
        if edge_id is None:
            edge_id = self.generate_id("Flow" if kind == nt.SEQUENCE_FLOW else "Association")
        if edge_id in self:
            raise GraphConsistencyError(f"Element id '{edge_id}' already exists in graph.")

        if waypoints is None:
            waypoints = [source.bounds.center, target.bounds.center]
        edge = Edge(
            id=edge_id,
            source_id=source_id,
            target_id=target_id,
            kind=kind,
            waypoints=[(float(x), float(y)) for x, y in waypoints],
            label=label,
            expression=expression,
            attributes=dict(attributes or {}),
            parent_id=source.parent_id,
        )
        self.edges[edge_id] = edge
        source.outgoing.append(edge_id)
        target.incoming.append(edge_id)
        self.graph.add_edge(source_id, target_id, key=edge_id, kind=kind)
        logger.debug("Added %s '%s': %s -> %s", kind, edge_id, source_id, target_id)
        return edge

    # ------------------------------------------------------------------
    # 删除 | removal
    # ------------------------------------------------------------------

    def remove_edge(self, edge_id: str) -> None:
        edge = self.get_edge(edge_id)
        self.nodes[edge.source_id].outgoing.remove(edge_id)
        self.nodes[edge.target_id].incoming.remove(edge_id)
        self.graph.remove_edge(edge.source_id, edge.target_id, key=edge_id)
        del self.edges[edge_id]
        logger.debug("Removed edge '%s'", edge_id)

    def remove_node(self, node_id: str) -> None:
        """
        删除节点及其子树。仍被边引用的节点会被拒绝（先删边，再删节点）。
        附着在该节点上的边界事件一并删除，前提是它们没有连接任何边。
        """
        node = self.get_node(node_id)
        if node.incoming or node.outgoing:
            raise GraphConsistencyError(
                f"Node '{node_id}' is still referenced by edges {node.incoming + node.outgoing}"
            )
        boundaries = self.attached_boundaries(node_id)
        for boundary in boundaries:
            if boundary.incoming or boundary.outgoing:
                raise GraphConsistencyError(
                    f"Boundary node '{boundary.id}' attached to '{node_id}' is still connected"
                )

        self._purge_subtree(node_id)
        for boundary in boundaries:
            self._delete_node(boundary.id)
        self._delete_node(node_id)
        logger.debug("Removed node '%s'", node_id)

    def _purge_subtree(self, node_id: str) -> None:
        # 子作用域内部的边只引用内部节点，可以整体删除
        for edge in self.scope_edges(node_id):
            self.remove_edge(edge.id)
        for child in self.children(node_id):
            self._purge_subtree(child.id)
            self._delete_node(child.id)

    def _delete_node(self, node_id: str) -> None:
        del self.nodes[node_id]
        self.graph.remove_node(node_id)

    # ------------------------------------------------------------------
    # 重连与替换 | reconnection & substitution
    # ------------------------------------------------------------------

    def reconnect_source(self, edge_id: str, new_source_id: str) -> Edge:
        edge = self.get_edge(edge_id)
        new_source = self.get_node(new_source_id)
        if new_source.parent_id != edge.parent_id:
            raise GraphConsistencyError(
                f"Cannot reconnect '{edge_id}' to '{new_source_id}' outside of its scope"
            )
        self.nodes[edge.source_id].outgoing.remove(edge_id)
        self.graph.remove_edge(edge.source_id, edge.target_id, key=edge_id)
        edge.source_id = new_source_id
        new_source.outgoing.append(edge_id)
        self.graph.add_edge(edge.source_id, edge.target_id, key=edge_id, kind=edge.kind)
        return edge

    def reconnect_target(self, edge_id: str, new_target_id: str) -> Edge:
        edge = self.get_edge(edge_id)
        new_target = self.get_node(new_target_id)
        if new_target.parent_id != edge.parent_id:
            raise GraphConsistencyError(
                f"Cannot reconnect '{edge_id}' to '{new_target_id}' outside of its scope"
            )
        self.nodes[edge.target_id].incoming.remove(edge_id)
        self.graph.remove_edge(edge.source_id, edge.target_id, key=edge_id)
        edge.target_id = new_target_id
        new_target.incoming.append(edge_id)
        self.graph.add_edge(edge.source_id, edge.target_id, key=edge_id, kind=edge.kind)
        return edge

    def replace_node(
        self,
        node_id: str,
        new_type: str,
        attributes: Optional[Dict[str, Any]] = None,
        size: Optional[Tuple[float, float]] = None,
        new_node_id: Optional[str] = None,
    ) -> Node:
        """
        原地替换节点：创建新类型的节点，接管旧节点的所有边和附着的边界事件，然后删除旧节点。

        :param node_id: 被替换的节点 id
        :param new_type: 新节点类型
        :param attributes: 新节点属性
        :param size: 新节点尺寸 (width, height)，默认沿用旧节点尺寸
        :return: 新节点
        """
        old = self.get_node(node_id)
        if self.children(node_id) and new_type != nt.SUBGRAPH:
            raise GraphConsistencyError(
                f"Node '{node_id}' has children and cannot be replaced by a '{new_type}'"
            )
        if old.type == nt.BOUNDARY_EVENT and new_type != nt.BOUNDARY_EVENT:
            raise GraphConsistencyError(f"Boundary node '{node_id}' can only be replaced by a boundary node")

        width, height = size if size is not None else (old.bounds.width, old.bounds.height)
        cx, cy = old.bounds.center
        new_node = self.add_node(
            new_type,
            parent_id=old.parent_id,
            bounds=Bounds(cx - width / 2, cy - height / 2, float(width), float(height)),
            attributes=attributes,
            node_id=new_node_id,
            attached_to=old.attached_to,
        )

        for edge_id in list(old.incoming):
            self.reconnect_target(edge_id, new_node.id)
        for edge_id in list(old.outgoing):
            self.reconnect_source(edge_id, new_node.id)
        for boundary in self.attached_boundaries(node_id):
            boundary.attached_to = new_node.id
        for child in self.children(node_id):
            child.parent_id = new_node.id
            self.graph.nodes[child.id]["parent_id"] = new_node.id
        for edge in self.scope_edges(node_id):
            edge.parent_id = new_node.id

        self._delete_node(node_id)
        logger.debug("Replaced node '%s' (%s) with '%s' (%s)", node_id, old.type, new_node.id, new_type)
        return new_node

    # ------------------------------------------------------------------
    # 几何 | geometry
    # ------------------------------------------------------------------

    def move_node(self, node_id: str, dx: float, dy: float) -> None:
        """平移节点；子节点、附着的边界事件以及内部边的拐点随之移动。"""
        if dx == 0 and dy == 0:
            return
        node = self.get_node(node_id)
        moved = [node] + self.descendants(node_id)
        moved_ids = {n.id for n in moved}
        for boundary in [b for n in moved for b in self.attached_boundaries(n.id)]:
            if boundary.id not in moved_ids:
                moved.append(boundary)
                moved_ids.add(boundary.id)
        for item in moved:
            item.bounds.x += dx
            item.bounds.y += dy

        scopes = {n.id for n in moved if n.type == nt.SUBGRAPH}
        for edge in self.edges.values():
            if edge.parent_id in scopes:
                edge.waypoints = [(x + dx, y + dy) for x, y in edge.waypoints]
                if edge.label is not None:
                    edge.label.x += dx
                    edge.label.y += dy

    # ------------------------------------------------------------------
    # 一致性与快照 | validation & snapshots
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """检查全部不变式，违反时抛出 GraphConsistencyError"""
        overlap = set(self.nodes) & set(self.edges)
        if overlap:
            raise GraphConsistencyError(f"Ids shared by nodes and edges: {sorted(overlap)}")
        for node in self.nodes.values():
            if node.type not in nt.NODE_TYPES:
                raise GraphConsistencyError(f"Unknown node type: '{node.type}'")
            if node.parent_id is not None:
                parent = self.nodes.get(node.parent_id)
                if parent is None or parent.type != nt.SUBGRAPH:
                    raise GraphConsistencyError(f"Invalid parent '{node.parent_id}' of node '{node.id}'")
            self._check_attachment(node.id, node.type, node.parent_id, node.attached_to)
        for edge in self.edges.values():
            source = self.nodes.get(edge.source_id)
            target = self.nodes.get(edge.target_id)
            if source is None or target is None:
                raise GraphConsistencyError(f"Edge '{edge.id}' references a missing node")
            if not (source.parent_id == target.parent_id == edge.parent_id):
                raise GraphConsistencyError(f"Edge '{edge.id}' crosses scopes")
            if edge.id not in source.outgoing or edge.id not in target.incoming:
                raise GraphConsistencyError(f"Edge '{edge.id}' is not registered at its endpoints")

    def copy(self) -> "ProcessGraph":
        return copy.deepcopy(self)

    def restore(self, snapshot: "ProcessGraph") -> None:
        """用快照内容覆盖当前图（快照本身不受影响）"""
        state = copy.deepcopy(snapshot)
        self.process_id = state.process_id
        self.name = state.name
        self.nodes = state.nodes
        self.edges = state.edges
        self.graph = state.graph

    # ------------------------------------------------------------------

    def _check_attachment(
        self,
        node_id: str,
        node_type: str,
        parent_id: Optional[str],
        attached_to: Optional[str],
    ) -> None:
        if node_type != nt.BOUNDARY_EVENT:
            if attached_to is not None:
                raise GraphConsistencyError(f"Only boundary nodes can be attached, got '{node_type}'")
            return
        if attached_to is None:
            raise GraphConsistencyError(f"Boundary node '{node_id}' has no attachment target")
        if attached_to == node_id:
            raise GraphConsistencyError(f"Boundary node '{node_id}' cannot be attached to itself")
        host = self.nodes.get(attached_to)
        if host is None:
            raise GraphConsistencyError(f"Attachment target '{attached_to}' of '{node_id}' not found")
        if host.type == nt.BOUNDARY_EVENT:
            raise GraphConsistencyError(f"Boundary node '{node_id}' cannot be attached to boundary node '{attached_to}'")
        if host.parent_id != parent_id:
            raise GraphConsistencyError(f"Boundary node '{node_id}' and its host live in different scopes")

    @staticmethod
    def _id_prefix(node_type: str) -> str:
        if nt.is_extension(node_type):
            return "Task"
        prefixes = {
            nt.EXCLUSIVE_GATEWAY: "Gateway",
            nt.START_EVENT: "StartEvent",
            nt.END_EVENT: "EndEvent",
            nt.BOUNDARY_EVENT: "BoundaryEvent",
            nt.SUBGRAPH: "SubProcess",
            nt.TEXT_ANNOTATION: "TextAnnotation",
        }
        return prefixes.get(node_type, "Activity")
