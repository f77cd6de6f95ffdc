import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

import networkx as nx
import numpy as np

from ..core import node_types as nt
from ..core.process_graph import Bounds, Node, ProcessGraph
from .waypoint_utils import (
    adapt_gateway_waypoints,
    corner_waypoints,
    label_position,
    remove_duplicate_waypoints,
    snap_to_border,
)

logger = logging.getLogger(__name__)

Waypoint = Tuple[float, float]

POINTS_PER_INCH = 72.0


def parse_spline(pos: str) -> List[Waypoint]:
    """
    解析 graphviz 边的 pos 属性 "[s,x,y] [e,x,y] x1,y1 x2,y2 ..."。

    pos 是一条三次 B 样条，点数为 1 + 3n；每段的端点即折线模式（splines=polyline）下的拐点。
    返回 graphviz 坐标系（y 轴向上）下的拐点列表。
    """
    start = end = None
    points = []
    for token in pos.split(";")[0].split():
        parts = token.split(",")
        if parts[0] == "s":
            start = (float(parts[1]), float(parts[2]))
        elif parts[0] == "e":
            end = (float(parts[1]), float(parts[2]))
        else:
            points.append((float(parts[0]), float(parts[1])))

    waypoints = points[::3]
    if points and waypoints[-1] != points[-1]:
        waypoints.append(points[-1])
    if start is not None:
        waypoints.insert(0, start)
    if end is not None:
        waypoints.append(end)
    return waypoints


class LayoutEngine:
    """
    分层布局引擎 | Layered layout engine

    使用 graphviz dot（rankdir=LR）完成自左向右的分层布局：
    嵌套子图先完成内部布局再作为一个节点参与外层布局；
    布局后对边界事件、网关连接点、直角边、重复拐点和边标签做后处理。
    """

    def __init__(
        self,
        rank_sep: float = 50,
        node_sep: float = 50,
        boundary_event_margin: float = 10,
        label_margin: float = 10,
        subgraph_padding: float = 30,
    ):
        self.rank_sep = rank_sep
        self.node_sep = node_sep
        self.boundary_event_margin = boundary_event_margin
        self.label_margin = label_margin
        self.subgraph_padding = subgraph_padding

    @classmethod
    def from_config(cls, config) -> "LayoutEngine":
        return cls(**config.layout)

    def layout(self, graph: ProcessGraph, root_id: Optional[str] = None) -> None:
        """
        对 root_id 作用域（None 为根流程）重新布局，然后对整张图做后处理。
        """
        if root_id is not None and graph.get_node(root_id).type != nt.SUBGRAPH:
            raise ValueError(f"Layout root '{root_id}' is not a subgraph")

        logger.info("Layout of scope '%s' started", root_id or graph.process_id)
        self._layout_scope(graph, root_id)
        if root_id is not None:
            self._fit_subgraph(graph, root_id)
        self.layout_boundary_events(graph)
        self.layout_waypoints(graph)

    # ------------------------------------------------------------------
    # 分层布局 | layered layout
    # ------------------------------------------------------------------

    def _layout_scope(self, graph: ProcessGraph, scope_id: Optional[str]) -> None:
        for child in graph.children(scope_id):
            if child.type == nt.SUBGRAPH:
                self._layout_scope(graph, child.id)
                self._fit_subgraph(graph, child.id)

        nodes = [n for n in graph.children(scope_id) if n.type != nt.BOUNDARY_EVENT]
        if not nodes:
            return

        if scope_id is not None:
            scope = graph.nodes[scope_id].bounds
            origin = (scope.x + self.subgraph_padding, scope.y + self.subgraph_padding)
        else:
            origin = (min(n.bounds.x for n in nodes), min(n.bounds.y for n in nodes))

        # === 1. 调用 dot 计算布局 ===
        A = nx.nx_agraph.to_agraph(self._build_layout_graph(graph, scope_id, nodes))
        A.graph_attr.update(
            rankdir="LR",
            splines="polyline",
            ranksep=f"{self.rank_sep / POINTS_PER_INCH:.4f}",
            nodesep=f"{self.node_sep / POINTS_PER_INCH:.4f}",
        )
        A.node_attr.update(shape="box", fixedsize="true", label="")
        A.edge_attr.update(dir="none")
        A.layout(prog="dot")

        # === 2. graphviz 坐标（y 轴向上）平移到作用域左上角 ===
        centres = {n.id: list(map(float, A.get_node(n.id).attr["pos"].split(","))) for n in nodes}
        left = min(centres[n.id][0] - n.bounds.width / 2 for n in nodes)
        top = min(-centres[n.id][1] - n.bounds.height / 2 for n in nodes)
        offset = np.array([origin[0] - left, origin[1] - top])

        def to_diagram(points) -> List[Waypoint]:
            points = np.array(points, dtype=float).reshape(-1, 2) * np.array([1.0, -1.0]) + offset
            return [(float(x), float(y)) for x, y in points]

        # === 3. 按新旧中心点的差值移动节点（子节点随之移动）===
        for node in nodes:
            old_cx, old_cy = node.bounds.center
            new_cx, new_cy = to_diagram(centres[node.id])[0]
            graph.move_node(node.id, new_cx - old_cx, new_cy - old_cy)

        # === 4. 用 dot 的折线整体替换边的拐点 ===
        for edge in graph.scope_edges(scope_id):
            source_id = self._layout_id(graph, edge.source_id)
            target_id = self._layout_id(graph, edge.target_id)
            source, target = graph.nodes[source_id].bounds, graph.nodes[target_id].bounds
            if source_id == target_id:
                edge.waypoints = self._route_self_loop(source)
                continue
            pos = A.get_edge(source_id, target_id, key=edge.id).attr.get("pos")
            points = to_diagram(parse_spline(pos)) if pos else [source.center, target.center]
            edge.waypoints = self._clip_to_borders(points, source, target)

        logger.debug("Laid out %d nodes under '%s' with dot", len(nodes), scope_id)

    def _build_layout_graph(self, graph: ProcessGraph, scope_id: Optional[str], nodes: List[Node]) -> nx.MultiDiGraph:
        """作用域内的布局图：节点尺寸以英寸给出，每条边以其 id 为键"""
        layout_graph = nx.MultiDiGraph()
        for node in nodes:
            layout_graph.add_node(
                node.id,
                width=node.bounds.width / POINTS_PER_INCH,
                height=node.bounds.height / POINTS_PER_INCH,
            )
        for edge in graph.scope_edges(scope_id):
            source = self._layout_id(graph, edge.source_id)
            target = self._layout_id(graph, edge.target_id)
            if source != target:
                layout_graph.add_edge(source, target, key=edge.id)
        return layout_graph

    @staticmethod
    def _layout_id(graph: ProcessGraph, node_id: str) -> str:
        # 边界事件上的边计入其宿主节点
        node = graph.nodes[node_id]
        if node.type == nt.BOUNDARY_EVENT:
            return node.attached_to
        return node_id

    @staticmethod
    def _clip_to_borders(points: List[Waypoint], source: Bounds, target: Bounds) -> List[Waypoint]:
        """dot 对回边给出的折线可能是反向的；统一为 源 -> 目标，并把两端落到边框上"""
        if len(points) < 2:
            points = [source.center, target.center]

        def distance(point, bounds):
            dx = max(bounds.x - point[0], 0.0, point[0] - bounds.x - bounds.width)
            dy = max(bounds.y - point[1], 0.0, point[1] - bounds.y - bounds.height)
            return float(np.hypot(dx, dy))

        points = list(points)
        if distance(points[0], target) < distance(points[0], source):
            points.reverse()
        points[0] = snap_to_border(points[0], source)
        points[-1] = snap_to_border(points[-1], target)
        return points

    def _route_self_loop(self, bounds: Bounds) -> List[Waypoint]:
        # 从边界事件回到自身宿主：在宿主下方绕行
        cx, cy = bounds.center
        below = bounds.y + bounds.height + self.rank_sep / 2
        right = bounds.x + bounds.width
        return [(cx, bounds.y + bounds.height), (cx, below), (right + self.rank_sep / 2, below),
                (right + self.rank_sep / 2, cy), (right, cy)]

    def _fit_subgraph(self, graph: ProcessGraph, subgraph_id: str) -> None:
        subgraph = graph.nodes[subgraph_id]
        children = [n for n in graph.children(subgraph_id) if n.type != nt.BOUNDARY_EVENT]
        if not children:
            return
        right = max(n.bounds.x + n.bounds.width for n in children)
        bottom = max(n.bounds.y + n.bounds.height for n in children)
        subgraph.bounds.width = right - subgraph.bounds.x + self.subgraph_padding
        subgraph.bounds.height = bottom - subgraph.bounds.y + self.subgraph_padding

    # ------------------------------------------------------------------
    # 后处理 | post-processing
    # ------------------------------------------------------------------

    def layout_boundary_events(self, graph: ProcessGraph) -> None:
        """边界事件排列在宿主右下角，每多一个向左偏移一个 (宽度 + 间距)"""
        placed = defaultdict(int)
        for boundary in list(graph.nodes.values()):
            if boundary.type != nt.BOUNDARY_EVENT:
                continue
            host = graph.nodes[boundary.attached_to].bounds
            b = boundary.bounds
            offset = (placed[boundary.attached_to] + 1) * (b.width + self.boundary_event_margin)
            b.x = host.x + host.width - offset
            b.y = host.y + host.height - b.height / 2
            placed[boundary.attached_to] += 1

            for edge in graph.outgoing_flows(boundary.id):
                if edge.waypoints:
                    edge.waypoints = [(b.x + b.width / 2, b.y + b.height)] + edge.waypoints[1:]

    def layout_waypoints(self, graph: ProcessGraph) -> None:
        """网关连接点居中、三拐点边直角化、删除重复拐点、重新放置标签"""
        for edge in graph.edges.values():
            if edge.kind != nt.SEQUENCE_FLOW:
                continue
            source = graph.nodes[edge.source_id]
            target = graph.nodes[edge.target_id]

            waypoints = adapt_gateway_waypoints(
                edge.waypoints,
                source.bounds,
                target.bounds,
                nt.is_gateway(source.type),
                nt.is_gateway(target.type),
            )
            waypoints = corner_waypoints(waypoints, source.bounds, target.bounds)
            edge.waypoints = remove_duplicate_waypoints(waypoints)

            if edge.label is not None:
                position = label_position(edge.waypoints, edge.label, self.label_margin)
                if position is not None:
                    edge.label.x, edge.label.y = position


def layout(graph: ProcessGraph, root_id: Optional[str] = None) -> None:
    LayoutEngine().layout(graph, root_id)
