"""
流程图交换格式 | Diagram interchange

ProcessGraph <-> node-link JSON（networkx.readwrite.json_graph），
保留 id、类型、属性、几何信息以及每个节点的出入边顺序。
"""
import json
import logging
from typing import Any, Dict

import networkx as nx
from networkx.readwrite import json_graph

from .process_graph import Bounds, Edge, Node, ProcessGraph

logger = logging.getLogger(__name__)


def to_node_link(graph: ProcessGraph) -> Dict[str, Any]:
    """将 ProcessGraph 转换为可 JSON 序列化的 node-link 字典"""
    G = nx.MultiDiGraph(process_id=graph.process_id, name=graph.name)
    for node in graph.nodes.values():
        G.add_node(
            node.id,
            type=node.type,
            bounds=node.bounds.to_dict(),
            attributes=dict(node.attributes),
            parent_id=node.parent_id,
            incoming=list(node.incoming),
            outgoing=list(node.outgoing),
            attached_to=node.attached_to,
        )
    for index, edge in enumerate(graph.edges.values()):
        G.add_edge(
            edge.source_id,
            edge.target_id,
            key=edge.id,
            index=index,
            kind=edge.kind,
            waypoints=[[x, y] for x, y in edge.waypoints],
            label=edge.label.to_dict() if edge.label is not None else None,
            expression=edge.expression,
            attributes=dict(edge.attributes),
            parent_id=edge.parent_id,
        )
    return json_graph.node_link_data(G, edges="edges")


def from_node_link(data: Dict[str, Any]) -> ProcessGraph:
    """
    从 node-link 字典重建 ProcessGraph。

    重建后执行一次完整的不变式检查，非法输入抛出 GraphConsistencyError。
    """
    G = json_graph.node_link_graph(data, directed=True, multigraph=True, edges="edges")
    graph = ProcessGraph(
        process_id=G.graph.get("process_id", "Process_1"),
        name=G.graph.get("name"),
    )

    for node_id, attrs in G.nodes(data=True):
        graph.nodes[node_id] = Node(
            id=node_id,
            type=attrs["type"],
            bounds=Bounds.from_dict(attrs.get("bounds")) or Bounds(),
            attributes=dict(attrs.get("attributes") or {}),
            parent_id=attrs.get("parent_id"),
            incoming=list(attrs.get("incoming") or []),
            outgoing=list(attrs.get("outgoing") or []),
            attached_to=attrs.get("attached_to"),
        )
        graph.graph.add_node(node_id, type=attrs["type"], parent_id=attrs.get("parent_id"))

    raw_edges = sorted(G.edges(keys=True, data=True), key=lambda item: item[3].get("index", 0))
    for source_id, target_id, edge_id, attrs in raw_edges:
        graph.edges[edge_id] = Edge(
            id=edge_id,
            source_id=source_id,
            target_id=target_id,
            kind=attrs["kind"],
            waypoints=[(float(x), float(y)) for x, y in attrs.get("waypoints") or []],
            label=Bounds.from_dict(attrs.get("label")),
            expression=attrs.get("expression"),
            attributes=dict(attrs.get("attributes") or {}),
            parent_id=attrs.get("parent_id"),
        )
        graph.graph.add_edge(source_id, target_id, key=edge_id, kind=attrs["kind"])

    graph.validate()
    logger.debug("Imported graph '%s' with %d nodes and %d edges",
                 graph.process_id, len(graph.nodes), len(graph.edges))
    return graph


def save_json(graph: ProcessGraph, path: str) -> None:
    data = to_node_link(graph)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_json(path: str) -> ProcessGraph:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return from_node_link(data)
