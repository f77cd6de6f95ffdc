# 导出图模型与交换格式，方便其他模块导入
from .process_graph import Bounds, Edge, GraphConsistencyError, Node, ProcessGraph
from .interchange import from_node_link, load_json, save_json, to_node_link
from . import node_types

__all__ = [
    "Bounds",
    "Edge",
    "GraphConsistencyError",
    "Node",
    "ProcessGraph",
    "from_node_link",
    "load_json",
    "save_json",
    "to_node_link",
    "node_types",
]
