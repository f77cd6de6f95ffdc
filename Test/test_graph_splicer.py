import unittest

import networkx as nx
from networkx.algorithms.isomorphism import DiGraphMatcher

from PGT.core import node_types as nt
from PGT.core.interchange import from_node_link, to_node_link
from PGT.core.process_graph import Bounds, ProcessGraph
from PGT.GraphSplicer.graph_splicer import GraphSplicer

from graph_builders import (
    build_broken_replacement,
    build_extension_graph,
    build_subprocess_replacement,
)


def structure(graph: ProcessGraph) -> nx.DiGraph:
    """节点带类型、作用域与附着关系的结构视图（用于同构比较）"""
    view = nx.DiGraph()
    for node in graph.nodes.values():
        view.add_node(node.id, type=node.type)
        if node.parent_id is not None:
            view.add_edge(node.parent_id, node.id, kind="contains")
        if node.attached_to is not None:
            view.add_edge(node.id, node.attached_to, kind="attached")
    for edge in graph.edges.values():
        view.add_edge(edge.source_id, edge.target_id, kind=edge.kind)
    return view


def is_isomorphic(a: ProcessGraph, b: ProcessGraph) -> bool:
    matcher = DiGraphMatcher(
        structure(a),
        structure(b),
        node_match=lambda x, y: x["type"] == y["type"],
        edge_match=lambda x, y: x["kind"] == y["kind"],
    )
    return matcher.is_isomorphic()


class TestGraphSplicer(unittest.TestCase):

    def setUp(self):
        self.target = build_extension_graph((nt.QUANTUM_CIRCUIT_EXECUTION_TASK, {"provider": "ibmq"}))
        self.fragment = build_subprocess_replacement()

    def test_replace_existing_adopts_edges(self):
        result = GraphSplicer(self.target).splice(
            None, self.fragment, "Sub", replace_existing=True, existing_node_id="Ext_0"
        )

        self.assertTrue(result.success)
        self.assertNotIn("Ext_0", self.target)
        inserted = self.target.get_node(result.inserted_node_id)
        self.assertEqual(inserted.type, nt.SUBGRAPH)
        self.assertEqual(inserted.incoming, ["Flow_0"])
        self.assertEqual(inserted.outgoing, ["Flow_end"])
        self.assertTrue(inserted.attributes["is_expanded"])
        self.target.validate()

    def test_id_map_covers_every_fragment_element(self):
        result = GraphSplicer(self.target).splice(
            None, self.fragment, "Sub", replace_existing=True, existing_node_id="Ext_0"
        )

        self.assertEqual(set(result.id_map), set(self.fragment.nodes) | set(self.fragment.edges))
        id_map = result.id_map
        boundary = self.target.get_node(id_map["Sub_Boundary"])
        self.assertEqual(boundary.attached_to, id_map["Sub_Task"])
        self.assertEqual(boundary.parent_id, id_map["Sub"])
        note = self.target.get_node(id_map["Sub_Note"])
        self.assertEqual(note.parent_id, id_map["Sub"])
        association = self.target.get_edge(id_map["Sub_Association"])
        self.assertEqual((association.source_id, association.target_id), (id_map["Sub_Note"], id_map["Sub_Task"]))

    def test_edge_label_and_waypoints_follow_source_node(self):
        flow = self.fragment.get_edge("Sub_Flow_2")
        flow.waypoints = [(150.0, 90.0), (175.0, 90.0), (200.0, 90.0)]
        flow.label = Bounds(10, 10, 40, 14)

        result = GraphSplicer(self.target).splice(
            None, self.fragment, "Sub", replace_existing=True, existing_node_id="Ext_0"
        )

        self.assertTrue(result.success)
        spliced = self.target.get_edge(result.id_map["Sub_Flow_2"])
        old = self.fragment.get_node("Sub_Task").bounds
        new = self.target.get_node(result.id_map["Sub_Task"]).bounds
        dx, dy = new.x - old.x, new.y - old.y
        self.assertEqual(spliced.label, Bounds(10 + dx, 10 + dy, 40, 14))
        self.assertEqual(spliced.waypoints, [(150 + dx, 90 + dy), (175 + dx, 90 + dy), (200 + dx, 90 + dy)])
        # 片段本身不被修改
        self.assertEqual(flow.label, Bounds(10, 10, 40, 14))
        self.assertIsNot(spliced.label, flow.label)

    def test_insert_without_replacement(self):
        self.target.add_node(nt.SUBGRAPH, node_id="Container")
        result = GraphSplicer(self.target).splice("Container", self.fragment, "Sub")

        self.assertTrue(result.success)
        inserted = self.target.get_node(result.inserted_node_id)
        self.assertEqual(inserted.parent_id, "Container")
        self.assertIn("Ext_0", self.target)
        self.assertEqual(len(self.target.descendants("Container")), 7)

    def test_rejected_root_insertion(self):
        result = GraphSplicer(self.target).splice("Ext_0", self.fragment, "Sub")

        self.assertFalse(result.success)
        self.assertIsNone(result.inserted_node_id)
        self.assertEqual(result.id_map, {})

    def test_failure_is_anded_but_siblings_continue(self):
        broken = build_broken_replacement()
        result = GraphSplicer(self.target).splice(
            None, broken, "Sub", replace_existing=True, existing_node_id="Ext_0"
        )

        self.assertFalse(result.success)
        self.assertIn("Sub_Task", result.id_map)
        self.assertIn("Sub_Note", result.id_map)
        self.assertNotIn("Sub_Flow", result.id_map)

    def test_already_mapped_element_is_rejected(self):
        result = GraphSplicer(self.target).splice(None, self.fragment, "Sub", id_map={"Sub": "Somewhere"})
        self.assertFalse(result.success)

    def test_splice_then_export_reimport_is_isomorphic(self):
        GraphSplicer(self.target).splice(
            None, self.fragment, "Sub", replace_existing=True, existing_node_id="Ext_0"
        )
        reimported = from_node_link(to_node_link(self.target))
        self.assertTrue(is_isomorphic(self.target, reimported))

    def test_splice_is_deterministic_up_to_id_renaming(self):
        # 同样结构、不同 id 的目标图
        other = ProcessGraph("Other")
        other.add_node(nt.START_EVENT, node_id="S")
        other.add_node(nt.QUANTUM_CIRCUIT_EXECUTION_TASK, node_id="X")
        other.add_node(nt.END_EVENT, node_id="E")
        other.add_edge("S", "X", edge_id="Flow_0")
        other.add_edge("X", "E", edge_id="Flow_1")

        first = GraphSplicer(self.target).splice(None, self.fragment, "Sub", replace_existing=True,
                                                 existing_node_id="Ext_0")
        second = GraphSplicer(other).splice(None, self.fragment, "Sub", replace_existing=True,
                                            existing_node_id="X")

        self.assertTrue(first.success and second.success)
        self.assertTrue(is_isomorphic(self.target, other))


if __name__ == '__main__':
    unittest.main()
