import json
import unittest

from PGT.CandidateDetector.candidate import Candidate
from PGT.CandidateDetector.candidate_detector import find_candidates
from PGT.core import node_types as nt
from PGT.core.interchange import to_node_link
from PGT.core.process_graph import ProcessGraph
from PGT.GraphRewriter.graph_rewriter import (
    AMBIGUOUS_REWRITE_ERROR,
    CoalescingNodeSpec,
    GraphRewriter,
    rewrite,
)

from graph_builders import build_loop_graph


def dump(graph):
    return json.dumps(to_node_link(graph), sort_keys=True)


class RecordingLayout:
    def __init__(self):
        self.calls = []

    def layout(self, graph, root_id=None):
        self.calls.append(root_id)


class TestGraphRewriter(unittest.TestCase):

    def setUp(self):
        self.g = build_loop_graph()
        self.candidate = find_candidates(self.g)[0]

    def test_rewrite_preserves_external_connectivity(self):
        result = rewrite(self.g, self.candidate)

        self.assertTrue(result.succeeded)
        self.assertEqual(result.skipped_removals, [])
        new = self.g.get_node(result.new_node_id)
        self.assertEqual(new.type, nt.SERVICE_TASK)
        self.assertEqual(new.name, "Invoke Hybrid Program")
        self.assertEqual(new.attributes["loop_condition"], "x<5")
        self.assertEqual(new.incoming, ["Flow_start"])
        self.assertEqual(new.outgoing, ["Flow_exit"])
        self.assertEqual(self.g.get_edge("Flow_start").source_id, "Start")
        self.assertEqual(self.g.get_edge("Flow_exit").target_id, "End")
        self.assertIsNone(self.g.get_edge("Flow_exit").expression)

        for element_id in self.candidate.contained_elements:
            self.assertNotIn(element_id, self.g)
        self.assertEqual(set(self.g.nodes), {"Start", "End", new.id})
        self.g.validate()

    def test_ambiguous_exit_leaves_graph_untouched(self):
        self.g.add_node(nt.END_EVENT, node_id="End2")
        self.g.add_edge("Gw2", "End2", edge_id="Flow_exit_2")
        before = dump(self.g)

        result = rewrite(self.g, self.candidate)

        self.assertEqual(result.result, "error")
        self.assertEqual(result.error, AMBIGUOUS_REWRITE_ERROR)
        self.assertIsNone(result.new_node_id)
        self.assertEqual(dump(self.g), before)

    def test_rejected_removal_is_reported(self):
        self.g.add_node(nt.TEXT_ANNOTATION, node_id="Note")
        self.g.add_edge("Note", "Task_0", kind=nt.ASSOCIATION, edge_id="Association_0")

        result = rewrite(self.g, self.candidate)

        self.assertTrue(result.succeeded)
        self.assertEqual(result.skipped_removals, ["Task_0"])
        self.assertIn("Task_0", self.g)
        self.assertNotIn("Gw1", self.g)
        self.g.validate()

    def test_candidate_without_exit_is_rejected(self):
        before = dump(self.g)
        result = rewrite(self.g, Candidate(entry_id="Gw1", contained_elements=["Gw1", "Flow_0"]))
        self.assertEqual(result.result, "error")
        self.assertEqual(dump(self.g), before)

    def test_stale_candidate_is_rejected(self):
        self.g.remove_edge("Flow_1")
        result = rewrite(self.g, self.candidate)
        self.assertEqual(result.result, "error")
        self.assertIn("Flow_1", result.error)
        self.assertIn("Gw1", self.g)

    def test_custom_node_spec_and_layout_scope(self):
        layout = RecordingLayout()
        spec = CoalescingNodeSpec(node_type=nt.SCRIPT_TASK, name="Hybrid loop", attributes={"runtime": "qiskit"})

        result = GraphRewriter(layout).rewrite(self.g, self.candidate, spec)

        new = self.g.get_node(result.new_node_id)
        self.assertEqual(new.type, nt.SCRIPT_TASK)
        self.assertEqual(new.attributes, {"runtime": "qiskit", "name": "Hybrid loop", "loop_condition": "x<5"})
        self.assertEqual(layout.calls, [None])
        # 新节点位于入口与出口的中点
        self.assertEqual((new.bounds.x, new.bounds.y), ((100 + 500) / 2, 90.0))

    def test_rewrite_inside_subgraph(self):
        g = ProcessGraph()
        g.add_node(nt.SUBGRAPH, node_id="Sub")
        for node_type, node_id in (
            (nt.START_EVENT, "S"), (nt.EXCLUSIVE_GATEWAY, "In"), (nt.QUANTUM_CIRCUIT_EXECUTION_TASK, "Q"),
            (nt.SERVICE_TASK, "C"), (nt.EXCLUSIVE_GATEWAY, "Out"), (nt.END_EVENT, "E"),
        ):
            g.add_node(node_type, parent_id="Sub", node_id=node_id)
        for source, target in (("S", "In"), ("In", "Q"), ("Q", "C"), ("C", "Out"), ("Out", "In"), ("Out", "E")):
            g.add_edge(source, target)

        layout = RecordingLayout()
        result = GraphRewriter(layout).rewrite(g, find_candidates(g)[0])

        self.assertTrue(result.succeeded)
        self.assertEqual(g.get_node(result.new_node_id).parent_id, "Sub")
        self.assertEqual(layout.calls, ["Sub"])
        self.assertEqual({n.id for n in g.children("Sub")}, {"S", "E", result.new_node_id})
        g.validate()


if __name__ == '__main__':
    unittest.main()
