import json
import unittest

from PGT.core import node_types as nt
from PGT.CandidateDetector.candidate_detector import CandidateDetector
from PGT.FragmentMatcher.fragment_matcher import FragmentMatcher
from PGT.LayoutEngine.layout_engine import LayoutEngine
from PGT.TransformationDriver.transformation_config import DEFAULT_LAYOUT, TransformationConfig


class TestTransformationConfig(unittest.TestCase):

    def test_defaults(self):
        config = TransformationConfig()
        self.assertEqual(config.entry_gateway_type, nt.EXCLUSIVE_GATEWAY)
        self.assertEqual(config.must_have_a, [nt.QUANTUM_CIRCUIT_EXECUTION_TASK])
        self.assertEqual(config.must_have_b, [nt.SERVICE_TASK, nt.SCRIPT_TASK])
        self.assertEqual(config.layout, DEFAULT_LAYOUT)
        self.assertEqual(config.to_dict(), {})
        config.validate()

    def test_from_dict_merges_sections_and_ignores_unknown_keys(self):
        config = TransformationConfig.from_dict({
            "must_have_b": [nt.SCRIPT_TASK],
            "layout": {"rank_sep": 80, "unknown": 1},
            "matching": {"wildcard": "?"},
            "not_a_field": True,
        })

        self.assertEqual(config.must_have_b, [nt.SCRIPT_TASK])
        self.assertEqual(config.get("layout", "rank_sep"), 80)
        self.assertEqual(config.get("layout", "node_sep"), 50)
        self.assertNotIn("unknown", config.layout)
        self.assertEqual(config.get("matching", "separator"), ",")
        self.assertEqual(config.get("matching", "wildcard"), "?")
        self.assertIsNone(config.get("missing", "key"))
        self.assertEqual(config.get("layout", "missing", 3), 3)

    def test_to_dict_only_contains_overrides(self):
        config = TransformationConfig.from_dict({"coalescing_node_name": "Hybrid", "layout": {"rank_sep": 80}})

        self.assertEqual(config.to_dict(), {
            "coalescing_node_name": "Hybrid",
            "layout": {**DEFAULT_LAYOUT, "rank_sep": 80},
        })
        full = config.to_dict(include_defaults=True)
        self.assertEqual(full["entry_gateway_type"], nt.EXCLUSIVE_GATEWAY)
        self.assertEqual(TransformationConfig.from_dict(full), config)

    def test_validate_rejects_bad_values(self):
        for overrides in (
            {"entry_gateway_type": "gateway-parallel"},
            {"must_have_a": ["unknown-task"]},
            {"layout": {"rank_sep": -1}},
            {"matching": {"separator": ""}},
        ):
            with self.assertRaises(ValueError):
                TransformationConfig.from_dict(overrides).validate()

    def test_components_are_built_from_config(self):
        config = TransformationConfig.from_dict({
            "must_have_a": [],
            "layout": {"rank_sep": 120},
            "matching": {"separator": "|"},
        })

        self.assertEqual(CandidateDetector.from_config(config).must_have_a, ())
        self.assertEqual(LayoutEngine.from_config(config).rank_sep, 120)
        self.assertEqual(FragmentMatcher.from_config(config).separator, "|")


def test_from_json_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"render_candidate_images": True}), encoding="utf-8")

    config = TransformationConfig.from_json_file(str(path))

    assert config.render_candidate_images is True
    assert config.to_dict() == {"render_candidate_images": True}
