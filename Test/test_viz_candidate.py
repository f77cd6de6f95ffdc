from PGT.CandidateDetector.candidate import Candidate
from PGT.CandidateDetector.candidate_detector import find_candidates
from PGT.core.process_graph import Bounds
from PGT.viz_candidate import DEFAULT_VIEW_BOX, calculate_view_box, render_candidate

from graph_builders import build_loop_graph


def test_view_box_covers_only_candidate_elements():
    g = build_loop_graph()
    candidate = find_candidates(g)[0]
    g.get_edge("Flow_loop").waypoints = [(475.0, 140.0), (475.0, 400.0), (125.0, 400.0), (125.0, 140.0)]

    x, y, width, height = calculate_view_box(g, candidate, margin=10)

    # Gw1 左边界 100，Gw2 右边界 550，任务上边界 75，回边最低点 400；Start/End 不计入
    assert (x, y) == (90.0, 65.0)
    assert (width, height) == (470.0, 345.0)


def test_view_box_includes_labels():
    g = build_loop_graph()
    candidate = find_candidates(g)[0]
    g.get_edge("Flow_loop").label = Bounds(600, 0, 40, 14)

    x, y, width, height = calculate_view_box(g, candidate, margin=0)

    assert x + width == 640
    assert y == 0


def test_view_box_without_geometry():
    g = build_loop_graph()
    assert calculate_view_box(g, Candidate(entry_id="Missing")) == DEFAULT_VIEW_BOX


def test_render_candidate_produces_png():
    g = build_loop_graph()
    candidate = find_candidates(g)[0]

    png = render_candidate(g, candidate)

    assert png.startswith(b"\x89PNG\r\n\x1a\n")
    assert len(png) > 100
