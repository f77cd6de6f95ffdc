# PGT/__init__.py
from .core.process_graph import Bounds, Edge, GraphConsistencyError, Node, ProcessGraph
from .core import node_types
from .FragmentMatcher.fragment_matcher import FragmentMatcher
from .FragmentMatcher.fragment_library import FragmentLibrary, ReplacementFragment
from .FragmentMatcher.match_profile import MatchProfile, register_match_profile
from .GraphSplicer.graph_splicer import GraphSplicer, SpliceResult
from .CandidateDetector.candidate import Candidate
from .CandidateDetector.candidate_detector import CandidateDetector
from .GraphRewriter.graph_rewriter import CoalescingNodeSpec, GraphRewriter, RewriteResult
from .LayoutEngine.layout_engine import LayoutEngine
from .TransformationDriver.transformation_config import TransformationConfig
from .TransformationDriver.transformation_driver import (
    ConcurrentTransformationError,
    TransformationDriver,
    TransformationResult,
)
from .viz_candidate import calculate_view_box, render_candidate
