import base64
import dataclasses
import inspect
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from ..CandidateDetector.candidate import Candidate
from ..CandidateDetector.candidate_detector import CandidateDetector
from ..core import node_types as nt
from ..core.process_graph import Node, ProcessGraph
from ..FragmentMatcher.fragment_library import FragmentLibrary, ReplacementFragment
from ..FragmentMatcher.fragment_matcher import FragmentMatcher
from ..GraphRewriter.graph_rewriter import CoalescingNodeSpec, GraphRewriter, RewriteResult
from ..GraphSplicer.graph_splicer import GraphSplicer
from ..LayoutEngine.layout_engine import LayoutEngine
from ..viz_candidate import render_candidate
from .transformation_config import TransformationConfig

logger = logging.getLogger(__name__)


class ConcurrentTransformationError(RuntimeError):
    """同一张图上已有一次转换在进行中"""


@dataclass
class TransformationResult:
    success: bool
    reason: Optional[str] = None
    node_id: Optional[str] = None
    replaced: Dict[str, str] = field(default_factory=dict)


class ArtifactGenerator(Protocol):
    """远程制品生成服务：为候选生成部署模型等引用（URL）"""

    async def generate(self, candidate: Candidate, graph: ProcessGraph) -> Optional[str]:
        ...


class TransformationDriver:
    """
    转换驱动器 | Transformation driver

    对外的三个入口：
      - detect: 查找循环候选（同步）
      - resolve_and_splice: 用片段库替换全部扩展节点，全部匹配才执行（异步）
      - rewrite: 将一个候选合并为单个节点（异步）
    唯一的挂起点是片段库获取与制品生成。
    """

    _active_graphs = set()

    def __init__(
        self,
        config: Optional[TransformationConfig] = None,
        artifact_generator: Optional[ArtifactGenerator] = None,
    ):
        self.config = config if config is not None else TransformationConfig()
        self.config.validate()
        self.artifact_generator = artifact_generator

        self.matcher = FragmentMatcher.from_config(self.config)
        self.detector = CandidateDetector.from_config(self.config)
        self.layout_engine = LayoutEngine.from_config(self.config)
        self.rewriter = GraphRewriter(self.layout_engine)

    @contextmanager
    def _exclusive(self, graph: ProcessGraph):
        key = id(graph)
        if key in self._active_graphs:
            raise ConcurrentTransformationError(
                f"Graph '{graph.process_id}' is already being transformed"
            )
        self._active_graphs.add(key)
        try:
            yield
        finally:
            self._active_graphs.discard(key)

    # ------------------------------------------------------------------
    # 循环候选 | loop candidates
    # ------------------------------------------------------------------

    def detect(self, graph: ProcessGraph, with_images: Optional[bool] = None) -> List[Candidate]:
        candidates = self.detector.find_candidates(graph)
        if with_images is None:
            with_images = self.config.render_candidate_images
        if with_images:
            for candidate in candidates:
                png = render_candidate(graph, candidate)
                candidate.image = base64.b64encode(png).decode("ascii")
        return candidates

    async def rewrite(
        self,
        graph: ProcessGraph,
        candidate: Candidate,
        new_node_spec: Optional[CoalescingNodeSpec] = None,
    ) -> RewriteResult:
        """
        合并候选。若配置了制品生成服务，先获取其返回的引用，
        作为合并节点的 deployment_model_url 属性。
        """
        with self._exclusive(graph):
            spec = new_node_spec if new_node_spec is not None else CoalescingNodeSpec(
                node_type=self.config.coalescing_node_type,
                name=self.config.coalescing_node_name,
            )
            if self.artifact_generator is not None:
                reference = await self.artifact_generator.generate(candidate, graph)
                if reference is not None:
                    spec = dataclasses.replace(
                        spec, attributes={**spec.attributes, "deployment_model_url": reference}
                    )
                else:
                    logger.warning("Artifact generator returned no reference for candidate at '%s'",
                                   candidate.entry_id)
            return self.rewriter.rewrite(graph, candidate, spec)

    # ------------------------------------------------------------------
    # 扩展节点替换 | extension replacement
    # ------------------------------------------------------------------

    @staticmethod
    def collect_extension_nodes(graph: ProcessGraph) -> List[Node]:
        """递归收集所有扩展节点（包括嵌套子图中的）"""
        return [node for node in graph.iter_nodes() if nt.is_extension(node.type)]

    async def resolve_and_splice(self, graph: ProcessGraph, library) -> TransformationResult:
        """
        用片段库替换图中所有扩展节点（全有或全无）。

        参数 | Args:
            graph: 目标流程图
            library: FragmentLibrary、片段列表，或返回它们的异步函数

        返回 | Returns:
            TransformationResult:
              - 任一节点无匹配片段 -> reason="no_match"，图不变
              - 匹配片段没有唯一根元素 -> reason="invalid_fragment"，图不变
              - 任一拼接失败 -> reason="splice_failure"，图恢复到替换前
        """
        with self._exclusive(graph):
            library = await self._load_library(library)

            # === 1. 预检：全部节点都能匹配才开始替换 ===
            plan: List[Tuple[Node, ReplacementFragment, Node]] = []
            for node in self.collect_extension_nodes(graph):
                fragment = self.matcher.resolve(library, node)
                if fragment is None:
                    logger.info("Transformation aborted: no fragment for node '%s'", node.id)
                    return TransformationResult(success=False, reason="no_match", node_id=node.id)
                root = fragment.replacement.get_single_flow_element()
                if root is None:
                    logger.warning("Fragment '%s' has no single root element", fragment.name)
                    return TransformationResult(success=False, reason="invalid_fragment", node_id=node.id)
                plan.append((node, fragment, root))

            if not plan:
                logger.info("No extension nodes to replace in '%s'", graph.process_id)
                return TransformationResult(success=True)

            # === 2. 逐个拼接，失败时整体回滚 ===
            snapshot = graph.copy()
            splicer = GraphSplicer(graph)
            replaced = {}
            for node, fragment, root in plan:
                input_parameters = {k: v for k, v in node.attributes.items() if k != "name"}
                result = splicer.splice(
                    node.parent_id,
                    fragment.replacement,
                    root.id,
                    replace_existing=True,
                    existing_node_id=node.id,
                )
                if not result.success:
                    graph.restore(snapshot)
                    logger.warning("Transformation aborted: splicing fragment '%s' for node '%s' failed",
                                   fragment.name, node.id)
                    return TransformationResult(success=False, reason="splice_failure", node_id=node.id)

                inserted = graph.nodes[result.inserted_node_id]
                inserted.attributes.setdefault("input_parameters", {}).update(input_parameters)
                replaced[node.id] = inserted.id
                logger.debug("Node '%s' replaced by fragment '%s' as '%s'", node.id, fragment.name, inserted.id)

            # === 3. 重新布局 ===
            self.layout_engine.layout(graph)
            logger.info("Replaced %d extension nodes in '%s'", len(replaced), graph.process_id)
            return TransformationResult(success=True, replaced=replaced)

    async def transform(self, graph: ProcessGraph, library) -> TransformationResult:
        return await self.resolve_and_splice(graph, library)

    @staticmethod
    async def _load_library(library) -> FragmentLibrary:
        if isinstance(library, FragmentLibrary):
            return library
        if callable(library):
            library = library()
            if inspect.isawaitable(library):
                library = await library
        if isinstance(library, FragmentLibrary):
            return library
        return FragmentLibrary(library)
