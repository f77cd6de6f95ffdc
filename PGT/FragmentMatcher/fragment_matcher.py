import logging
from typing import Any, Iterable, Optional

from ..core import node_types as nt
from ..core.process_graph import Node, ProcessGraph
from .fragment_library import ReplacementFragment
from .match_profile import MATCH_PROFILES, register_match_profile

logger = logging.getLogger(__name__)


# === 各扩展任务类型的属性匹配规则 ===
register_match_profile(nt.QUANTUM_COMPUTATION_TASK, required=["algorithm"], optional=["provider"])
register_match_profile(nt.QUANTUM_CIRCUIT_LOADING_TASK, alternatives=[("quantum_circuit", "url")])
register_match_profile(nt.DATA_PREPARATION_TASK, required=["encoding_schema", "programming_language"])
register_match_profile(
    nt.ORACLE_EXPANSION_TASK,
    required=["oracle_id", "programming_language"],
    alternatives=[("oracle_circuit", "oracle_url")],
)
register_match_profile(
    nt.QUANTUM_CIRCUIT_EXECUTION_TASK,
    required=["programming_language"],
    optional=["provider", "qpu", "shots"],
)
register_match_profile(
    nt.READOUT_ERROR_MITIGATION_TASK,
    required=["unfolding_technique", "provider", "qpu"],
    optional=["max_age"],
)


class FragmentMatcher:
    """
    片段匹配器 | Fragment matcher

    判断替换片段的检测器（单节点图）是否与目标图中的某个节点匹配，
    并在有序片段库中查找第一个匹配的片段。
    """

    def __init__(self, wildcard: str = "*", separator: str = ",", ignored_attributes=("name",)):
        self.wildcard = wildcard
        self.separator = separator
        self.ignored_attributes = frozenset(ignored_attributes)

    @classmethod
    def from_config(cls, config) -> "FragmentMatcher":
        return cls(
            wildcard=config.get("matching", "wildcard", "*"),
            separator=config.get("matching", "separator", ","),
            ignored_attributes=config.get("matching", "ignored_attributes", ["name"]),
        )

    def matches(self, detector: ProcessGraph, node: Node) -> bool:
        """
        检测器是否匹配节点。

        检测器图为空或包含多个节点时返回 False（不是错误）。
        否则要求类型相同，且检测器上设置的每个属性都与节点上的值兼容；
        检测器未设置的属性不作约束。

        :param detector: 检测器图
        :param node: 待替换的节点
        :return: 是否匹配
        """
        if len(detector.nodes) != 1:
            logger.debug("Detector '%s' must contain exactly one node, found %d",
                         detector.process_id, len(detector.nodes))
            return False

        detector_node = next(iter(detector.nodes.values()))
        if detector_node.type != node.type:
            return False

        profile = MATCH_PROFILES.get(node.type)
        optional = set(profile.optional) if profile else set()
        groups = profile.alternatives if profile else []
        grouped = {name for group in groups for name in group}

        for key, detector_value in detector_node.attributes.items():
            if key in self.ignored_attributes or key in grouped:
                continue
            # 未在规则中声明为可选的属性按必填处理
            is_required = key not in optional
            if not self.matches_value(detector_value, node.attributes.get(key), is_required):
                logger.debug("Attribute '%s' of node '%s' does not match detector value %r",
                             key, node.id, detector_value)
                return False

        for group in groups:
            if not self.matches_alternatives(detector_node, node, group):
                return False

        return True

    def matches_value(self, detector_value: Any, node_value: Any, required: bool = True) -> bool:
        """检测器的单个属性值与节点属性值是否兼容"""
        if detector_value is None:
            return True
        if detector_value == self.wildcard:
            return True
        if node_value is None:
            return not required

        if isinstance(detector_value, str):
            node_text = str(node_value).strip()
            if self.separator in detector_value:
                return any(option.strip() == node_text for option in detector_value.split(self.separator))
            return detector_value.strip() == node_text
        return detector_value == node_value

    def matches_alternatives(self, detector_node: Node, node: Node, group) -> bool:
        """
        互斥属性组：节点必须恰好设置组内一个属性，并与检测器同名属性匹配。
        检测器没有设置组内任何属性时不作约束。
        """
        if all(detector_node.attributes.get(name) is None for name in group):
            return True

        node_set = [name for name in group if node.attributes.get(name) is not None]
        if len(node_set) != 1:
            logger.debug("Node '%s' must set exactly one of %s, found %s", node.id, group, node_set)
            return False

        chosen = node_set[0]
        detector_value = detector_node.attributes.get(chosen)
        if detector_value is None:
            return False
        return self.matches_value(detector_value, node.attributes[chosen], required=True)

    def resolve(self, library: Iterable[ReplacementFragment], node: Node) -> Optional[ReplacementFragment]:
        """
        返回片段库中第一个匹配节点的片段，若没有则返回 None。
        """
        for fragment in library:
            if self.matches(fragment.detector, node):
                logger.debug("Node '%s' resolved to fragment '%s'", node.id, fragment.name)
                return fragment
        logger.info("No replacement fragment matches node '%s' (%s)", node.id, node.type)
        return None


_default_matcher = FragmentMatcher()


def matches(detector: ProcessGraph, node: Node) -> bool:
    return _default_matcher.matches(detector, node)


def resolve(library: Iterable[ReplacementFragment], node: Node) -> Optional[ReplacementFragment]:
    return _default_matcher.resolve(library, node)
