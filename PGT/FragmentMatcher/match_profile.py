from dataclasses import dataclass, field
from typing import Dict, List, Tuple

MATCH_PROFILES: Dict[str, "MatchProfile"] = {}


@dataclass(frozen=True)
class MatchProfile:
    """
    某种扩展任务类型的属性匹配规则

    参数说明：
        node_type (str): 扩展任务类型，如 'extension:quantum-circuit-execution-task'
        required (list of str): 必填属性；节点未设置时与检测器值不兼容（通配符除外）
        optional (list of str): 可选属性；节点未设置时视为兼容
        alternatives (list of tuple): 互斥属性组；节点必须恰好设置组内一个属性，
            且该属性与检测器同名属性的值匹配
    """
    node_type: str
    required: List[str] = field(default_factory=list)
    optional: List[str] = field(default_factory=list)
    alternatives: List[Tuple[str, ...]] = field(default_factory=list)


def register_match_profile(node_type: str, required=None, optional=None, alternatives=None) -> MatchProfile:
    """登记一条匹配规则到 MATCH_PROFILES，同一类型后登记的覆盖先登记的"""
    profile = MatchProfile(
        node_type=node_type,
        required=list(required) if required is not None else [],
        optional=list(optional) if optional is not None else [],
        alternatives=[tuple(group) for group in alternatives] if alternatives is not None else [],
    )
    MATCH_PROFILES[node_type] = profile
    return profile
