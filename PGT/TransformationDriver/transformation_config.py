import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..core import node_types as nt

NESTED_SECTIONS = ("layout", "matching")

DEFAULT_LAYOUT = {
    "rank_sep": 50,
    "node_sep": 50,
    "boundary_event_margin": 10,
    "label_margin": 10,
    "subgraph_padding": 30,
}

DEFAULT_MATCHING = {
    "wildcard": "*",
    "separator": ",",
    "ignored_attributes": ["name"],
}


@dataclass
class TransformationConfig:
    """
    转换配置中心 | Transformation configuration

    用途 | Purpose:
        集中管理循环检测、合并节点、片段匹配与布局的可配置参数：
        - 核心参数（入口网关类型、必须包含的任务类型、合并节点）
        - 嵌套配置节 layout / matching，按键深度合并到默认值上
        - 字典 / JSON 文件加载

    示例 | Example:
        >>> config = TransformationConfig.from_dict({
        ...     "must_have_b": ["script-task"],
        ...     "layout": {"rank_sep": 80},
        ... })
        >>> config.get("layout", "node_sep")
        50
    """

    # === 核心参数 ===
    entry_gateway_type: str = nt.EXCLUSIVE_GATEWAY
    """循环入口/出口网关的类型"""

    must_have_a: List[str] = field(default_factory=lambda: [nt.QUANTUM_CIRCUIT_EXECUTION_TASK])
    """候选必须至少包含其中一种类型（为空则不约束）"""

    must_have_b: List[str] = field(default_factory=lambda: [nt.SERVICE_TASK, nt.SCRIPT_TASK])
    """候选必须至少包含其中一种类型（为空则不约束）"""

    coalescing_node_type: str = nt.SERVICE_TASK
    coalescing_node_name: str = "Invoke Hybrid Program"

    render_candidate_images: bool = False
    """detect 时是否为每个候选生成 PNG 预览（base64）"""

    # === 模块化配置（嵌套字典）===
    layout: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_LAYOUT))
    """
    布局配置

    可用键 | Available Keys:
        rank_sep: 相邻层之间的水平间距
        node_sep: 同层节点之间的竖直间距
        boundary_event_margin: 同一宿主上相邻边界事件的间距
        label_margin: 标签与边的距离
        subgraph_padding: 子图边框与内部节点的距离
    """

    matching: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_MATCHING))
    """
    片段匹配配置

    可用键 | Available Keys:
        wildcard: 检测器中匹配任意值的通配符
        separator: 检测器中多个候选值的分隔符
        ignored_attributes: 匹配时忽略的检测器属性（如名称）
    """

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "TransformationConfig":
        """
        从字典创建配置实例

        注意 | Note:
            - 嵌套配置节按键合并到默认值上，不会覆盖整个 section
            - 未知键会被忽略
        """
        core_fields = {
            k: v for k, v in config.items()
            if k in cls.__dataclass_fields__ and k not in NESTED_SECTIONS
        }
        defaults = {"layout": DEFAULT_LAYOUT, "matching": DEFAULT_MATCHING}

        result = {**core_fields}
        for section in NESTED_SECTIONS:
            if section in config:
                result[section] = {
                    **defaults[section],
                    **{k: v for k, v in config[section].items() if k in defaults[section]},
                }
        return cls(**result)

    @classmethod
    def from_json_file(cls, path: str) -> "TransformationConfig":
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """安全获取嵌套配置值，section/key 不存在时返回 default"""
        section_data = getattr(self, section, None)
        if isinstance(section_data, dict):
            return section_data.get(key, default)
        return default

    def to_dict(self, include_defaults: bool = False) -> Dict[str, Any]:
        """
        序列化为字典；include_defaults=False 时只输出与默认值不同的项
        """
        result = {}
        reference = TransformationConfig()
        for field_name in _core_fields():
            value = getattr(self, field_name)
            if include_defaults or value != getattr(reference, field_name):
                result[field_name] = value

        for section in NESTED_SECTIONS:
            section_data = getattr(self, section)
            if include_defaults or section_data != getattr(reference, section):
                result[section] = dict(section_data)
        return result

    def validate(self) -> None:
        """检查取值范围，非法时抛出 ValueError"""
        if self.entry_gateway_type not in nt.NODE_TYPES:
            raise ValueError(f"Unknown entry_gateway_type: {self.entry_gateway_type}")
        if self.coalescing_node_type not in nt.NODE_TYPES:
            raise ValueError(f"Unknown coalescing_node_type: {self.coalescing_node_type}")
        for name in ("must_have_a", "must_have_b"):
            unknown = [t for t in getattr(self, name) if t not in nt.NODE_TYPES]
            if unknown:
                raise ValueError(f"Unknown node types in {name}: {unknown}")
        for key, value in self.layout.items():
            if not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"layout.{key} must be a non-negative number, got {value!r}")
        if not self.matching.get("separator"):
            raise ValueError("matching.separator must not be empty")


def _core_fields() -> List[str]:
    return [
        name for name in TransformationConfig.__dataclass_fields__
        if name not in NESTED_SECTIONS
    ]
