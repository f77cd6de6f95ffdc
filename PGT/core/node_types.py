# 流程图元素类型 | Process graph element types

ACTIVITY = "activity"
SERVICE_TASK = "service-task"
SCRIPT_TASK = "script-task"
EXCLUSIVE_GATEWAY = "gateway-exclusive"
START_EVENT = "start-event"
END_EVENT = "end-event"
BOUNDARY_EVENT = "boundary-event"
SUBGRAPH = "subgraph"
TEXT_ANNOTATION = "text-annotation"

# === 扩展任务类型（需要被替换片段替换）===
EXTENSION_PREFIX = "extension:"
QUANTUM_COMPUTATION_TASK = EXTENSION_PREFIX + "quantum-computation-task"
QUANTUM_CIRCUIT_LOADING_TASK = EXTENSION_PREFIX + "quantum-circuit-loading-task"
DATA_PREPARATION_TASK = EXTENSION_PREFIX + "data-preparation-task"
ORACLE_EXPANSION_TASK = EXTENSION_PREFIX + "oracle-expansion-task"
QUANTUM_CIRCUIT_EXECUTION_TASK = EXTENSION_PREFIX + "quantum-circuit-execution-task"
READOUT_ERROR_MITIGATION_TASK = EXTENSION_PREFIX + "readout-error-mitigation-task"

EXTENSION_TYPES = (
    QUANTUM_COMPUTATION_TASK,
    QUANTUM_CIRCUIT_LOADING_TASK,
    DATA_PREPARATION_TASK,
    ORACLE_EXPANSION_TASK,
    QUANTUM_CIRCUIT_EXECUTION_TASK,
    READOUT_ERROR_MITIGATION_TASK,
)

NODE_TYPES = frozenset((
    ACTIVITY,
    SERVICE_TASK,
    SCRIPT_TASK,
    EXCLUSIVE_GATEWAY,
    START_EVENT,
    END_EVENT,
    BOUNDARY_EVENT,
    SUBGRAPH,
    TEXT_ANNOTATION,
) + EXTENSION_TYPES)

# 边类型 | edge kinds
SEQUENCE_FLOW = "sequence-flow"
ASSOCIATION = "association"

EDGE_KINDS = frozenset((SEQUENCE_FLOW, ASSOCIATION))

# 默认尺寸（与常见建模工具一致）
DEFAULT_SIZES = {
    EXCLUSIVE_GATEWAY: (50, 50),
    START_EVENT: (36, 36),
    END_EVENT: (36, 36),
    BOUNDARY_EVENT: (36, 36),
    SUBGRAPH: (350, 200),
    TEXT_ANNOTATION: (100, 30),
}
DEFAULT_TASK_SIZE = (100, 80)


def is_extension(node_type: str) -> bool:
    return node_type.startswith(EXTENSION_PREFIX)


def is_gateway(node_type: str) -> bool:
    return node_type.startswith("gateway-")


def is_artifact(node_type: str) -> bool:
    """游离装饰元素（注释），替换时最后插入"""
    return node_type == TEXT_ANNOTATION


def default_size(node_type: str):
    return DEFAULT_SIZES.get(node_type, DEFAULT_TASK_SIZE)
