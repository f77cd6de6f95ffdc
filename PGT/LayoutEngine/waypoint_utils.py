"""
边拐点后处理工具 | Waypoint post-processing helpers

所有函数都是纯函数：输入拐点列表，返回新的列表，不修改参数。
"""
from typing import List, Optional, Tuple

from ..core.process_graph import Bounds

Waypoint = Tuple[float, float]

LABEL_MARGIN = 10


def remove_duplicate_waypoints(waypoints: List[Waypoint]) -> List[Waypoint]:
    """
    删除与后一个拐点坐标完全相同的拐点，直到没有可删除的为止。
    对结果再次调用不会产生变化。
    """
    if len(waypoints) < 2:
        return list(waypoints)

    cleaned = [
        current for current, following in zip(waypoints, waypoints[1:])
        if current != following
    ]
    cleaned.append(waypoints[-1])

    if len(cleaned) != len(waypoints):
        return remove_duplicate_waypoints(cleaned)
    return cleaned


def move_to_middle_of_side(waypoint: Waypoint, bounds: Bounds) -> Waypoint:
    """若拐点位于形状某条边上，则移动到该边的中点；否则保持不变。"""
    x, y = waypoint
    if x == bounds.x or x == bounds.x + bounds.width:
        y = bounds.y + bounds.height / 2
    if y == bounds.y or y == bounds.y + bounds.height:
        x = bounds.x + bounds.width / 2
    return (x, y)


def adapt_gateway_waypoints(
    waypoints: List[Waypoint],
    source: Bounds,
    target: Bounds,
    source_is_gateway: bool,
    target_is_gateway: bool,
) -> List[Waypoint]:
    """网关的连接点必须位于菱形某条边的中点"""
    result = list(waypoints)
    if not result:
        return result
    if source_is_gateway:
        result[0] = move_to_middle_of_side(result[0], source)
    if target_is_gateway:
        result[-1] = move_to_middle_of_side(result[-1], target)
    return result


def corner_waypoints(waypoints: List[Waypoint], source: Bounds, target: Bounds) -> List[Waypoint]:
    """
    将恰好 3 个拐点的斜线边改为直角边：
    目标在源上方时先水平后竖直的拐点取 (wp2.x, wp0.y)，否则取 (wp0.x, wp2.y)。
    """
    if len(waypoints) != 3:
        return list(waypoints)
    first, _, last = waypoints
    if target.y < source.y:
        bend = (last[0], first[1])
    else:
        bend = (first[0], last[1])
    return [first, bend, last]


def label_position(waypoints: List[Waypoint], label: Bounds, margin: float = LABEL_MARGIN) -> Optional[Waypoint]:
    """
    计算单个标签在边中间线段旁的新左上角坐标：
      竖直线段 -> 线段左侧
      水平线段 -> 线段上方
      斜线段   -> 中点上方
    """
    if len(waypoints) < 2:
        return None
    middle = (len(waypoints) + 1) // 2
    (x1, y1), (x2, y2) = waypoints[middle - 1], waypoints[middle]

    if x1 == x2:
        return (x1 - margin - label.width, (y1 + y2) / 2)
    if y1 == y2:
        return ((x1 + x2) / 2, y1 - margin - label.height)
    return ((x1 + x2) / 2, (y1 + y2) / 2 - margin - label.height)


def snap_to_border(waypoint: Waypoint, bounds: Bounds) -> Waypoint:
    """将拐点投影到形状最近的一条边上（布局器给出的端点只是近似落在边框上）"""
    left, top = bounds.x, bounds.y
    right, bottom = bounds.x + bounds.width, bounds.y + bounds.height
    x = min(max(waypoint[0], left), right)
    y = min(max(waypoint[1], top), bottom)

    distances = [(x - left, "left"), (right - x, "right"), (y - top, "top"), (bottom - y, "bottom")]
    _, side = min(distances, key=lambda item: item[0])
    if side == "left":
        return (left, y)
    if side == "right":
        return (right, y)
    if side == "top":
        return (x, top)
    return (x, bottom)
