import io
import logging
from typing import Tuple

from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure
from matplotlib.patches import Circle, Polygon, Rectangle

from .CandidateDetector.candidate import Candidate
from .core import node_types as nt
from .core.process_graph import ProcessGraph

logger = logging.getLogger(__name__)

DEFAULT_VIEW_BOX = (0.0, 0.0, 1000.0, 1000.0)


def calculate_view_box(graph: ProcessGraph, candidate: Candidate, margin: float = 10) -> Tuple[float, float, float, float]:
    """
    计算只包含候选元素的可视区域 (x, y, width, height)。

    取候选节点边框、边拐点和边标签的最小/最大坐标，四周留出 margin；
    没有任何几何信息时返回 (0, 0, 1000, 1000)。
    """
    xs, ys = [], []
    for node in candidate.contained_nodes(graph):
        b = node.bounds
        xs += [b.x, b.x + b.width]
        ys += [b.y, b.y + b.height]
    for edge in candidate.contained_edges(graph):
        for x, y in edge.waypoints:
            xs.append(x)
            ys.append(y)
        if edge.label is not None:
            xs += [edge.label.x, edge.label.x + edge.label.width]
            ys += [edge.label.y, edge.label.y + edge.label.height]

    if not xs:
        return DEFAULT_VIEW_BOX

    min_x, min_y = min(xs) - margin, min(ys) - margin
    return (min_x, min_y, max(xs) + margin - min_x, max(ys) + margin - min_y)


def render_candidate(graph: ProcessGraph, candidate: Candidate, margin: float = 10, dpi: int = 100) -> bytes:
    """
    将候选中的节点和边绘制为 PNG 图片并返回其字节内容。
    网关画为菱形，事件画为圆，其余节点画为矩形；y 轴向下，与图坐标一致。
    """
    x, y, width, height = calculate_view_box(graph, candidate, margin)

    fig = Figure(figsize=(max(width, 1) / dpi, max(height, 1) / dpi), dpi=dpi)
    canvas = FigureCanvasAgg(fig)
    ax = fig.add_axes([0, 0, 1, 1])
    ax.set_xlim(x, x + width)
    ax.set_ylim(y + height, y)
    ax.set_aspect("equal")
    ax.axis("off")

    # 画边
    for edge in candidate.contained_edges(graph):
        if len(edge.waypoints) < 2:
            continue
        xs = [p[0] for p in edge.waypoints]
        ys = [p[1] for p in edge.waypoints]
        ax.plot(xs, ys, color="black", linewidth=1)
        (x1, y1), (x2, y2) = edge.waypoints[-2], edge.waypoints[-1]
        ax.annotate("", xy=(x2, y2), xytext=(x1, y1),
                    arrowprops=dict(arrowstyle="-|>", color="black", lw=1))
        if edge.expression and edge.label is not None:
            ax.text(edge.label.x, edge.label.y, edge.expression, fontsize=6, va="top")

    # 画节点
    for node in candidate.contained_nodes(graph):
        b = node.bounds
        cx, cy = b.center
        if nt.is_gateway(node.type):
            patch = Polygon(
                [(cx, b.y), (b.x + b.width, cy), (cx, b.y + b.height), (b.x, cy)],
                closed=True, facecolor="white", edgecolor="black",
            )
        elif node.type in (nt.START_EVENT, nt.END_EVENT, nt.BOUNDARY_EVENT):
            patch = Circle((cx, cy), radius=min(b.width, b.height) / 2, facecolor="white", edgecolor="black")
        else:
            patch = Rectangle((b.x, b.y), b.width, b.height, facecolor="white", edgecolor="black")
        ax.add_patch(patch)
        if node.name:
            ax.text(cx, cy, node.name, fontsize=6, ha="center", va="center", wrap=True)

    buffer = io.BytesIO()
    canvas.print_png(buffer)
    logger.debug("Rendered candidate '%s' (%d elements)", candidate.entry_id, len(candidate.contained_elements))
    return buffer.getvalue()
