from .layout_engine import LayoutEngine, layout, parse_spline
from .waypoint_utils import (
    adapt_gateway_waypoints,
    corner_waypoints,
    label_position,
    remove_duplicate_waypoints,
    snap_to_border,
)

__all__ = [
    "LayoutEngine",
    "layout",
    "parse_spline",
    "adapt_gateway_waypoints",
    "corner_waypoints",
    "label_position",
    "remove_duplicate_waypoints",
    "snap_to_border",
]
