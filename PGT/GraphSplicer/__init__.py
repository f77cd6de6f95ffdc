from .graph_splicer import GraphSplicer, SpliceResult

__all__ = ["GraphSplicer", "SpliceResult"]
