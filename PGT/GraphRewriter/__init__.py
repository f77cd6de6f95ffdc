from .graph_rewriter import CoalescingNodeSpec, GraphRewriter, RewriteResult, rewrite

__all__ = ["CoalescingNodeSpec", "GraphRewriter", "RewriteResult", "rewrite"]
