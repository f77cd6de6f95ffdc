# 导出匹配相关组件
from .match_profile import MATCH_PROFILES, MatchProfile, register_match_profile
from .fragment_library import FragmentLibrary, ReplacementFragment
from .fragment_matcher import FragmentMatcher, matches, resolve

__all__ = [
    "MATCH_PROFILES",
    "MatchProfile",
    "register_match_profile",
    "FragmentLibrary",
    "ReplacementFragment",
    "FragmentMatcher",
    "matches",
    "resolve",
]
