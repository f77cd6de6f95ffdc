from .candidate import Candidate
from .candidate_detector import CandidateDetector, find_candidates

__all__ = ["Candidate", "CandidateDetector", "find_candidates"]
