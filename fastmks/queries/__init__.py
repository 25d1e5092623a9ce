from .candidates import CandidateList, CandidateTable
from .dual_tree import dual_tree_search
from .naive import naive_search
from .single_tree import single_tree_search
from .stats import TraversalStats

__all__ = [
    "CandidateList",
    "CandidateTable",
    "TraversalStats",
    "dual_tree_search",
    "naive_search",
    "single_tree_search",
]
