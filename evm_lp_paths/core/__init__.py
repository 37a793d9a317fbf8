from evm_lp_paths.core.adapters.BaseAdapter import BaseAdapter
from evm_lp_paths.core.adapters.models import ErrorCode, Pool, Position, ScoredPool
from evm_lp_paths.core.config import LpPolicy

__all__ = [
    "BaseAdapter",
    "ErrorCode",
    "LpPolicy",
    "Pool",
    "Position",
    "ScoredPool",
]
