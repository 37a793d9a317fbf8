__version__ = "0.1.0"

from evm_lp_paths.core import (
    BaseAdapter,
    ErrorCode,
    LpPolicy,
    Pool,
    Position,
    ScoredPool,
)

__all__ = [
    "__version__",
    "BaseAdapter",
    "ErrorCode",
    "LpPolicy",
    "Pool",
    "Position",
    "ScoredPool",
]
