from evm_lp_paths.core.constants.contracts import ZERO_ADDRESS

__all__ = ["ZERO_ADDRESS"]
