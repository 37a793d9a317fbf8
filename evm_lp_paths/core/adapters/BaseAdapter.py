from __future__ import annotations

import time
from abc import ABC
from typing import Any

from loguru import logger

from evm_lp_paths.core.config import LpPolicy, get_lp_policy, is_dry_run

DRY_RUN_PREFIX = "dry-evm-lp-"


def dry_run_marker() -> str:
    return f"{DRY_RUN_PREFIX}{int(time.time() * 1000)}"


class BaseAdapter(ABC):
    adapter_type: str | None = None

    def __init__(
        self,
        name: str,
        config: dict[str, Any] | None = None,
        *,
        policy: LpPolicy | None = None,
    ):
        self.name = name
        self.config = config or {}
        self.policy = policy or get_lp_policy()
        self.logger = logger.bind(adapter=self.__class__.__name__)

    @property
    def dry_run(self) -> bool:
        """Per-adapter ``dry_run`` overrides the global flag."""
        value = self.config.get("dry_run")
        if value is None:
            return is_dry_run()
        return bool(value)

    async def close(self) -> None:
        pass
