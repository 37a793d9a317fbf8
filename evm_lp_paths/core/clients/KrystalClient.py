from __future__ import annotations

from typing import Any

from evm_lp_paths.core.clients.HttpClient import HttpClient
from evm_lp_paths.core.config import get_krystal_api_key, get_krystal_base_url


class KrystalClient(HttpClient):
    """Krystal Cloud API: CL pool listings and wallet positions.

    Base URL and API key are read from config on every request so a config
    loaded after import still applies.
    """

    def __init__(self, *, base_url: str | None = None) -> None:
        super().__init__()
        self._base_url = base_url

    @property
    def base_url(self) -> str:
        return (self._base_url or get_krystal_base_url()).rstrip("/")

    def _auth_headers(self) -> dict[str, str]:
        api_key = get_krystal_api_key()
        return {"KC-APIKey": api_key} if api_key else {}

    async def get_pools(
        self, *, chain_id: int, offset: int = 0, limit: int = 200
    ) -> list[dict[str, Any]]:
        """One page of pools for ``chain_id``, sorted by the API's default ranking."""
        resp = await self._request(
            "GET",
            f"{self.base_url}/v1/pools",
            params={
                "sortBy": "0",
                "limit": str(int(limit)),
                "chainId": str(int(chain_id)),
                "offset": str(int(offset)),
            },
        )
        data = resp.json()
        if isinstance(data, dict):
            pools = data.get("pools")
        else:
            pools = data
        if not isinstance(pools, list):
            return []
        return [p for p in pools if isinstance(p, dict)]

    async def get_positions(self, wallet: str) -> list[dict[str, Any]]:
        resp = await self._request(
            "GET", f"{self.base_url}/v1/positions", params={"wallet": wallet}
        )
        data = resp.json()
        if isinstance(data, dict):
            positions = data.get("positions")
        else:
            positions = data
        if not isinstance(positions, list):
            return []
        return [p for p in positions if isinstance(p, dict)]


KRYSTAL_CLIENT = KrystalClient()
