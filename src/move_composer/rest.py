"""
Read-only fullnode REST client.

Implements the ABI and balance ports over the node's REST API. Module ABIs are
fetched once per module and shared by every function and struct lookup in it.
There is no retry layer; the httpx timeout is the only bound on a request.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from move_composer.compose.abi import struct_id_of
from move_composer.compose.types import FunctionId, FunctionSignature
from move_composer.constants import (
    DEFAULT_NODE_URL,
    FUNGIBLE_METADATA_TYPE,
    PRIMARY_STORE_BALANCE_FUNCTION,
    REQUEST_TIMEOUT_SECONDS,
)
from move_composer.env import Settings
from move_composer.errors import AbiFetchError, NodeRequestError
from move_composer.interfaces import AbiFetcher, BalanceReader
from move_composer.utils import parse_u256

logger = logging.getLogger(__name__)


def _body_prefix(r: httpx.Response) -> str:
    t = r.text.replace("\n", " ").replace("\r", " ")
    return t[:400]


class AptosRestClient(AbiFetcher, BalanceReader):
    def __init__(
        self,
        base_url: str = DEFAULT_NODE_URL,
        *,
        api_key: str | None = None,
        timeout_s: float = REQUEST_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers
        # A caller-supplied client is left unmodified and open.
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout_s)
        self._modules: dict[str, dict[str, Any] | None] = {}

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> AptosRestClient:
        return cls(settings.node_url, api_key=settings.api_key, timeout_s=settings.timeout_s, client=client)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> AptosRestClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    async def get_module_abi(self, address: str, module: str) -> dict[str, Any] | None:
        """Return the module's ABI, or None when the module does not exist."""
        key = f"{address}::{module}"
        if key in self._modules:
            return self._modules[key]

        url = f"{self.base_url}/accounts/{address}/module/{module}"
        try:
            r = await self._client.get(url, headers=self._headers)
        except httpx.TimeoutException as e:
            logger.error(f"ABI request timed out: url={url}")
            raise AbiFetchError(url, f"timeout: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"ABI request failed: url={url}, error={e}")
            raise AbiFetchError(url, f"request error: {e}") from e

        if r.status_code == 404:
            logger.debug(f"Module not found: {key}")
            self._modules[key] = None
            return None
        if r.status_code != 200:
            logger.error(f"ABI request failed: status={r.status_code}, url={url}")
            raise AbiFetchError(url, f"HTTP {r.status_code}: {_body_prefix(r)}", status_code=r.status_code)

        try:
            body = r.json()
        except ValueError as e:
            raise AbiFetchError(url, f"invalid JSON: {e}", status_code=r.status_code) from e
        abi = body.get("abi") if isinstance(body, dict) else None
        self._modules[key] = abi if isinstance(abi, dict) else None
        return self._modules[key]

    async def fetch_function(self, function_id: FunctionId) -> FunctionSignature | None:
        abi = await self.get_module_abi(function_id.address, function_id.module)
        if abi is None:
            return None
        for fn in abi.get("exposed_functions") or []:
            if isinstance(fn, dict) and fn.get("name") == function_id.function:
                return FunctionSignature.from_abi(fn)
        return None

    async def fetch_struct_abilities(self, struct_id: str) -> frozenset[str] | None:
        base = struct_id_of(struct_id)
        if base is None:
            return None
        address, module, name = base.split("::")
        abi = await self.get_module_abi(address, module)
        if abi is None:
            return None
        for s in abi.get("structs") or []:
            if isinstance(s, dict) and s.get("name") == name:
                return frozenset(a for a in s.get("abilities") or [] if isinstance(a, str))
        return None

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def view(self, function: str, type_arguments: list[str], arguments: list[Any]) -> list[Any]:
        url = f"{self.base_url}/view"
        payload = {"function": function, "type_arguments": type_arguments, "arguments": arguments}
        try:
            r = await self._client.post(url, json=payload, headers=self._headers)
        except httpx.TimeoutException as e:
            logger.error(f"View request timed out: url={url}, function={function}")
            raise NodeRequestError(url, f"timeout: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"View request failed: url={url}, error={e}")
            raise NodeRequestError(url, f"request error: {e}") from e

        if r.status_code != 200:
            logger.error(f"View request failed: status={r.status_code}, function={function}")
            raise NodeRequestError(url, f"HTTP {r.status_code}: {_body_prefix(r)}", status_code=r.status_code)
        try:
            body = r.json()
        except ValueError as e:
            raise NodeRequestError(url, f"invalid JSON: {e}", status_code=r.status_code) from e
        if not isinstance(body, list):
            raise NodeRequestError(url, f"expected a list, got {type(body).__name__}", status_code=r.status_code)
        return body

    async def fetch_balance(self, owner: str, metadata: str) -> int:
        result = await self.view(PRIMARY_STORE_BALANCE_FUNCTION, [FUNGIBLE_METADATA_TYPE], [owner, metadata])
        if not result:
            return 0
        return parse_u256(result[0], name="balance")
