"""HTTP client for the Fizzrix API.

The data context talks to stores through this protocol-shaped surface:

    RemoteModuleStore   list / get / add / rename / update_data / remove
    RemoteSessionStore  list / list_by_module / get / create / update / rename /
                        duplicate / remove / set_items / set_locked /
                        ensure_default_for_module / remove_by_module

All methods are coroutines. A 404 on a read or single-record mutation comes
back as None (or False for deletes); every other failure is logged and
re-raised as RemoteStoreError so callers never assume the write landed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from fizzrix.models import CardRef, Category, Module, ModuleData, Session

logger = logging.getLogger(__name__)


class RemoteStoreError(Exception):
    """A request to the API failed (network, timeout, or rejected write)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ApiClient:
    """Thin async wrapper over httpx.AsyncClient.

    Args:
        base_url:  Server root, e.g. "http://localhost:13013".
        transport: Optional httpx transport (tests pass httpx.ASGITransport).
        timeout:   Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), transport=transport, timeout=timeout
        )

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        allow_404: bool = False,
    ) -> Any:
        url = f"/api{path}"
        try:
            resp = await self._client.request(method, url, json=json, params=params)
            if allow_404 and resp.status_code == 404:
                return None
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _detail(e.response)
            logger.warning(f"{method} {url} failed with {e.response.status_code}: {detail}")
            raise RemoteStoreError(detail, e.response.status_code) from e
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {url} timed out")
            raise RemoteStoreError("Request timed out") from e
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise RemoteStoreError(f"Cannot reach server: {e}") from e
        return resp.json()

    @property
    def modules(self) -> RemoteModuleStore:
        return RemoteModuleStore(self)

    @property
    def sessions(self) -> RemoteSessionStore:
        return RemoteSessionStore(self)


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)


class RemoteModuleStore:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def list(self) -> list[Module]:
        return [Module.model_validate(m) for m in await self._api.request("GET", "/modules")]

    async def get(self, module_id: str) -> Module | None:
        data = await self._api.request("GET", f"/modules/{module_id}", allow_404=True)
        return Module.model_validate(data) if data is not None else None

    async def add(self, name: str, category: Category = "one-shot") -> Module:
        data = await self._api.request("POST", "/modules", json={"name": name, "category": category})
        return Module.model_validate(data)

    async def rename(self, module_id: str, name: str) -> Module | None:
        data = await self._api.request(
            "PATCH", f"/modules/{module_id}", json={"name": name}, allow_404=True
        )
        return Module.model_validate(data) if data is not None else None

    async def update_data(
        self, module_id: str, updater: Callable[[ModuleData], ModuleData]
    ) -> Module | None:
        """Read the module, apply updater to its whole tree, write the tree back."""
        module = await self.get(module_id)
        if module is None:
            return None
        next_data = updater(module.data.model_copy(deep=True))
        if not isinstance(next_data, ModuleData):
            next_data = ModuleData.model_validate(next_data)
        data = await self._api.request(
            "PUT", f"/modules/{module_id}/data", json=next_data.model_dump(), allow_404=True
        )
        return Module.model_validate(data) if data is not None else None

    async def remove(self, module_id: str) -> bool:
        data = await self._api.request("DELETE", f"/modules/{module_id}", allow_404=True)
        return data is not None


class RemoteSessionStore:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    def _one(self, data: Any) -> Session | None:
        return Session.model_validate(data) if data is not None else None

    def _many(self, data: list[dict[str, Any]]) -> list[Session]:
        return [Session.model_validate(s) for s in data]

    async def list(self) -> list[Session]:
        return self._many(await self._api.request("GET", "/sessions"))

    async def list_by_module(self, module_id: str) -> list[Session]:
        return self._many(await self._api.request("GET", "/sessions", params={"module_id": module_id}))

    async def get(self, session_id: str) -> Session | None:
        return self._one(await self._api.request("GET", f"/sessions/{session_id}", allow_404=True))

    async def revision(self) -> int:
        return (await self._api.request("GET", "/sessions/revision"))["revision"]

    async def create(self, module_id: str, name: str = "Session 1") -> Session:
        data = await self._api.request("POST", "/sessions", json={"module_id": module_id, "name": name})
        return Session.model_validate(data)

    async def _patch(self, session_id: str, body: dict[str, Any]) -> Session | None:
        return self._one(
            await self._api.request("PATCH", f"/sessions/{session_id}", json=body, allow_404=True)
        )

    async def update(
        self,
        session_id: str,
        name: str | None = None,
        locked: bool | None = None,
        items: list[CardRef] | None = None,
    ) -> Session | None:
        """One PATCH carrying every given field; the server applies all or none."""
        body: dict[str, Any] = {}
        if name is not None:
            body["name"] = name
        if locked is not None:
            body["locked"] = locked
        if items is not None:
            body["items"] = [i.model_dump() for i in items]
        return await self._patch(session_id, body)

    async def rename(self, session_id: str, name: str) -> Session | None:
        return await self.update(session_id, name=name)

    async def set_locked(self, session_id: str, locked: bool) -> Session | None:
        return await self.update(session_id, locked=locked)

    async def set_items(self, session_id: str, items: list[CardRef]) -> Session | None:
        return await self.update(session_id, items=items)

    async def duplicate(self, session_id: str) -> Session | None:
        return self._one(
            await self._api.request("POST", f"/sessions/{session_id}/duplicate", allow_404=True)
        )

    async def remove(self, session_id: str) -> bool:
        data = await self._api.request("DELETE", f"/sessions/{session_id}", allow_404=True)
        return data is not None

    async def ensure_default_for_module(self, module_id: str) -> list[Session]:
        return self._many(
            await self._api.request("POST", f"/modules/{module_id}/sessions/ensure-default")
        )

    async def remove_by_module(self, module_id: str) -> int:
        return (await self._api.request("DELETE", f"/modules/{module_id}/sessions"))["removed"]
