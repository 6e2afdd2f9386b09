"""
HTTP remote store for a PostgREST-style table API.

Selects are ``GET /<table>?organization=eq.X&period=eq.Y``; upserts are
``POST /<table>?on_conflict=...`` with ``Prefer: resolution=merge-duplicates``.
There is no push channel over plain HTTP, so clients of this store converge
through the periodic poll.
"""

from typing import Any, Dict, List, Optional

import httpx

from ..models.rows import RemoteRow, utc_now_iso
from ..utils.errors import RemoteReadError, RemoteWriteError
from ..utils.logging import get_logger, log_function_call
from .base import RemoteStore


logger = get_logger("debrief-sync.remote.postgrest")

UNIQUE_COLUMNS = "organization,period,area_id,category_id"


class PostgrestRemoteStore(RemoteStore):
    """Remote store talking to a PostgREST endpoint with httpx."""

    supports_push = False

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        table: str = "reviews",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the store.

        Args:
            base_url: REST root, e.g. https://<project>/rest/v1
            api_key: Key sent as both ``apikey`` and bearer token
            table: Table name
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self.table = table
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    @log_function_call(logger)
    async def upsert(self, row: RemoteRow) -> RemoteRow:
        row.updated_at = row.updated_at or utc_now_iso()
        try:
            response = await self._client.post(
                f"/{self.table}",
                params={"on_conflict": UNIQUE_COLUMNS},
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
                json=[row.to_dict()],
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RemoteWriteError(f"upsert failed: {e}", cause=e) from e
        return row

    @log_function_call(logger)
    async def select_scope(self, organization: str, period: str) -> List[RemoteRow]:
        try:
            response = await self._client.get(
                f"/{self.table}",
                params={
                    "select": "*",
                    "organization": f"eq.{organization}",
                    "period": f"eq.{period}",
                },
            )
            response.raise_for_status()
            payload: Any = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RemoteReadError(f"select failed: {e}", cause=e) from e

        if not isinstance(payload, list):
            raise RemoteReadError("select returned a non-list payload")
        return [RemoteRow.from_dict(item) for item in payload if isinstance(item, dict)]

    async def delete(self, organization: str, period: str, area_id: str, category_id: str) -> bool:
        filters: Dict[str, str] = {
            "organization": f"eq.{organization}",
            "period": f"eq.{period}",
            "area_id": f"eq.{area_id}",
            "category_id": f"eq.{category_id}",
        }
        try:
            response = await self._client.delete(
                f"/{self.table}",
                params=filters,
                headers={"Prefer": "return=representation"},
            )
            response.raise_for_status()
            removed = response.json() if response.content else []
        except (httpx.HTTPError, ValueError) as e:
            raise RemoteWriteError(f"delete failed: {e}", cause=e) from e
        return bool(removed)
