import httpx
import json
import logging
from typing import Dict, Any, List, Optional

from chore_rotation.config import (
    FAMILY_API_BASE_URL,
    FAMILY_API_KEY,
    FAMILY_API_KEY_HEADER,
    FAMILY_API_KEY_PREFIX,
    FAMILY_API_TIMEOUT_SECONDS,
)
from chore_rotation.core.errors import DataLoaderError
from chore_rotation.models.chore import Chore, CompletionRecord
from chore_rotation.models.member import Member

logger = logging.getLogger(__name__)


class DataLoader:
    """
    Read-only fetcher for the family backend. Implements the MemberDirectory,
    ChoreStore and CompletionHistoryStore contracts over its REST API and
    validates every payload into the local models.
    """

    def __init__(
        self,
        base_url: str = FAMILY_API_BASE_URL,
        incoming_headers: dict | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = FAMILY_API_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

        # Normalize incoming headers
        self.incoming_headers = {}
        if incoming_headers:
            for k, v in incoming_headers.items():
                if k.lower() == "authorization":
                    self.incoming_headers["Authorization"] = v
                elif k.lower() == "cookie":
                    self.incoming_headers["Cookie"] = v
                else:
                    self.incoming_headers[k] = v

    # 🔹 Common function to build headers (merging env + incoming)
    def _build_headers(self) -> Dict[str, str]:
        headers = dict(self.incoming_headers)

        if FAMILY_API_KEY and "Authorization" not in headers:
            headers[FAMILY_API_KEY_HEADER] = f"{FAMILY_API_KEY_PREFIX}{FAMILY_API_KEY}"

        return headers

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("[DATA LOADER] GET %s params=%s", url, params)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                res = await client.get(url, params=params, headers=self._build_headers())
                res.raise_for_status()
                data = res.json()
                if isinstance(data, str):
                    data = json.loads(data)
        except httpx.HTTPError as e:
            raise DataLoaderError(f"Request to {url} failed: {e}") from e
        except json.JSONDecodeError as e:
            raise DataLoaderError(f"Response from {url} is not JSON") from e
        return data

    @staticmethod
    def _extract_list(data: Any, key: str) -> List[Dict[str, Any]]:
        """Accepts a bare list, {key: [...]} or {"data": [...]}."""
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            if isinstance(data.get(key), list):
                return data[key]
            if isinstance(data.get("data"), list):
                return data["data"]
        raise DataLoaderError(f"Unexpected response structure for {key}: {type(data).__name__}")

    async def get_members(self, family_id: str) -> List[Member]:
        data = await self._get(f"/families/{family_id}/members")
        try:
            members = [Member(**m) for m in self._extract_list(data, "members")]
        except (TypeError, ValueError) as e:
            raise DataLoaderError(f"Invalid member payload for family {family_id}: {e}") from e
        logger.info("[DATA LOADER] %d members loaded for family %s", len(members), family_id)
        return members

    async def get_member(self, member_id: str) -> Optional[Member]:
        try:
            data = await self._get(f"/members/{member_id}")
        except DataLoaderError as e:
            cause = e.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code == 404:
                return None
            raise
        payload = data.get("member", data) if isinstance(data, dict) else data
        try:
            return Member(**payload)
        except (TypeError, ValueError) as e:
            raise DataLoaderError(f"Invalid member payload for {member_id}: {e}") from e

    async def get_open_chores(self, family_id: str) -> List[Chore]:
        data = await self._get(f"/families/{family_id}/chores", params={"status": "open"})
        try:
            chores = [Chore(**c) for c in self._extract_list(data, "chores")]
        except (TypeError, ValueError) as e:
            raise DataLoaderError(f"Invalid chore payload for family {family_id}: {e}") from e
        # The backend may ignore the status filter
        open_chores = [c for c in chores if c.status == "open"]
        logger.info("[DATA LOADER] %d open chores loaded for family %s", len(open_chores), family_id)
        return open_chores

    async def get_chore(self, chore_id: str) -> Optional[Chore]:
        try:
            data = await self._get(f"/chores/{chore_id}")
        except DataLoaderError as e:
            cause = e.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code == 404:
                return None
            raise
        payload = data.get("chore", data) if isinstance(data, dict) else data
        try:
            return Chore(**payload)
        except (TypeError, ValueError) as e:
            raise DataLoaderError(f"Invalid chore payload for {chore_id}: {e}") from e

    async def get_completion_records(self, family_id: str, days: int) -> List[CompletionRecord]:
        data = await self._get(f"/families/{family_id}/completions", params={"days": days})
        try:
            records = [CompletionRecord(**r) for r in self._extract_list(data, "records")]
        except (TypeError, ValueError) as e:
            raise DataLoaderError(f"Invalid completion payload for family {family_id}: {e}") from e
        logger.info("[DATA LOADER] %d completion records (last %d days) for family %s", len(records), days, family_id)
        return records
