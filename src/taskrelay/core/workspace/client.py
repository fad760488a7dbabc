from __future__ import annotations

import logging
from typing import Any

from taskrelay.core.errors import WorkspaceError
from taskrelay.core.http.client import request_with_retry
from taskrelay.core.http.errors import UpstreamError, UpstreamStatusError

from .base import WorkspaceDocument
from .properties import page_title
from .render import blocks_to_markdown

logger = logging.getLogger(__name__)

MAX_APPEND_BATCH = 100
_PAGE_SIZE = 100


class NotionClient:
    """Thin wrapper over the Notion REST endpoints this service reads and writes."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.notion.com/v1",
        notion_version: str = "2022-06-28",
        render_max_depth: int = 3,
        timeout_s: float | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.notion_version = notion_version
        self.render_max_depth = render_max_depth
        self.timeout_s = timeout_s

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Notion-Version": self.notion_version,
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, object] | None = None,
        json: object | None = None,
    ) -> dict[str, Any]:
        if not self.api_key:
            raise WorkspaceError("NOTION_API_KEY is not configured")
        url = f"{self.base_url}{path}"
        try:
            response = request_with_retry(
                method,
                url,
                headers=self._headers(),
                params=params,
                json=json,
                timeout_override=self.timeout_s,
            )
        except UpstreamStatusError as exc:
            raise WorkspaceError(f"{method} {path} failed: {exc} {exc.body or ''}".strip(), status_code=exc.status_code) from exc
        except UpstreamError as exc:
            raise WorkspaceError(f"{method} {path} failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise WorkspaceError(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise WorkspaceError(f"{method} {path} returned unexpected payload")
        return payload

    def retrieve_page(self, page_id: str) -> dict[str, Any]:
        return self._request("GET", f"/pages/{page_id}")

    def list_children(self, block_id: str) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, object] = {"page_size": _PAGE_SIZE}
            if cursor:
                params["start_cursor"] = cursor
            data = self._request("GET", f"/blocks/{block_id}/children", params=params)
            results.extend(data.get("results") or [])
            cursor = data.get("next_cursor")
            if not data.get("has_more") or not cursor:
                return results

    def fetch_document(self, page_id: str) -> WorkspaceDocument:
        page = self.retrieve_page(page_id)
        blocks = self.list_children(page_id)
        content = blocks_to_markdown(blocks, self.list_children, max_depth=self.render_max_depth)
        logger.debug(
            "document_fetched",
            extra={"extra_fields": {"page_id": page_id, "blocks": len(blocks), "chars": len(content)}},
        )
        return WorkspaceDocument(id=page_id, title=page_title(page), content=content)

    def append_blocks(self, block_id: str, blocks: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if len(blocks) > MAX_APPEND_BATCH:
            raise ValueError(f"append batch of {len(blocks)} exceeds {MAX_APPEND_BATCH} blocks")
        data = self._request("PATCH", f"/blocks/{block_id}/children", json={"children": blocks})
        return list(data.get("results") or [])

    def update_page(self, page_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        return self._request("PATCH", f"/pages/{page_id}", json={"properties": properties})
