from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel


class WorkspaceDocument(BaseModel):
    id: str
    title: str
    content: str


class WorkspaceConnector(Protocol):
    def retrieve_page(self, page_id: str) -> dict[str, Any]: ...

    def fetch_document(self, page_id: str) -> WorkspaceDocument: ...

    def append_blocks(self, block_id: str, blocks: list[dict[str, Any]]) -> list[dict[str, Any]]: ...

    def update_page(self, page_id: str, properties: dict[str, Any]) -> dict[str, Any]: ...
