from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field
from starlette.concurrency import run_in_threadpool

from . import deps
from .auth import require_api_token

router = APIRouter()


class AskRequest(BaseModel):
    page_url: str = Field(default="", validation_alias=AliasChoices("page_url", "pageUrl"))
    question: str = ""
    related_page_urls: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("related_page_urls", "relatedPageUrls"),
    )


@router.post("", dependencies=[Depends(require_api_token)])
async def ask(request: AskRequest) -> dict[str, object]:
    service = deps.build_analysis_service()
    return await run_in_threadpool(service.ask, request.page_url, request.question, request.related_page_urls)
