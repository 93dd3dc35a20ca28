"""Webhook endpoint for pull/merge request events from GitHub and GitLab."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Header, Request, status
from fastapi.responses import JSONResponse

from ..core.dependencies import ClientFactoryDep, SettingsDep
from ..schemas import GitService, RouteParameters, WebhookEvent
from ..services import WebhookMergeCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/webhook/{service}/{username}/{repository}/{branch}/{property}")
@router.post("/webhook/{service}/{username}/{repository}/{branch}")
async def handle_webhook(
    service: GitService,
    username: str,
    repository: str,
    branch: str,
    request: Request,
    settings: SettingsDep,
    factory: ClientFactoryDep,
    property: str = "",
    x_github_event: Annotated[str | None, Header()] = None,
    x_hub_signature: Annotated[str | None, Header()] = None,
    x_gitlab_event: Annotated[str | None, Header()] = None,
    x_gitlab_token: Annotated[str | None, Header()] = None,
):
    """
    Handle a merge event: notify subscribers of the merged entry.

    Irrelevant events are acknowledged with success, since providers send
    every event to every hook.
    """
    # Raw body for signature verification
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body) if raw_body else {}
    except ValueError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"errors": ["Malformed webhook payload"]},
        )

    if service == GitService.GITHUB:
        event_name, signature = x_github_event, x_hub_signature
    else:
        event_name, signature = x_gitlab_event, x_gitlab_token

    coordinator = WebhookMergeCoordinator(
        settings,
        factory,
        RouteParameters(
            service=service,
            username=username,
            repository=repository,
            branch=branch,
            property=property,
        ),
    )
    outcome = await coordinator.handle(
        WebhookEvent(
            service=service,
            event=event_name,
            signature=signature,
            raw_body=raw_body,
            payload=payload if isinstance(payload, dict) else {},
        )
    )

    if outcome.errors:
        logger.warning(f"Webhook for {username}/{repository} failed: {outcome.errors}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"errors": outcome.errors})
    return {"success": True}
