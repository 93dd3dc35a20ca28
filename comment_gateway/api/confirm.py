"""Subscription confirmation endpoint, the target of confirmation email links."""

import logging

from fastapi import APIRouter, Query

from ..core.dependencies import ClientFactoryDep, SettingsDep
from ..core.errors import GatewayError
from ..schemas import GitService, RouteParameters
from ..services import SubmissionPipeline
from .responses import send_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions"])


@router.get("/confirm/{service}/{username}/{repository}/{branch}/{property}")
@router.get("/confirm/{service}/{username}/{repository}/{branch}")
async def confirm_subscription(
    service: GitService,
    username: str,
    repository: str,
    branch: str,
    settings: SettingsDep,
    factory: ClientFactoryDep,
    property: str = "",
    data: str = Query(default=""),
):
    """Subscribe the person who clicked a confirmation link."""
    pipeline = SubmissionPipeline(
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
    pipeline.set_config_path()

    try:
        confirmation = pipeline.redeem_confirmation(data)
    except GatewayError as e:
        logger.warning(f"Confirmation for {username}/{repository} rejected: {e.code}")
        return send_response(error=e)

    try:
        await pipeline.create_subscription(confirmation)
    except GatewayError as e:
        logger.error(f"Error subscribing to {confirmation.parent}: {e}")
        return send_response(error=e, redirect_error=confirmation.subscribe_confirm_redirect_error)

    return send_response(redirect=confirmation.subscribe_confirm_redirect)
