"""Encryption endpoint.

Site owners use it to encrypt secrets (Mailgun API keys, reCAPTCHA secrets,
OAuth tokens) before putting them in their public site config.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from ..core.dependencies import ClientFactoryDep
from ..core.errors import GatewayError
from .responses import send_response

router = APIRouter(tags=["encryption"])


@router.get("/encrypt/{text}")
async def encrypt(text: str, factory: ClientFactoryDep):
    try:
        return PlainTextResponse(factory.authenticator.encrypt_text(text))
    except GatewayError as e:
        return send_response(error=e)
