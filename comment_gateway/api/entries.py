"""Entry submission endpoint."""

import logging
import re
from typing import Any

from fastapi import APIRouter, Request

from ..core.dependencies import ClientFactoryDep, SettingsDep
from ..core.errors import FieldValidationError, GatewayError
from ..schemas import GitService, RequestMetadata, RouteParameters, SubmissionRequest
from ..services import SubmissionPipeline
from .responses import send_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["entries"])

_BRACKET_KEY_RE = re.compile(r"\[([^\]]*)\]")


# =============================================================================
# REQUEST PARSING
# =============================================================================


def parse_bracketed_form(items: list[tuple[str, Any]]) -> dict[str, Any]:
    """
    Nest url-encoded keys such as `fields[name]` and `options[reCaptcha][siteKey]`.

    Static forms cannot post JSON, so nested keys are spelled with brackets.
    """
    result: dict[str, Any] = {}
    for key, value in items:
        head, _, rest = key.partition("[")
        path = [head, *_BRACKET_KEY_RE.findall("[" + rest)] if rest else [head]
        target = result
        for part in path[:-1]:
            nested = target.get(part)
            if not isinstance(nested, dict):
                nested = {}
                target[part] = nested
            target = nested
        target[path[-1]] = value
    return result


async def read_submission(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as e:
            raise FieldValidationError("INVALID_FIELDS", data={"body": "malformed JSON"}, cause=e) from e
        return body if isinstance(body, dict) else {}

    form = await request.form()
    return parse_bracketed_form(list(form.multi_items()))


def request_metadata(request: Request) -> RequestMetadata:
    forwarded_for = request.headers.get("x-forwarded-for")
    ip = forwarded_for.split(",")[0].strip() if forwarded_for else None
    if ip is None and request.client is not None:
        ip = request.client.host
    return RequestMetadata(
        ip=ip,
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
    )


# =============================================================================
# ROUTES
# =============================================================================


@router.post("/entry/{service}/{username}/{repository}/{branch}/{property}")
@router.post("/entry/{service}/{username}/{repository}/{branch}")
async def create_entry(
    service: GitService,
    username: str,
    repository: str,
    branch: str,
    request: Request,
    settings: SettingsDep,
    factory: ClientFactoryDep,
    property: str = "",
):
    """
    Submit an entry (e.g. a comment) to a site.

    Accepts JSON or url-encoded `fields[...]` and `options[...]`, plus an
    optional `g-recaptcha-response`.
    """
    body: dict[str, Any] = {}
    options: dict[str, Any] = {}
    try:
        body = await read_submission(request)
        options = body.get("options") if isinstance(body.get("options"), dict) else {}
        fields = body.get("fields")
        if not isinstance(fields, dict):
            raise FieldValidationError("MISSING_REQUIRED_FIELDS", data=["fields"])

        metadata = request_metadata(request)
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
            metadata,
        )
        pipeline.set_config_path()

        await pipeline.check_recaptcha(options, body.get("g-recaptcha-response"), metadata.ip)
        result = await pipeline.process_entry(SubmissionRequest(fields=fields, options=options))
    except GatewayError as e:
        logger.warning(f"Entry for {username}/{repository} rejected: {e.code}")
        return send_response(
            error=e,
            redirect=options.get("redirect"),
            redirect_error=options.get("redirectError"),
        )

    return send_response(
        fields=result.fields,
        secondary_errors=result.secondary_errors,
        redirect=result.redirect,
    )
