"""Shaping results for the calling site: a JSON body or a redirect.

Forms posted straight from a static page usually pass `options[redirect]`
and `options[redirectError]` so the visitor lands back on the site; AJAX
callers get JSON.
"""

from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

from fastapi import status
from fastapi.responses import JSONResponse, RedirectResponse, Response

from ..core.errors import GatewayError
from ..schemas import EntryResponse, SecondaryErrors


def _secondary_query(secondary_errors: SecondaryErrors) -> str:
    flags = secondary_errors.model_dump(by_alias=True)
    return urlencode({key: str(value).lower() for key, value in flags.items()})


def send_response(
    fields: dict[str, Any] | None = None,
    secondary_errors: SecondaryErrors | None = None,
    error: BaseException | None = None,
    redirect: str | None = None,
    redirect_error: str | None = None,
) -> Response:
    if error is None and redirect:
        if secondary_errors is not None:
            parts = urlsplit(redirect)
            redirect = urlunsplit(parts._replace(query=_secondary_query(secondary_errors)))
        return RedirectResponse(redirect, status_code=status.HTTP_302_FOUND)

    if error is not None and redirect_error:
        return RedirectResponse(redirect_error, status_code=status.HTTP_302_FOUND)

    if isinstance(error, GatewayError):
        body = EntryResponse(
            success=False,
            error_code=error.code,
            message=error.message,
            data=error.data,
            raw_error=error.to_dict(),
        )
        status_code = error.status_code
    elif error is not None:
        body = EntryResponse(success=False, raw_error=str(error))
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        body = EntryResponse(
            success=True,
            fields=fields,
            secondary_errors=secondary_errors.model_dump(by_alias=True) if secondary_errors else None,
        )
        status_code = status.HTTP_200_OK

    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
