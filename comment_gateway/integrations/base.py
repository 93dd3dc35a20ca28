"""Interfaces of the external collaborators the services depend on.

Every concrete client translates transport failures into the errors below at
the boundary, so services only ever see "returned" or "raised GatewayError".
"""

from typing import Any, Protocol

import httpx

from ..core.errors import TransportError


class MailAgentError(TransportError):
    """The mailing-list provider rejected a call or could not be reached."""

    default_code = "ERROR_PROCESSING_ENTRY"

    def __init__(
        self,
        upstream_status: int | None = None,
        data: Any = None,
        cause: BaseException | None = None,
    ):
        self.upstream_status = upstream_status
        super().__init__(data=data, cause=cause)


class BranchNotFoundError(TransportError):
    """The branch to delete does not exist (usually: already deleted)."""


class MailAgent(Protocol):
    domain: str

    async def get_list(self, address: str) -> dict[str, Any] | None: ...

    async def create_list(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def add_member(self, list_address: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def list_members(self, list_address: str) -> dict[str, Any]: ...

    async def get_member(self, list_address: str, member_address: str) -> dict[str, Any]: ...

    async def send_message(self, payload: dict[str, Any]) -> dict[str, Any]: ...


class HostingClient(Protocol):
    async def read_file(self, path: str) -> Any: ...

    async def write_file(self, path: str, content: str, branch: str, message: str) -> Any: ...

    async def write_file_and_open_review(
        self,
        path: str,
        content: str,
        new_branch: str,
        message: str,
        review_body: str,
    ) -> Any: ...

    async def delete_branch(self, name: str) -> None: ...

    async def get_current_user(self) -> dict[str, Any]: ...


class SpamChecker(Protocol):
    async def check_spam(self, fields: dict[str, Any], metadata: dict[str, Any]) -> bool: ...


class CaptchaVerifier(Protocol):
    async def verify(self, secret: str, response: str, remote_ip: str | None = None) -> bool: ...


def response_detail(response: httpx.Response) -> Any:
    """Best-effort body of an error response, for diagnostics."""
    try:
        return response.json()
    except ValueError:
        return response.text[:500]
