"""GitHub hosting client.

See: https://docs.github.com/en/rest/repos/contents
"""

import base64
import logging
from typing import Any
from urllib.parse import quote

import httpx

from .hosting import RestHostingClient

logger = logging.getLogger(__name__)


class GitHubClient(RestHostingClient):
    """Reads and writes files in one GitHub repository via the REST API."""

    service = "github"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        username: str,
        repository: str,
        branch: str | None = None,
        token: str | None = None,
        base_url: str = "https://api.github.com",
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        super().__init__(http_client, base_url, username, repository, branch, headers)

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.username}/{self.repository}"

    async def read_file(self, path: str) -> Any:
        params = {"ref": self.branch} if self.branch else None
        response = await self._request(
            "GET",
            f"{self._repo_path}/contents/{quote(path)}",
            params=params,
        )
        content = base64.b64decode(response.json().get("content", "")).decode()
        return self.parse_file(path, content)

    async def write_file(self, path: str, content: str, branch: str, message: str) -> Any:
        response = await self._request(
            "PUT",
            f"{self._repo_path}/contents/{quote(path)}",
            json={
                "message": message,
                "content": base64.b64encode(content.encode()).decode(),
                "branch": branch,
            },
        )
        return response.json()

    async def write_file_and_open_review(
        self,
        path: str,
        content: str,
        new_branch: str,
        message: str,
        review_body: str,
    ) -> Any:
        """Branch off the target branch, commit the file there and open a pull request."""
        ref = await self._request("GET", f"{self._repo_path}/git/ref/heads/{self.branch}")
        base_sha = ref.json()["object"]["sha"]

        await self._request(
            "POST",
            f"{self._repo_path}/git/refs",
            json={"ref": f"refs/heads/{new_branch}", "sha": base_sha},
        )
        await self.write_file(path, content, new_branch, message)

        response = await self._request(
            "POST",
            f"{self._repo_path}/pulls",
            json={
                "title": message,
                "body": review_body,
                "head": new_branch,
                "base": self.branch,
            },
        )
        pull = response.json()
        logger.info(f"Opened pull request #{pull.get('number')} on {self.username}/{self.repository}")
        return pull

    async def delete_branch(self, name: str) -> None:
        await self._delete_branch_request("DELETE", f"{self._repo_path}/git/refs/heads/{name}", name)

    async def get_current_user(self) -> dict[str, Any]:
        response = await self._request("GET", "/user")
        user = response.json()
        user.setdefault("username", user.get("login"))
        return user
