"""GitLab hosting client.

See: https://docs.gitlab.com/ee/api/repository_files.html
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from .hosting import RestHostingClient

logger = logging.getLogger(__name__)


class GitLabClient(RestHostingClient):
    """Reads and writes files in one GitLab project via the v4 API."""

    service = "gitlab"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        username: str,
        repository: str,
        branch: str | None = None,
        token: str | None = None,
        base_url: str = "https://gitlab.com",
        oauth: bool = False,
    ):
        headers: dict[str, str] = {}
        if token:
            if oauth:
                headers["Authorization"] = f"Bearer {token}"
            else:
                headers["PRIVATE-TOKEN"] = token
        super().__init__(http_client, f"{base_url.rstrip('/')}/api/v4", username, repository, branch, headers)

    @property
    def _project_path(self) -> str:
        return f"/projects/{quote(f'{self.username}/{self.repository}', safe='')}"

    def _file_path(self, path: str) -> str:
        return f"{self._project_path}/repository/files/{quote(path, safe='')}"

    async def read_file(self, path: str) -> Any:
        response = await self._request(
            "GET",
            f"{self._file_path(path)}/raw",
            params={"ref": self.branch or "HEAD"},
        )
        return self.parse_file(path, response.text)

    async def write_file(self, path: str, content: str, branch: str, message: str) -> Any:
        response = await self._request(
            "POST",
            self._file_path(path),
            json={"branch": branch, "content": content, "commit_message": message},
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
        """Create a branch, commit the file there and open a merge request.

        GitLab removes the source branch itself once the request is merged.
        """
        await self._request(
            "POST",
            f"{self._project_path}/repository/branches",
            params={"branch": new_branch, "ref": self.branch},
        )
        await self.write_file(path, content, new_branch, message)

        response = await self._request(
            "POST",
            f"{self._project_path}/merge_requests",
            json={
                "title": message,
                "description": review_body,
                "source_branch": new_branch,
                "target_branch": self.branch,
                "remove_source_branch": True,
            },
        )
        merge_request = response.json()
        logger.info(f"Opened merge request !{merge_request.get('iid')} on {self.username}/{self.repository}")
        return merge_request

    async def delete_branch(self, name: str) -> None:
        await self._delete_branch_request(
            "DELETE",
            f"{self._project_path}/repository/branches/{quote(name, safe='')}",
            name,
        )

    async def get_current_user(self) -> dict[str, Any]:
        response = await self._request("GET", "/user")
        return response.json()
