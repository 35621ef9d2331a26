from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class GitHubError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IssueTracker(Protocol):
    def issue_url(self, number: int) -> str: ...

    def iter_open_issues(
        self, labels: Sequence[str]
    ) -> AsyncIterator[Dict[str, Any]]: ...

    async def create_issue(
        self,
        *,
        title: str,
        body: str,
        labels: Sequence[str],
        assignees: Sequence[str],
    ) -> Dict[str, Any]: ...

    async def update_issue_state(
        self, number: int, *, state: str, state_reason: Optional[str] = None
    ) -> None: ...

    async def create_comment(self, number: int, body: str) -> None: ...

    async def ensure_label(self, name: str, color: str, description: str) -> bool: ...


class GitHubClient:
    def __init__(
        self,
        *,
        token: Optional[str],
        owner: str,
        repo: str,
        api_base: str = "https://api.github.com",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not token:
            raise ValueError("GitHub token is required")
        if not owner or not repo:
            raise ValueError("GitHub owner/repo is required (set GITHUB_REPOSITORY)")
        self.owner = owner
        self.repo = repo
        self.api_base = api_base.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.api_base,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": "redteam-agent",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def issue_url(self, number: int) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/issues/{number}"

    async def iter_open_issues(
        self,
        labels: Sequence[str],
        *,
        per_page: int = 100,
    ) -> AsyncIterator[Dict[str, Any]]:
        page = 1
        while True:
            resp = await self._client.get(
                f"{self._repo_path}/issues",
                params={
                    "state": "open",
                    "labels": ",".join(labels),
                    "per_page": per_page,
                    "page": page,
                },
            )
            _raise_for_status(resp, "list issues")
            items = resp.json()
            if not isinstance(items, list):
                logger.warning(
                    "Unexpected issue listing payload on page %d, stopping", page
                )
                return
            if not items:
                return

            for item in items:
                if not isinstance(item, dict):
                    continue
                # The issues endpoint also returns pull requests.
                if item.get("pull_request"):
                    continue
                yield item

            if len(items) < per_page:
                return
            page += 1

    async def create_issue(
        self,
        *,
        title: str,
        body: str,
        labels: Sequence[str],
        assignees: Sequence[str],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "title": title,
            "body": body,
            "labels": list(labels),
        }
        if assignees:
            payload["assignees"] = list(assignees)
        resp = await self._client.post(f"{self._repo_path}/issues", json=payload)
        _raise_for_status(resp, "create issue")
        data = resp.json()
        if not isinstance(data, dict) or not isinstance(data.get("number"), int):
            raise GitHubError("create issue returned an unexpected payload")
        return data

    async def update_issue_state(
        self,
        number: int,
        *,
        state: str,
        state_reason: Optional[str] = None,
    ) -> None:
        payload: Dict[str, Any] = {"state": state}
        if state_reason:
            payload["state_reason"] = state_reason
        resp = await self._client.patch(
            f"{self._repo_path}/issues/{number}", json=payload
        )
        _raise_for_status(resp, f"update issue #{number}")

    async def create_comment(self, number: int, body: str) -> None:
        resp = await self._client.post(
            f"{self._repo_path}/issues/{number}/comments", json={"body": body}
        )
        _raise_for_status(resp, f"comment on issue #{number}")

    async def ensure_label(self, name: str, color: str, description: str) -> bool:
        """Create the label if missing. Returns True when it was created."""
        resp = await self._client.get(f"{self._repo_path}/labels/{name}")
        if resp.status_code == 200:
            logger.debug("Label already exists: %s", name)
            return False
        if resp.status_code != 404:
            _raise_for_status(resp, f"get label {name}")

        resp = await self._client.post(
            f"{self._repo_path}/labels",
            json={"name": name, "color": color, "description": description},
        )
        # 422 means someone else created it between the GET and the POST.
        if resp.status_code == 422 and _is_already_exists(resp):
            return False
        _raise_for_status(resp, f"create label {name}")
        logger.info("Created label %s", name)
        return True


def _raise_for_status(resp: httpx.Response, action: str) -> None:
    if resp.is_success:
        return
    detail = resp.text[:200] if resp.text else ""
    raise GitHubError(
        f"GitHub {action} failed with HTTP {resp.status_code}: {detail}",
        status_code=resp.status_code,
    )


def _is_already_exists(resp: httpx.Response) -> bool:
    try:
        data = resp.json()
    except ValueError:
        return False
    if not isinstance(data, dict):
        return False
    errors: List[Any] = data.get("errors") or []
    return any(
        isinstance(err, dict) and err.get("code") == "already_exists"
        for err in errors
    )
