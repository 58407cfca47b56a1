"""Supabase Management API 客户端。

每次调用都通过 TokenManager 取得有效的 access token。
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

import httpx

from edgefn.auth.tokens import TokenManager
from edgefn.core.config import DEFAULT_API_BASE_URL
from edgefn.errors import ManagementApiError
from edgefn.version import USER_AGENT

logger = logging.getLogger(__name__)


def project_placeholder(project_id: str) -> str:
    return f"<project not found for: {project_id}>"


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return None


class ManagementClient:
    """Supabase Management API（/v1）的最小封装。"""

    def __init__(
        self,
        token_manager: TokenManager,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token_manager = token_manager
        self.base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._transport = transport

    def _client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/v1",
            timeout=self._timeout_s,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {access_token}",
                "User-Agent": USER_AGENT,
            },
        )

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        *,
        ok: Callable[[httpx.Response], bool] = lambda r: r.is_success,
        **kwargs: Any,
    ) -> httpx.Response:
        access_token = await self.token_manager.ensure_valid_access_token()
        async with self._client(access_token) as client:
            response = await client.request(method, path, **kwargs)
        if not ok(response):
            detail = _error_message(response)
            message = f"Failed to {action}: {response.reason_phrase} ({response.status_code})"
            if detail:
                message += f": {detail}"
            raise ManagementApiError(message, status_code=response.status_code)
        return response

    async def get_projects(self) -> list[dict[str, Any]]:
        response = await self._request("GET", "/projects", "list projects")
        return response.json() or []

    async def get_project_name(self, project_id: str) -> str:
        """获取项目显示名称（尽力而为）。

        任何失败或项目不存在时返回占位文本，不抛出异常。
        """
        try:
            projects = await self.get_projects()
        except Exception as exc:
            logger.warning("Could not resolve Supabase project name for %s: %s", project_id, exc)
            return project_placeholder(project_id)
        for project in projects:
            if project.get("id") == project_id and project.get("name"):
                return str(project["name"])
        return project_placeholder(project_id)

    async def list_branches(self, project_id: str) -> list[dict[str, Any]]:
        logger.info("Listing Supabase branches for project: %s", project_id)
        response = await self._request(
            "GET",
            f"/projects/{project_id}/branches",
            "list branches",
            ok=lambda r: r.status_code == 200,
        )
        return response.json()

    async def run_query(self, project_id: str, query: str) -> str:
        """执行 SQL 并返回 JSON 文本。"""
        response = await self._request(
            "POST",
            f"/projects/{project_id}/database/query",
            "run query",
            json={"query": query},
        )
        return json.dumps(response.json())

    async def delete_function(self, project_id: str, function_name: str) -> None:
        logger.info("Deleting Supabase function: %s from project: %s", function_name, project_id)
        await self._request(
            "DELETE",
            f"/projects/{project_id}/functions/{function_name}",
            "delete function",
        )
        logger.info("Deleted Supabase function: %s from project: %s", function_name, project_id)
