"""Zendesk Support and Help Center API client."""

from typing import Any, Optional

import httpx

from teledesk.logging_config import get_logger

logger = get_logger("zendesk_service")


class TicketBackendError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ZendeskService:
    def __init__(self, api_url: str, email: str, api_token: str, timeout: float = 10.0):
        self.api_url = api_url.rstrip("/")
        self.auth = httpx.BasicAuth(f"{email}/token", api_token)
        self.timeout = timeout

    def agent_ticket_url(self, ticket_id: int) -> str:
        base = self.api_url
        if base.endswith("/api/v2"):
            base = base[: -len("/api/v2")]
        return f"{base}/agent/tickets/{ticket_id}"

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        url = f"{self.api_url}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, auth=self.auth) as client:
                response = await client.request(method, url, json=json, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Zendesk request failed",
                extra={"context": {"path": path, "status": e.response.status_code}},
            )
            raise TicketBackendError(f"Zendesk {method} {path} failed", e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Zendesk request error", extra={"context": {"path": path, "error": str(e)}})
            raise TicketBackendError(f"Zendesk {method} {path} failed: {e}") from e

    # Tickets

    async def create_ticket(
        self,
        subject: str,
        body: str,
        requester_name: str,
        requester_email: str,
        priority: str,
        tags: list[str],
    ) -> dict[str, Any]:
        payload = {
            "ticket": {
                "subject": subject,
                "comment": {"body": body},
                "requester": {"name": requester_name, "email": requester_email},
                "priority": priority,
                "tags": tags,
            }
        }
        data = await self._request("POST", "tickets.json", json=payload)
        return _ticket_from(data)

    async def add_comment(self, ticket_id: int, body: str, public: bool = True) -> dict[str, Any]:
        payload = {"ticket": {"comment": {"body": body, "public": public}}}
        data = await self._request("PUT", f"tickets/{ticket_id}.json", json=payload)
        return _ticket_from(data)

    async def get_ticket(self, ticket_id: int) -> dict[str, Any]:
        data = await self._request("GET", f"tickets/{ticket_id}.json")
        return _ticket_from(data)

    async def search_tickets(self, query: str) -> list[dict[str, Any]]:
        data = await self._request(
            "GET", "search.json", params={"query": query, "sort_by": "updated_at", "sort_order": "desc"}
        )
        return data.get("results") or []

    async def update_status(self, ticket_id: int, status: str, comment: Optional[str] = None) -> dict[str, Any]:
        ticket: dict[str, Any] = {"status": status}
        if comment:
            ticket["comment"] = {"body": comment, "public": False}
        data = await self._request("PUT", f"tickets/{ticket_id}.json", json={"ticket": ticket})
        return _ticket_from(data)

    # Help Center

    async def list_categories(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "help_center/categories.json")
        return data.get("categories") or []

    async def list_category_articles(self, category_id: int) -> list[dict[str, Any]]:
        data = await self._request("GET", f"help_center/categories/{category_id}/articles.json")
        return data.get("articles") or []

    async def search_articles(self, query: str) -> list[dict[str, Any]]:
        data = await self._request("GET", "help_center/articles/search.json", params={"query": query})
        return data.get("results") or []


def _ticket_from(data: dict[str, Any]) -> dict[str, Any]:
    ticket = data.get("ticket")
    if not isinstance(ticket, dict) or "id" not in ticket:
        raise TicketBackendError("Zendesk response did not contain a ticket")
    return ticket
