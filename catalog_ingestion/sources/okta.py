"""Okta source: users and groups from the Okta management API.

Pages are linked through the ``Link: <...>; rel="next"`` response header, so
the cursor is simply the next page URL.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import requests

from catalog_ingestion.annotations import OKTA_EMAIL_ANNOTATION, OKTA_ID_ANNOTATION
from catalog_ingestion.config import ProviderConfig
from catalog_ingestion.errors import FetchError
from catalog_ingestion.pagination import Deadline, collect_pages, rate_limit_sleep

logger = logging.getLogger("ingestion.okta")

PAGE_LIMIT = 200


class OktaClient:
    """Thin wrapper around a requests session authenticated with an SSWS token."""

    def __init__(
        self,
        org_url: str,
        api_token: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.base_url = org_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._sleep = sleep
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"SSWS {api_token}",
            "Accept": "application/json",
        })

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "OktaClient":
        return cls(config.endpoint, (config.credentials or {})["api_token"])

    def resource_url(self, resource: str, resource_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/api/v1/{resource}"
        return f"{url}/{resource_id}" if resource_id else url

    def list_all(
        self,
        resource: str,
        params: Optional[dict[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> list[dict]:
        first_params = {"limit": PAGE_LIMIT, **(params or {})}

        def fetch_page(cursor: Optional[str]) -> tuple[list[dict], Optional[str]]:
            if cursor is None:
                response = self._get(self.resource_url(resource), first_params, deadline)
            else:
                # the next link already carries the query string
                response = self._get(cursor, None, deadline)
            body = response.json()
            if not isinstance(body, list):
                raise FetchError(f"Unexpected Okta response for {resource}: {type(body).__name__}")
            return body, response.links.get("next", {}).get("url")

        return collect_pages(fetch_page, what=f"okta {resource}", deadline=deadline)

    def _get(
        self,
        url: str,
        params: Optional[dict[str, Any]],
        deadline: Optional[Deadline],
    ) -> requests.Response:
        for attempt in range(self.max_retries + 1):
            response = self._session.get(url, params=params, timeout=self.timeout)
            if response.status_code != 429 or attempt == self.max_retries:
                break
            rate_limit_sleep(attempt, self._reset_delay(response), deadline, self._sleep)
        response.raise_for_status()
        return response

    @staticmethod
    def _reset_delay(response: requests.Response) -> float:
        """Seconds until the X-Rate-Limit-Reset epoch, at least one."""
        reset = response.headers.get("X-Rate-Limit-Reset")
        try:
            return max(float(reset) - time.time(), 1.0)
        except (TypeError, ValueError):
            return 1.0


class OktaUserSource:
    vendor_annotation = None

    def __init__(self, client: OktaClient, params: Optional[dict[str, Any]] = None) -> None:
        self._client = client
        self._params = params or {}

    def fetch_instances(self, deadline: Optional[Deadline] = None) -> list[dict]:
        logger.info("Fetching Okta users from %s", self._client.base_url)
        return self._client.list_all("users", self._params, deadline)

    def identify(self, user: dict) -> str:
        return f"url:{self._client.resource_url('users', user['id'])}"

    def extra_annotations(self, user: dict) -> dict[str, str]:
        annotations = {OKTA_ID_ANNOTATION: user["id"]}
        # the annotation the Okta sign-in resolver matches users on
        email = (user.get("profile") or {}).get("email")
        if email:
            annotations[OKTA_EMAIL_ANNOTATION] = email
        return annotations


class OktaGroupSource:
    """Okta groups; with ``include_members`` each group also carries its ``members`` users."""

    vendor_annotation = None

    def __init__(
        self,
        client: OktaClient,
        params: Optional[dict[str, Any]] = None,
        include_members: bool = False,
    ) -> None:
        self._client = client
        self._params = params or {}
        self._include_members = include_members

    def fetch_instances(self, deadline: Optional[Deadline] = None) -> list[dict]:
        logger.info("Fetching Okta groups from %s", self._client.base_url)
        groups = self._client.list_all("groups", self._params, deadline)
        if not self._include_members:
            return groups
        return [
            {**group, "members": self._client.list_all(f"groups/{group['id']}/users", None, deadline)}
            for group in groups
        ]

    def identify(self, group: dict) -> str:
        return f"url:{self._client.resource_url('groups', group['id'])}"

    def extra_annotations(self, group: dict) -> dict[str, str]:
        return {OKTA_ID_ANNOTATION: group["id"]}
