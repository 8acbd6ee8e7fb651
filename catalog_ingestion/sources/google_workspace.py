"""Google Workspace source: users and groups via the Admin SDK Directory API."""

from __future__ import annotations

import logging
from typing import Any, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from catalog_ingestion.annotations import GOOGLE_EMAIL_ANNOTATION, GOOGLE_ID_ANNOTATION
from catalog_ingestion.config import ProviderConfig
from catalog_ingestion.errors import FetchError
from catalog_ingestion.pagination import Deadline, rate_limit_sleep

logger = logging.getLogger("ingestion.google_workspace")

DIRECTORY_URL = "https://admin.googleapis.com/admin/directory/v1"
MAX_RETRIES = 5

SCOPES = [
    "https://www.googleapis.com/auth/admin.directory.user.readonly",
    "https://www.googleapis.com/auth/admin.directory.group.readonly",
    "https://www.googleapis.com/auth/admin.directory.group.member.readonly",
]


def build_directory_service(config: ProviderConfig) -> Any:
    sa_key_file = (config.credentials or {}).get("sa_key_file")
    if sa_key_file:
        # Local dev / explicit service account key file
        creds = service_account.Credentials.from_service_account_file(sa_key_file, scopes=SCOPES)
    else:
        # Cloud Run / Workload Identity: use Application Default Credentials
        import google.auth
        creds, _ = google.auth.default(scopes=SCOPES)

    creds = creds.with_subject(config.options["admin_email"])
    return build("admin", "directory_v1", credentials=creds, cache_discovery=False)


def list_directory(
    collection: Any,
    result_key: str,
    deadline: Optional[Deadline] = None,
    **params: Any,
) -> list[dict]:
    """Walk ``collection.list`` / ``collection.list_next`` in order.

    ``collection`` is e.g. ``service.users()``; the page token lives inside
    the previous request, so pages can only be fetched sequentially.
    """
    items: list[dict] = []
    request = collection.list(**params)
    attempt = 0
    while request is not None:
        if deadline is not None:
            deadline.check(f"google workspace {result_key}")
        try:
            response = request.execute()
        except HttpError as e:
            if e.resp.status == 429 and attempt < MAX_RETRIES:
                rate_limit_sleep(attempt, deadline=deadline)
                attempt += 1
                continue
            raise FetchError(f"Listing Google Workspace {result_key} failed: {e}") from e
        except Exception as exc:
            raise FetchError(f"Listing Google Workspace {result_key} failed: {exc}") from exc
        attempt = 0
        items.extend(response.get(result_key, []))
        request = collection.list_next(request, response)
    return items


class GoogleWorkspaceUserSource:
    vendor_annotation = None

    def __init__(self, service: Any, customer_id: str) -> None:
        self._service = service
        self._customer_id = customer_id

    def fetch_instances(self, deadline: Optional[Deadline] = None) -> list[dict]:
        logger.info("Fetching Google Workspace users")
        return list_directory(
            self._service.users(),
            "users",
            deadline,
            customer=self._customer_id,
            maxResults=500,
            orderBy="email",
            projection="full",
        )

    def identify(self, user: dict) -> str:
        return f"url:{DIRECTORY_URL}/users/{user['id']}"

    def extra_annotations(self, user: dict) -> dict[str, str]:
        annotations = {GOOGLE_ID_ANNOTATION: user["id"]}
        if user.get("primaryEmail"):
            annotations[GOOGLE_EMAIL_ANNOTATION] = user["primaryEmail"]
        return annotations


class GoogleWorkspaceGroupSource:
    """Directory groups; with ``include_members`` each group also carries its ``members``."""

    vendor_annotation = None

    def __init__(self, service: Any, customer_id: str, include_members: bool = False) -> None:
        self._service = service
        self._customer_id = customer_id
        self._include_members = include_members

    def fetch_instances(self, deadline: Optional[Deadline] = None) -> list[dict]:
        logger.info("Fetching Google Workspace groups")
        groups = list_directory(
            self._service.groups(),
            "groups",
            deadline,
            customer=self._customer_id,
            maxResults=200,
        )
        if not self._include_members:
            return groups
        return [
            {
                **group,
                "members": list_directory(
                    self._service.members(), "members", deadline, groupKey=group["id"], maxResults=200
                ),
            }
            for group in groups
        ]

    def identify(self, group: dict) -> str:
        return f"url:{DIRECTORY_URL}/groups/{group['id']}"

    def extra_annotations(self, group: dict) -> dict[str, str]:
        annotations = {GOOGLE_ID_ANNOTATION: group["id"]}
        if group.get("email"):
            annotations[GOOGLE_EMAIL_ANNOTATION] = group["email"]
        return annotations
