"""Default transformers from vendor records to catalog entities.

Deployments usually replace these with their own via ``registry.KindOverrides``;
they exist so a bare configuration still produces a usable catalog.
"""

from __future__ import annotations

import re

from catalog_ingestion.annotations import deep_merge
from catalog_ingestion.model import Entity, entity_ref, make_entity

_INVALID_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")
MAX_NAME_LENGTH = 63


def sanitize_name(value: str) -> str:
    """Fit a vendor value into the catalog's ``[A-Za-z0-9_.-]{1,63}`` names."""
    name = _INVALID_NAME_CHARS.sub("-", value.strip())
    name = name.strip("-_.")[:MAX_NAME_LENGTH].rstrip("-_.")
    if not name:
        raise ValueError(f"Cannot derive an entity name from {value!r}")
    return name


def rds_instance_to_resource(db: dict) -> Entity:
    labels = {}
    if db.get("Engine"):
        labels["engine"] = sanitize_name(db["Engine"])
    return make_entity(
        "Resource",
        sanitize_name(db["DBInstanceIdentifier"]),
        spec={"type": "rds-instance", "owner": "unknown"},
        labels=labels,
    )


def _okta_user_name(user: dict) -> str:
    login = (user.get("profile") or {}).get("login") or user["id"]
    return sanitize_name(login.split("@", 1)[0])


def _email_name(email: str) -> str:
    return sanitize_name(email.split("@", 1)[0])


def okta_user_to_user(user: dict) -> Entity:
    profile = user.get("profile") or {}
    spec_profile = {}
    display_name = profile.get("displayName") or " ".join(
        p for p in (profile.get("firstName"), profile.get("lastName")) if p
    )
    if display_name:
        spec_profile["displayName"] = display_name
    if profile.get("email"):
        spec_profile["email"] = profile["email"]
    return make_entity(
        "User",
        _okta_user_name(user),
        spec={"profile": spec_profile, "memberOf": []},
    )


def okta_group_to_group(group: dict) -> Entity:
    profile = group.get("profile") or {}
    spec = {"type": group.get("type") or "OKTA_GROUP", "children": []}
    if profile.get("description"):
        spec["profile"] = {"displayName": profile.get("name"), "description": profile["description"]}
    if "members" in group:
        spec["members"] = [_okta_user_name(u) for u in group["members"]]
    return make_entity("Group", sanitize_name(profile.get("name") or group["id"]), spec=spec)


def google_user_to_user(user: dict) -> Entity:
    name = user.get("name") or {}
    spec_profile = {"email": user["primaryEmail"]}
    if name.get("fullName"):
        spec_profile["displayName"] = name["fullName"]
    return make_entity(
        "User",
        _email_name(user["primaryEmail"]),
        spec={"profile": spec_profile, "memberOf": []},
    )


def google_group_to_group(group: dict) -> Entity:
    spec = {"type": "google-group", "children": [], "profile": {"email": group["email"]}}
    if group.get("name"):
        spec["profile"]["displayName"] = group["name"]
    if "members" in group:
        # nested groups become children; customer-wide members have no email
        spec["members"] = [_email_name(m["email"]) for m in group["members"] if m.get("type") == "USER"]
        spec["children"] = [_email_name(m["email"]) for m in group["members"] if m.get("type") == "GROUP"]
    return make_entity("Group", _email_name(group["email"]), spec=spec)


def link_memberships(entities: dict[str, list[Entity]]) -> dict[str, list[Entity]]:
    """Default hook for directory kinds: fill each user's ``memberOf``.

    Uses the ``spec.members`` names the group transformers emit, so only
    groups fetched in the same cycle are linked. Returns new user entities;
    groups are left as they are.
    """
    if "users" not in entities:
        return {}
    member_of: dict[str, list[str]] = {}
    for group in entities.get("groups", []):
        ref = entity_ref(group)
        for member in (group.get("spec") or {}).get("members", []):
            member_of.setdefault(member, []).append(ref)

    users = []
    for user in entities["users"]:
        groups = member_of.get(user["metadata"]["name"])
        if groups:
            user = deep_merge(user, {"spec": {"memberOf": groups}})
        users.append(user)
    return {"users": users}
