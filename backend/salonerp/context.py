# Overview: Explicit per-request actor and location-access context.

"""
Request context threaded through route handlers and services.

The upstream auth layer identifies the user and forwards identity in
request headers:

- X-User-Id:        opaque user identifier
- X-User-Name:      display name recorded as the actor in history/audit rows
- X-User-Role:      role label (informational)
- X-User-Locations: comma-separated location ids, or "all"

Services never read headers or globals; they receive a RequestContext.
A request without identity headers runs as the system actor with access
to every location.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .validation import LocationAccessError, ValidationError


SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class RequestContext:
    user_id: Optional[str] = None
    actor_name: str = SYSTEM_ACTOR
    role: Optional[str] = None
    # None means unrestricted
    location_ids: Optional[frozenset[int]] = None

    @property
    def is_restricted(self) -> bool:
        return self.location_ids is not None

    def can_access(self, location_id: Optional[int]) -> bool:
        if location_id is None or self.location_ids is None:
            return True
        return location_id in self.location_ids

    def require_access(self, location_id: Optional[int]) -> None:
        if not self.can_access(location_id):
            raise LocationAccessError(f"No access to location {location_id}")

    def filter_by_location(self, query, column):
        """Restrict a query to the locations this context may see."""
        if self.location_ids is None:
            return query
        return query.filter(column.in_(sorted(self.location_ids)))

    def as_actor(self, actor_name: str) -> "RequestContext":
        return RequestContext(
            user_id=self.user_id,
            actor_name=actor_name,
            role=self.role,
            location_ids=self.location_ids,
        )


SYSTEM_CONTEXT = RequestContext()


def parse_location_ids(raw: Optional[str]) -> Optional[frozenset[int]]:
    if raw is None:
        return None
    raw = raw.strip()
    if not raw or raw.lower() == "all":
        return None
    ids: set[int] = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise ValidationError("X-User-Locations must be 'all' or a list of location ids")
        ids.add(int(part))
    return frozenset(ids)


def context_from_headers(headers) -> RequestContext:
    user_id = headers.get("X-User-Id")
    actor_name = (headers.get("X-User-Name") or "").strip()
    if not user_id and not actor_name:
        locations = parse_location_ids(headers.get("X-User-Locations"))
        if locations is None:
            return SYSTEM_CONTEXT
        return RequestContext(location_ids=locations)

    return RequestContext(
        user_id=user_id,
        actor_name=actor_name or f"user:{user_id}",
        role=headers.get("X-User-Role"),
        location_ids=parse_location_ids(headers.get("X-User-Locations")),
    )

