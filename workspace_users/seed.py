from __future__ import annotations

import random
import uuid
from typing import List, Mapping, Optional

from .dynamo.users_repo import UsersRepo
from .models import User
from .upsert import UpsertSummary, upsert_users

_WORDS = [
    "deposit", "awesome", "granite", "harbor", "quantum", "saffron", "velvet", "meadow",
    "lantern", "orbit", "cobalt", "ember", "willow", "summit", "pixel", "tundra",
]
_ROLES = ["Analyst", "Engineer", "Manager", "Designer", "Director", "Consultant", "Architect"]
_DOMAINS = ["example.com", "example.org", "example.net"]


def _fake_email(rng: random.Random) -> str:
    return f"{rng.choice(_WORDS)}.{rng.choice(_WORDS)}{rng.randint(1, 999)}@{rng.choice(_DOMAINS)}"


def fake_users(
    count: int,
    *,
    org_count: int = 5,
    role_overrides: Optional[Mapping[int, str]] = None,
    rng: Optional[random.Random] = None,
) -> List[User]:
    """
    Fabricate `count` users, each in its own workspace.

    org_id cycles through 0..org_count-1 by record index; role_overrides pins
    the role of specific record indexes (e.g. {2: "Analyst"}). Pinned roles are
    never drawn at random, so only the pinned users carry them.
    """
    rng = rng or random.Random()
    role_overrides = role_overrides or {}
    pinned = set(role_overrides.values())
    pool = [r for r in _ROLES if r not in pinned] or list(_ROLES)
    users = []
    for i in range(count):
        users.append(User(
            workspace_hash=str(uuid.UUID(int=rng.getrandbits(128), version=4)),
            email=_fake_email(rng),
            status=rng.choice(_WORDS),
            role=role_overrides.get(i) or rng.choice(pool),
            org_id=i % org_count,
        ))
    return users


def first_index_in_org(org_id: int, count: int, org_count: int) -> Optional[int]:
    """Index of the first fabricated user that lands in `org_id`, if any."""
    if 0 <= org_id < min(org_count, count):
        return org_id
    return None


def seed_data(
    repo: UsersRepo,
    count: int,
    *,
    org_count: int = 5,
    role_overrides: Optional[Mapping[int, str]] = None,
    batch_size: int = 25,
    workers: int = 1,
    rng: Optional[random.Random] = None,
) -> UpsertSummary:
    users = fake_users(count, org_count=org_count, role_overrides=role_overrides, rng=rng)
    return upsert_users(repo, users, batch_size=batch_size, workers=workers)
