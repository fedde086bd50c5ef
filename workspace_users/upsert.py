from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Sequence, Set, TypeVar

from .dynamo.users_repo import UsersRepo
from .logging_setup import get_logger, with_extras
from .models import User
from .runtime_config import MAX_BATCH_SIZE

log = get_logger(__name__)

T = TypeVar("T")


@dataclass
class UpsertSummary:
    created: int = 0
    updated: int = 0
    batches: int = 0


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _prefetch(repo: UsersRepo, users: Sequence[User], workers: int) -> List[Dict[str, Optional[str]]]:
    # read-only checks; map() keeps input order and re-raises the first failure
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(lambda u: repo.stored_created_at(u.workspace_hash), users))


def upsert_users(
    repo: UsersRepo,
    users: Sequence[User],
    *,
    batch_size: int = MAX_BATCH_SIZE,
    workers: int = 1,
) -> UpsertSummary:
    """
    Create users whose workspace is not stored yet; overwrite the rest in batches.

    Users are handled in input order. With one worker each user's workspace
    is checked by partition key right before its write; with more workers the
    checks run up front on a bounded pool, and workspaces created earlier in
    the same run count as stored. New users are written immediately with a
    single put; known ones are queued and flushed with batch writes of at most
    `batch_size` users, keeping the stored `created_at`. A store error aborts
    the run; writes made before it stay written.
    """
    if not 1 <= batch_size <= MAX_BATCH_SIZE:
        raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")
    for u in users:
        u.validate()

    summary = UpsertSummary()
    prefetched = _prefetch(repo, users, workers) if workers > 1 and len(users) > 1 else None
    written: Set[str] = set()

    queued: List[User] = []
    for i, user in enumerate(users):
        if prefetched is None:
            stored = repo.stored_created_at(user.workspace_hash)
        else:
            stored = prefetched[i]
        if stored or user.workspace_hash in written:
            if user.created_at is None and stored.get(user.email):
                user = replace(user, created_at=stored[user.email])
            queued.append(user)
        else:
            repo.put(user)
            written.add(user.workspace_hash)
            summary.created += 1

    for group in chunked(queued, batch_size):
        repo.batch_put(group)
        summary.batches += 1
        summary.updated += len(group)

    with_extras(
        log, created=summary.created, updated=summary.updated, batches=summary.batches, workers=workers
    ).info("upsert complete")
    return summary
