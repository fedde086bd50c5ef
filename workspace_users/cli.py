from __future__ import annotations

import argparse
import json
import logging
import random
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .db import init_db
from .dynamo.users_repo import UsersRepo
from .errors import AccessPathError, ConfigError, RecordValidationError
from .logging_setup import get_logger, with_extras
from .runtime_config import MAX_BATCH_SIZE, RuntimeConfig, load_runtime_config
from .seed import first_index_in_org, seed_data

log = get_logger("workspace_users.cli")

DEMO_ORG_ID = 2
DEMO_ROLE = "Analyst"


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return value


def _batch_size(raw: str) -> int:
    value = _positive_int(raw)
    if value > MAX_BATCH_SIZE:
        raise argparse.ArgumentTypeError(f"batch size must be at most {MAX_BATCH_SIZE}, got {value}")
    return value


def _or_default(value: Optional[int], default: int) -> int:
    return default if value is None else value


def _parse_role_overrides(values: List[str]) -> Dict[int, str]:
    out: Dict[int, str] = {}
    for raw in values or []:
        idx, sep, role = raw.partition("=")
        if not sep or not idx.strip().isdigit() or not role.strip():
            raise argparse.ArgumentTypeError(f"expected INDEX=ROLE, got {raw!r}")
        out[int(idx)] = role.strip()
    return out


def predicate_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    candidates = {
        "workspace_hash": args.workspace,
        "email": args.email,
        "status": args.status,
        "role": args.role,
        "org_id": args.org_id,
    }
    return {k: v for k, v in candidates.items() if v is not None}


def run_seed(args: argparse.Namespace, cfg: RuntimeConfig) -> Dict[str, Any]:
    repo = UsersRepo.from_config(cfg.store)
    summary = seed_data(
        repo,
        _or_default(args.count, cfg.seed.count),
        org_count=_or_default(args.org_count, cfg.seed.org_count),
        role_overrides=_parse_role_overrides(args.role_at),
        batch_size=_or_default(args.batch_size, cfg.upsert.batch_size),
        workers=_or_default(args.workers, cfg.upsert.existence_workers),
        rng=random.Random(args.seed) if args.seed is not None else None,
    )
    return {"created": summary.created, "updated": summary.updated, "batches": summary.batches}


def run_query(args: argparse.Namespace, cfg: RuntimeConfig) -> Dict[str, Any]:
    repo = UsersRepo.from_config(cfg.store)
    result = repo.query(predicate_from_args(args), allow_scan=not args.no_scan, limit=args.limit)
    return {
        "plan": result.plan.describe(),
        "count": result.count,
        "users": [u.as_dict() for u in result.items],
    }


def run_demo(args: argparse.Namespace, cfg: RuntimeConfig) -> Dict[str, Any]:
    """Seed fabricated users, then look them up through the GSI with a sort-key condition."""
    pinned = first_index_in_org(DEMO_ORG_ID, cfg.seed.count, cfg.seed.org_count)
    if pinned is None:
        raise ConfigError(
            f"demo needs seed.count and seed.org_count above {DEMO_ORG_ID} "
            f"(got count={cfg.seed.count}, org_count={cfg.seed.org_count})"
        )
    repo = UsersRepo.from_config(cfg.store)
    summary = seed_data(
        repo,
        cfg.seed.count,
        org_count=cfg.seed.org_count,
        role_overrides={pinned: DEMO_ROLE},
        batch_size=cfg.upsert.batch_size,
        workers=cfg.upsert.existence_workers,
    )
    users = repo.find_by_org_id_and_role(DEMO_ORG_ID, DEMO_ROLE)
    return {
        "seeded": {"created": summary.created, "updated": summary.updated, "batches": summary.batches},
        "query": {"org_id": DEMO_ORG_ID, "role": DEMO_ROLE},
        "users": [u.as_dict() for u in users],
    }


def run_init_table(args: argparse.Namespace, cfg: RuntimeConfig) -> Dict[str, Any]:
    created = init_db(cfg.store)
    return {"table": cfg.store.table_name, "created": created}


def run_dump(args: argparse.Namespace, cfg: RuntimeConfig) -> Dict[str, Any]:
    repo = UsersRepo.from_config(cfg.store)
    return {"table": cfg.store.table_name, "items": repo.scan_some(args.limit)}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Seed and query the workspace users DynamoDB table")
    p.add_argument("--config", default=None, help="Path to runtime.toml (defaults to config/runtime.toml)")
    p.add_argument("--debug", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_demo = sub.add_parser("demo", help=f"Seed users and query org_id={DEMO_ORG_ID}, role={DEMO_ROLE}")
    p_demo.set_defaults(func=run_demo)

    p_seed = sub.add_parser("seed", help="Upsert fabricated users")
    p_seed.add_argument("--count", type=_positive_int, default=None)
    p_seed.add_argument("--org-count", type=_positive_int, default=None, help="org_id cycles through 0..N-1")
    p_seed.add_argument("--workers", type=_positive_int, default=None, help="Parallel existence checks")
    p_seed.add_argument("--batch-size", type=_batch_size, default=None, help="Users per batch write (max 25)")
    p_seed.add_argument("--role-at", action="append", default=[], metavar="INDEX=ROLE",
                        help="Pin the role of the user at INDEX (repeatable)")
    p_seed.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    p_seed.set_defaults(func=run_seed)

    p_query = sub.add_parser("query", help="Look users up by any combination of attributes")
    p_query.add_argument("--workspace", default=None, help="workspace_hash (partition key)")
    p_query.add_argument("--email", default=None, help="email (sort key)")
    p_query.add_argument("--status", default=None)
    p_query.add_argument("--role", default=None)
    p_query.add_argument("--org-id", type=int, default=None)
    p_query.add_argument("--no-scan", action="store_true", help="Fail instead of falling back to a table scan")
    p_query.add_argument("--limit", type=_positive_int, default=None)
    p_query.set_defaults(func=run_query)

    p_init = sub.add_parser("init-table", help="Create the table with its LSI and GSI if missing")
    p_init.set_defaults(func=run_init_table)

    p_dump = sub.add_parser("dump", help="Show a few items from the table")
    p_dump.add_argument("--limit", type=_positive_int, default=5)
    p_dump.set_defaults(func=run_dump)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    if args.debug:
        for name in list(logging.Logger.manager.loggerDict):
            if name.startswith("workspace_users"):
                logging.getLogger(name).setLevel(logging.DEBUG)

    cfg = load_runtime_config(Path(args.config) if args.config else None)
    try:
        out = args.func(args, cfg)
    except (ConfigError, AccessPathError, RecordValidationError, argparse.ArgumentTypeError) as e:
        with_extras(log, cmd=args.cmd).error(str(e))
        return 2
    print(json.dumps(out, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
