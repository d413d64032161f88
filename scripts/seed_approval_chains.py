#!/usr/bin/env python3
"""
Create the schema and seed approval chain templates from configuration.

Existing templates are updated in place through replace_all_levels, so
requests already in flight keep the level snapshot they were created with.

Usage:
  python3 scripts/seed_approval_chains.py [--config path/to/config.yaml] \\
    [--database-url sqlite:///erp.db] [--drop]
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from erp_config import get_active_config
from erp_config.bridges import seed_chain_templates
from erp_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    session_scope,
)
from erp_kernel.logging_config import configure_logging


def run(config_path: Path | None, database_url: str | None, drop: bool) -> list[int]:
    config = get_active_config(config_path)
    configure_logging(level=getattr(logging, config.log_level, logging.INFO))

    engine = init_engine_from_url(database_url or config.database_url)
    if drop:
        drop_tables(engine)
    create_tables(engine)

    with session_scope() as session:
        return seed_chain_templates(session, config)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Seed approval chain templates from YAML configuration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration YAML (default: erp_config/sets/default.yaml)",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override the configured database URL",
    )
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop all tables before creating them",
    )
    args = parser.parse_args()

    if args.config is not None and not args.config.exists():
        print(f"ERROR: Config file not found: {args.config}")
        return 1

    template_ids = run(args.config, args.database_url, args.drop)
    print(f"Seeded {len(template_ids)} approval chain template(s): {template_ids}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
