#!/usr/bin/env python3
"""
Maintenance commands for the community prompt table

    python manage_prompts.py list
    python manage_prompts.py run gender-words --dry-run
    python manage_prompts.py verify
    python manage_prompts.py backup prompts-backup.json
"""
import argparse
import json
import logging
import sys
from banana_friends.config.settings import settings
from banana_friends.database import CommunityPrompt, create_tables, get_db_session
from banana_friends.migrations.catalog import build_catalog
from banana_friends.migrations.runner import MigrationAlreadyApplied, MigrationRunner, count_residue

logger = logging.getLogger("manage_prompts")

BACKUP_FIELDS = (
    "id", "title", "prompt", "category", "likes", "author",
    "image_url", "source_url", "is_active", "created_at", "updated_at",
)


def cmd_list(args, db) -> int:
    runner = MigrationRunner(db, progress=False)
    for migration in build_catalog().values():
        status = "applied" if runner.is_applied(migration) else "pending"
        print(f"{migration.name:<24} v{migration.version}  {status:<8} {migration.description}")
    return 0


def cmd_run(args, db) -> int:
    catalog = build_catalog()
    migration = catalog.get(args.name)
    if migration is None:
        logger.error(f"Unknown migration {args.name}; available: {', '.join(catalog)}")
        return 2
    runner = MigrationRunner(db, batch_size=args.batch_size, delay=args.delay)
    try:
        report = runner.run(migration, dry_run=args.dry_run, force=args.force)
    except MigrationAlreadyApplied as e:
        logger.error(f"{e}; use --force to run it again")
        return 1
    for preview in report.previews[:args.show]:
        for name, value in preview.after.items():
            print(f"[{preview.id}] {name}: {preview.before[name]!r} -> {value!r}")
    for rejection in report.rejected:
        print(f"[{rejection.id}] rejected: {rejection.reason}")
    print(report.summary())
    return 0


def cmd_verify(args, db) -> int:
    counts = count_residue(db)
    for name, count in counts.items():
        print(f"{name:<12} {count}")
    return 1 if any(counts.values()) else 0


def cmd_backup(args, db) -> int:
    prompts = db.query(CommunityPrompt).order_by(CommunityPrompt.id).all()
    rows = [{name: getattr(prompt, name) for name in BACKUP_FIELDS} for prompt in prompts]
    with open(args.output, "w", encoding="utf-8") as f:
        json.dump(rows, f, ensure_ascii=False, indent=2, default=str)
    logger.info(f"Backed up {len(rows)} prompts to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Community prompt maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List migrations and whether they have been applied").set_defaults(func=cmd_list)

    run = sub.add_parser("run", help="Apply one migration")
    run.add_argument("name", help="Migration name, see list")
    run.add_argument("--dry-run", action="store_true", help="Show what would change without writing")
    run.add_argument("--force", action="store_true", help="Run even if this version was already applied")
    run.add_argument("--batch-size", type=int, default=settings.MIGRATION_BATCH_SIZE, help="Rows per batch")
    run.add_argument("--delay", type=float, default=settings.MIGRATION_BATCH_DELAY, help="Seconds to sleep between batches")
    run.add_argument("--show", type=int, default=20, help="Number of dry-run previews to print")
    run.set_defaults(func=cmd_run)

    sub.add_parser("verify", help="Count prompts with leftover artifacts").set_defaults(func=cmd_verify)

    backup = sub.add_parser("backup", help="Export all prompts as JSON")
    backup.add_argument("output", help="Target file")
    backup.set_defaults(func=cmd_backup)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    create_tables()
    with get_db_session() as db:
        return args.func(args, db)


if __name__ == "__main__":
    sys.exit(main())
