"""
Applies a PromptMigration to every community prompt in batches
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from tqdm import tqdm
from banana_friends.database.models import CommunityPrompt, PromptMigrationRecord
from banana_friends.migrations.catalog import PromptMigration
from banana_friends.migrations.validation import InvalidRewrite, NO_CHANGE_SENTINEL, validate_prompt_text

logger = logging.getLogger(__name__)


class MigrationAlreadyApplied(Exception):
    """The (name, version) pair is already recorded"""


@dataclass
class RowPreview:
    id: int
    before: Dict[str, object]
    after: Dict[str, object]


@dataclass
class Rejection:
    id: int
    reason: str


@dataclass
class MigrationReport:
    name: str
    version: int
    dry_run: bool
    scanned: int = 0
    changed: int = 0
    rejected: List[Rejection] = field(default_factory=list)
    previews: List[RowPreview] = field(default_factory=list)

    def summary(self) -> str:
        mode = "dry run" if self.dry_run else "applied"
        return (
            f"{self.name} v{self.version} ({mode}): scanned {self.scanned}, "
            f"changed {self.changed}, rejected {len(self.rejected)}"
        )


class MigrationRunner:
    """
    Runs one migration over community_prompts.
    Rows are read by ascending id (keyset pagination), so rows written in one
    batch are never read again in the same run. Only changed fields are
    validated and only changed rows are written; each batch is committed.
    """

    def __init__(self, db: Session, batch_size: int = 100, delay: float = 0.0, progress: bool = True):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.db = db
        self.batch_size = batch_size
        self.delay = delay
        self.progress = progress

    def is_applied(self, migration: PromptMigration) -> bool:
        return self.db.query(PromptMigrationRecord).filter(
            PromptMigrationRecord.name == migration.name,
            PromptMigrationRecord.version == migration.version,
        ).first() is not None

    def _batches(self):
        last_id = 0
        while True:
            rows = (
                self.db.query(CommunityPrompt)
                .filter(CommunityPrompt.id > last_id)
                .order_by(CommunityPrompt.id)
                .limit(self.batch_size)
                .all()
            )
            if not rows:
                return
            yield rows
            last_id = rows[-1].id

    @staticmethod
    def _changes(row: CommunityPrompt, edit) -> Dict[str, object]:
        changes = {}
        if edit.title != row.title:
            changes["title"] = edit.title
        if edit.prompt != row.prompt:
            changes["prompt"] = edit.prompt
        if edit.is_active is not None and edit.is_active != row.is_active:
            changes["is_active"] = edit.is_active
        return changes

    def run(self, migration: PromptMigration, dry_run: bool = False, force: bool = False) -> MigrationReport:
        if not dry_run and not force and self.is_applied(migration):
            raise MigrationAlreadyApplied(f"{migration.key} has already been applied")

        report = MigrationReport(name=migration.name, version=migration.version, dry_run=dry_run)
        total = self.db.query(func.count(CommunityPrompt.id)).scalar()
        logger.info(f"Running {migration.key} over {total} prompts (dry_run={dry_run})")

        with tqdm(total=total, desc=migration.name, disable=not self.progress) as bar:
            for index, rows in enumerate(self._batches()):
                if index and self.delay:
                    time.sleep(self.delay)
                for row in rows:
                    report.scanned += 1
                    self._apply_row(migration, row, report, dry_run)
                if not dry_run:
                    self.db.commit()
                bar.update(len(rows))

        if not dry_run:
            self._record(migration, report)
        logger.info(report.summary())
        return report

    def _apply_row(self, migration: PromptMigration, row: CommunityPrompt, report: MigrationReport, dry_run: bool):
        try:
            edit = migration.transform(row)
            changes = self._changes(row, edit)
            for name in ("title", "prompt"):
                if name in changes:
                    validate_prompt_text(changes[name], field=name)
        except InvalidRewrite as e:
            logger.warning(f"Prompt {row.id} rejected by {migration.name}: {e}")
            report.rejected.append(Rejection(id=row.id, reason=str(e)))
            return
        if not changes:
            return

        report.changed += 1
        if dry_run:
            report.previews.append(RowPreview(
                id=row.id,
                before={name: getattr(row, name) for name in changes},
                after=changes,
            ))
            return
        for name, value in changes.items():
            setattr(row, name, value)
        row.updated_at = datetime.utcnow()

    def _record(self, migration: PromptMigration, report: MigrationReport):
        record = self.db.query(PromptMigrationRecord).filter(
            PromptMigrationRecord.name == migration.name,
            PromptMigrationRecord.version == migration.version,
        ).first()
        if record is None:
            record = PromptMigrationRecord(name=migration.name, version=migration.version)
            self.db.add(record)
        record.rows_scanned = report.scanned
        record.rows_changed = report.changed
        record.rows_rejected = len(report.rejected)
        record.applied_at = datetime.utcnow()
        self.db.commit()


# Residue that should be gone once the cleanup migrations have run
RESIDUE_PATTERNS = {
    "sentinel": "%" + NO_CHANGE_SENTINEL.replace("_", "\\_") + "%",
    "placeholder": "%$1%",
    "tshe": "%tshe%",
}


def count_residue(db: Session, patterns: Optional[Dict[str, str]] = None) -> Dict[str, int]:
    """Count prompts whose title or prompt still matches each LIKE pattern (backslash escapes)"""
    counts = {}
    for name, pattern in (patterns or RESIDUE_PATTERNS).items():
        counts[name] = db.query(func.count(CommunityPrompt.id)).filter(
            or_(CommunityPrompt.title.ilike(pattern, escape="\\"), CommunityPrompt.prompt.ilike(pattern, escape="\\"))
        ).scalar()
    return counts
