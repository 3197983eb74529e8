import pytest

from banana_friends.database import CommunityPrompt, PromptMigrationRecord
from banana_friends.migrations.catalog import (
    GenderWordsMigration, LLMRewriteMigration, NoChangeSentinelMigration, PromptEdit, PromptMigration, build_catalog
)
from banana_friends.migrations.runner import MigrationAlreadyApplied, MigrationRunner, count_residue


class SentinelLeakingMigration(PromptMigration):
    """Appends the sentinel to every prompt, the way a broken LLM run would"""
    name = "leaky"

    def transform(self, row):
        return PromptEdit(title=row.title, prompt=f"{row.prompt} NO_CHANGE")


class FakeRewriter:
    def __init__(self, answers):
        self.answers = answers

    def rewrite(self, text):
        return self.answers.get(text)


@pytest.fixture
def runner(db_session):
    return MigrationRunner(db_session, batch_size=2, progress=False)


def test_catalog_names():
    assert set(build_catalog()) == {
        "gender-words", "replacement-artifacts", "no-change-sentinel", "dollar-placeholders",
        "copy-paste-noise", "ai-gender-rewrite", "ai-translate-english",
    }


def test_applies_across_batches(runner, add_prompt, db_session):
    ids = [add_prompt(title=f"Man {i}", prompt=f"A man number {i}").id for i in range(5)]
    add_prompt(title="Flowers", prompt="Flowers in a vase")
    report = runner.run(GenderWordsMigration())
    assert report.scanned == 6
    assert report.changed == 5
    for prompt_id in ids:
        row = db_session.get(CommunityPrompt, prompt_id)
        assert row.title.startswith("Woman ")
        assert row.prompt.startswith("A woman number")


def test_dry_run_writes_nothing(runner, add_prompt, db_session):
    prompt = add_prompt(title="Handsome man", prompt="He stands tall")
    report = runner.run(GenderWordsMigration(), dry_run=True)
    assert report.changed == 1
    assert report.previews[0].after == {"title": "Beautiful woman", "prompt": "She stands tall"}
    assert report.previews[0].before == {"title": "Handsome man", "prompt": "He stands tall"}
    db_session.expire_all()
    assert db_session.get(CommunityPrompt, prompt.id).prompt == "He stands tall"
    assert db_session.query(PromptMigrationRecord).count() == 0


def test_applied_migration_refuses_rerun(runner, add_prompt, db_session):
    add_prompt(prompt="A man")
    runner.run(GenderWordsMigration())
    record = db_session.query(PromptMigrationRecord).one()
    assert (record.name, record.version, record.rows_changed) == ("gender-words", 1, 1)
    with pytest.raises(MigrationAlreadyApplied):
        runner.run(GenderWordsMigration())


def test_force_rerun_changes_nothing(runner, add_prompt, db_session):
    add_prompt(prompt="A man with his dog")
    runner.run(GenderWordsMigration())
    report = runner.run(GenderWordsMigration(), force=True)
    assert report.changed == 0
    assert db_session.query(PromptMigrationRecord).count() == 1


def test_invalid_output_is_rejected(runner, add_prompt, db_session):
    prompt = add_prompt(prompt="A quiet lake")
    report = runner.run(SentinelLeakingMigration())
    assert report.changed == 0
    assert [rejection.id for rejection in report.rejected] == [prompt.id]
    db_session.expire_all()
    assert db_session.get(CommunityPrompt, prompt.id).prompt == "A quiet lake"
    assert db_session.query(PromptMigrationRecord).one().rows_rejected == 1


def test_sentinel_only_rows_are_hidden(runner, add_prompt, db_session):
    hidden = add_prompt(prompt="NO_CHANGE")
    cleaned = add_prompt(prompt="A tree NO_CHANGE")
    runner.run(NoChangeSentinelMigration())
    db_session.expire_all()
    assert db_session.get(CommunityPrompt, hidden.id).is_active is False
    assert db_session.get(CommunityPrompt, cleaned.id).prompt == "A tree"
    assert count_residue(db_session)["sentinel"] == 1


def test_llm_migration_uses_rewriter(runner, add_prompt, db_session):
    prompt = add_prompt(title="Guy at the beach", prompt="A guy surfing")
    rewriter = FakeRewriter({"A guy surfing": "A woman surfing"})
    migration = LLMRewriteMigration("ai-test", "test", lambda: rewriter)
    report = runner.run(migration)
    assert report.changed == 1
    db_session.expire_all()
    row = db_session.get(CommunityPrompt, prompt.id)
    assert row.prompt == "A woman surfing"
    assert row.title == "Guy at the beach"


def test_count_residue(add_prompt, db_session):
    add_prompt(prompt="A $1 with a hat")
    add_prompt(prompt="tshe forest")
    add_prompt(prompt="Clean prompt")
    assert count_residue(db_session) == {"sentinel": 0, "placeholder": 1, "tshe": 1}


def test_batch_size_must_be_positive(db_session):
    with pytest.raises(ValueError):
        MigrationRunner(db_session, batch_size=0)


def test_no_changes_wording_is_not_sentinel_residue(runner, add_prompt, db_session):
    prompt = add_prompt(title="Suit", prompt="A man in a suit, no changes to the background")
    add_prompt(title="Other", prompt="NOXCHANGE is a brand")
    report = runner.run(GenderWordsMigration())
    assert report.rejected == []
    db_session.expire_all()
    assert db_session.get(CommunityPrompt, prompt.id).prompt == "A woman in a suit, no changes to the background"
    assert count_residue(db_session)["sentinel"] == 0
