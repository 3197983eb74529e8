"""
Named, versioned migrations over the community_prompts table

Every migration here must be idempotent: running it on its own output
changes nothing. Bump the version when a migration's behavior changes so
the runner applies the new version once.
"""
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from banana_friends.migrations.rules import RuleSet, SubstitutionRule, tidy_whitespace
from banana_friends.migrations.validation import NO_CHANGE_SENTINEL, SENTINEL_PATTERN, contains_sentinel


@dataclass
class PromptEdit:
    """Proposed new values for one row; is_active None leaves the flag alone"""
    title: str
    prompt: str
    is_active: Optional[bool] = None


class PromptMigration:
    """Base class: subclasses implement transform()"""
    name = ""
    version = 1
    description = ""

    def transform(self, row) -> PromptEdit:
        raise NotImplementedError

    @property
    def key(self) -> str:
        return f"{self.name}@v{self.version}"


class RuleSetMigration(PromptMigration):
    """Applies the same RuleSet to title and prompt"""
    rules: RuleSet = RuleSet([])

    def transform(self, row) -> PromptEdit:
        title, _ = self.rules.apply(row.title)
        prompt, _ = self.rules.apply(row.prompt)
        return PromptEdit(title=title, prompt=prompt)


# Superhero and character names keep their male words
CHARACTER_NAMES = (
    "Spider-Man", "Iron Man", "Ant-Man", "Pac-Man", "He-Man", "Super Man",
    "Man of Steel", "Son Goku", "Son Gohan", "Handsome Jack",
)


def _rule(word: str, replacement: str, exceptions=CHARACTER_NAMES) -> SubstitutionRule:
    return SubstitutionRule(word, replacement, exceptions=exceptions)


GENDER_RULES = RuleSet([
    # Pronouns
    _rule("he", "she"),
    _rule("him", "her"),
    _rule("his", "her"),
    _rule("himself", "herself"),
    # Nouns
    _rule("man", "woman"),
    _rule("men", "women"),
    _rule("guy", "woman"),
    _rule("guys", "women"),
    _rule("male", "female"),
    _rule("gentleman", "lady"),
    _rule("gentlemen", "ladies"),
    # Age
    _rule("boy", "girl"),
    _rule("boys", "girls"),
    # Descriptors
    _rule("handsome", "beautiful"),
    _rule("rugged", "elegant"),
    _rule("masculine", "feminine"),
    # Family
    _rule("father", "mother"),
    _rule("dad", "mom"),
    _rule("son", "daughter"),
    _rule("sons", "daughters"),
    _rule("brother", "sister"),
    _rule("husband", "wife"),
    _rule("boyfriend", "girlfriend"),
])


class GenderWordsMigration(RuleSetMigration):
    name = "gender-words"
    description = "Convert male subjects and descriptors to female ones, whole words only"
    rules = GENDER_RULES


ARTIFACT_RULES = RuleSet([
    SubstitutionRule("ts+he", "the", name="tshe"),
    SubstitutionRule("sher", "her", exceptions=("Sher Khan", "Sher Shah")),
    SubstitutionRule("wher", "where"),
    SubstitutionRule("ther", "the"),
])


class ReplacementArtifactsMigration(RuleSetMigration):
    name = "replacement-artifacts"
    description = "Repair tshe/sher/wher/ther left behind by substring replacements"
    rules = ARTIFACT_RULES


SENTINEL_RULES = RuleSet(
    [SubstitutionRule(SENTINEL_PATTERN, "", name=NO_CHANGE_SENTINEL, anchored=False)],
    post=[tidy_whitespace],
)


def _title_from_prompt(prompt: str, words: int = 6) -> str:
    head = re.split(r"[.,;:!?\n]", prompt, maxsplit=1)[0].split()
    return " ".join(head[:words]).strip()


class NoChangeSentinelMigration(PromptMigration):
    name = "no-change-sentinel"
    description = "Remove the NO_CHANGE control marker from titles and prompts"

    def transform(self, row) -> PromptEdit:
        title = row.title
        prompt = row.prompt
        is_active = None
        if contains_sentinel(prompt):
            cleaned, _ = SENTINEL_RULES.apply(prompt)
            if cleaned:
                prompt = cleaned
            else:
                # Nothing left to show; hide the row until it is restored by hand
                is_active = False
        if contains_sentinel(title):
            cleaned, _ = SENTINEL_RULES.apply(title)
            title = cleaned or _title_from_prompt(prompt) or title
        return PromptEdit(title=title, prompt=prompt, is_active=is_active)


PLACEHOLDER_RULES = RuleSet(
    [SubstitutionRule(r"\$\d+", "person", name="$1", anchored=False)],
    post=[tidy_whitespace],
)


class DollarPlaceholdersMigration(RuleSetMigration):
    name = "dollar-placeholders"
    description = "Replace unexpanded $1 regex backreferences with a neutral noun"
    rules = PLACEHOLDER_RULES


NOISE_RULES = RuleSet(
    [
        SubstitutionRule(r"copy try this[.\s]*", "", name="copy try this", anchored=False),
        SubstitutionRule(r"please use the user's reference image[^.]*\.", "", name="reference image", anchored=False),
        SubstitutionRule(r"use the uploaded photo as face reference[^.]*\.", "", name="face reference", anchored=False),
        SubstitutionRule(r"use minha foto como base[^.]*\.", "", name="foto base", anchored=False),
        SubstitutionRule(r"--ar\s+\d+:\d+", "", name="--ar", anchored=False),
        SubstitutionRule(r"--s\s+\d+", "", name="--s", anchored=False),
        SubstitutionRule(r"--(?:raw|style)\b", "", name="--raw/--style", anchored=False),
        SubstitutionRule(r"\(\s*\)|\[\s*\]", "", name="empty brackets", anchored=False),
    ],
    post=[tidy_whitespace],
)


class CopyPasteNoiseMigration(RuleSetMigration):
    name = "copy-paste-noise"
    description = "Strip scraped instructions, Midjourney flags and empty brackets"
    rules = NOISE_RULES


class LLMRewriteMigration(PromptMigration):
    """Rewrites titles and prompts through an LLMRewriter"""

    def __init__(self, name: str, description: str, rewriter_factory: Callable[[], object], version: int = 1):
        self.name = name
        self.description = description
        self.version = version
        self._rewriter_factory = rewriter_factory
        self._rewriter = None

    @property
    def rewriter(self):
        if self._rewriter is None:
            self._rewriter = self._rewriter_factory()
        return self._rewriter

    def transform(self, row) -> PromptEdit:
        prompt = self.rewriter.rewrite(row.prompt) or row.prompt
        title = self.rewriter.rewrite(row.title) or row.title
        return PromptEdit(title=title, prompt=prompt)


def _gender_rewriter():
    from banana_friends.migrations.llm_rewriter import GENDER_CONVERSION_INSTRUCTION, LLMRewriter
    return LLMRewriter(GENDER_CONVERSION_INSTRUCTION)


def _translate_rewriter():
    from banana_friends.migrations.llm_rewriter import TRANSLATE_INSTRUCTION, LLMRewriter
    return LLMRewriter(TRANSLATE_INSTRUCTION)


def build_catalog() -> Dict[str, PromptMigration]:
    migrations: List[PromptMigration] = [
        ReplacementArtifactsMigration(),
        NoChangeSentinelMigration(),
        DollarPlaceholdersMigration(),
        CopyPasteNoiseMigration(),
        GenderWordsMigration(),
        LLMRewriteMigration("ai-gender-rewrite", "Gender conversion by a local LLM", _gender_rewriter),
        LLMRewriteMigration("ai-translate-english", "Translate prompts to English with a local LLM", _translate_rewriter),
    ]
    return {migration.name: migration for migration in migrations}
