"""
Word-boundary text substitution rules for community prompt migrations
"""
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union

Replacement = Union[str, Callable[[re.Match], str]]


def match_case(source: str, replacement: str) -> str:
    """Give replacement the case shape of source (lower, Capitalized or UPPER)"""
    if source.isupper() and len(source) > 1:
        return replacement.upper()
    if source[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


@dataclass
class RuleChange:
    rule: str
    count: int


@dataclass
class SubstitutionRule:
    """
    Replace whole words only.
    pattern is wrapped in \\b...\\b and matched case-insensitively; the replacement
    takes the case shape of each match unless it is a callable. Matches that lie
    inside an occurrence of one of the exception phrases are left untouched.
    """
    pattern: str
    replacement: Replacement
    exceptions: Sequence[str] = ()
    name: Optional[str] = None
    anchored: bool = True
    case_sensitive: bool = False
    _regex: re.Pattern = field(init=False, repr=False)
    _exception_regexes: List[re.Pattern] = field(init=False, repr=False)

    def __post_init__(self):
        flags = 0 if self.case_sensitive else re.IGNORECASE
        source = rf"\b(?:{self.pattern})\b" if self.anchored else self.pattern
        self._regex = re.compile(source, flags)
        self._exception_regexes = [
            re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)", re.IGNORECASE) for phrase in self.exceptions
        ]
        if self.name is None:
            self.name = self.pattern

    def _protected_spans(self, text: str) -> List[Tuple[int, int]]:
        return [m.span() for regex in self._exception_regexes for m in regex.finditer(text)]

    def apply(self, text: str) -> Tuple[str, int]:
        """Returns the rewritten text and the number of replacements made"""
        protected = self._protected_spans(text)
        count = 0

        def substitute(match: re.Match) -> str:
            nonlocal count
            start, end = match.span()
            if any(start < p_end and end > p_start for p_start, p_end in protected):
                return match.group(0)
            if callable(self.replacement):
                new = self.replacement(match)
            elif self.case_sensitive:
                new = match.expand(self.replacement)
            else:
                new = match_case(match.group(0), self.replacement)
            if new != match.group(0):
                count += 1
            return new

        return self._regex.sub(substitute, text), count


class RuleSet:
    """Ordered list of rules applied one after another"""

    def __init__(self, rules: Sequence[SubstitutionRule], post: Sequence[Callable[[str], str]] = ()):
        self.rules = list(rules)
        self.post = list(post)

    def apply(self, text: Optional[str]) -> Tuple[Optional[str], List[RuleChange]]:
        if not text:
            return text, []
        changes = []
        for rule in self.rules:
            text, count = rule.apply(text)
            if count:
                changes.append(RuleChange(rule=rule.name, count=count))
        for step in self.post:
            text = step(text)
        return text, changes


def tidy_whitespace(text: str) -> str:
    """Collapse runs of whitespace, repeated separators and spaces before punctuation"""
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"\.( \.)+", ".", text)
    text = re.sub(r",( ?,)+", ",", text)
    text = re.sub(r" ([,.;:!?])", r"\1", text)
    text = re.sub(r",\.", ".", text)
    text = re.sub(r"^[ ,.;:]+", "", text)
    text = re.sub(r"[ ,;:]+$", "", text)
    return text.strip()
