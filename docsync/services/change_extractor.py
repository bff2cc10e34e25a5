"""Lexical change detection over commit diffs.

The extractor recognises named constructs line by line with regular
expressions. It is a heuristic: it does not parse source code, it may miss
constructs or report false positives, and it never fails on text it does not
understand. Rules live in ``DEFAULT_RULES`` so the set can be replaced without
touching callers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Protocol, Sequence

from docsync.models.changes import ChangeSummary, FileChangeAnalysis, FileDiff

Extractor = Callable[[re.Match], "str | None"]


class ChangeAnalyzer(Protocol):
    def analyze(self, diffs: Sequence[FileDiff]) -> ChangeSummary: ...


def _first_group(match: "re.Match[str]") -> str | None:
    return next((group for group in match.groups() if group), None)


def _endpoint(match: "re.Match[str]") -> str | None:
    return f"{match.group(1)}.{match.group(2)} {match.group(3)}"


def _whole_line(match: "re.Match[str]") -> str | None:
    return match.string.strip()


@dataclass(frozen=True)
class PatternRule:
    kind: str
    pattern: "re.Pattern[str]"
    extract: Extractor

    def match(self, line: str) -> str | None:
        found = self.pattern.search(line)
        if found is None:
            return None
        return self.extract(found)

    def collect(self, lines: Iterable[str]) -> List[str]:
        return [value for value in (self.match(line) for line in lines) if value]


FUNCTION_RULE = PatternRule(
    kind="function",
    pattern=re.compile(
        r"(?:function\s+(\w+)"
        r"|const\s+(\w+)\s*=\s*\("
        r"|(\w+)\s*=\s*\(.*?\)\s*=>"
        r"|def\s+(\w+)\s*\()"
    ),
    extract=_first_group,
)
CLASS_RULE = PatternRule(
    kind="class",
    pattern=re.compile(r"class\s+(\w+)"),
    extract=_first_group,
)
API_RULE = PatternRule(
    kind="api",
    pattern=re.compile(r"(router|app)\.(get|post|put|delete|patch)\(\s*['\"`]([^'\"`]+)"),
    extract=_endpoint,
)
DEPRECATION_RULE = PatternRule(
    kind="deprecated",
    pattern=re.compile(r"deprecated|remove in next release|legacy|to be removed", re.IGNORECASE),
    extract=_whole_line,
)

DEFAULT_RULES: Dict[str, PatternRule] = {
    rule.kind: rule for rule in (FUNCTION_RULE, CLASS_RULE, API_RULE, DEPRECATION_RULE)
}


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


class LexicalChangeExtractor:
    """Derive a ``ChangeSummary`` from diffs using a table of pattern rules."""

    def __init__(self, rules: Dict[str, PatternRule] | None = None) -> None:
        self._rules = dict(DEFAULT_RULES if rules is None else rules)

    def _collect(self, kind: str, lines: Sequence[str]) -> List[str]:
        rule = self._rules.get(kind)
        if rule is None:
            return []
        return rule.collect(lines)

    def analyze_file(self, diff: FileDiff) -> FileChangeAnalysis:
        added = diff.added_lines
        removed = diff.removed_lines

        functions_added = _unique(self._collect("function", added))
        functions_removed = _unique(self._collect("function", removed))
        # Presence on both sides of the same file is all "modified" means here.
        removed_names = set(functions_removed)
        functions_modified = [name for name in functions_added if name in removed_names]

        return FileChangeAnalysis(
            filename=diff.filename,
            has_changes=bool(added or removed),
            functions_added=functions_added,
            functions_removed=functions_removed,
            functions_modified=functions_modified,
            classes_changed=_unique(self._collect("class", added) + self._collect("class", removed)),
            apis_changed=_unique(self._collect("api", added) + self._collect("api", removed)),
            deprecated=self._collect("deprecated", added) + self._collect("deprecated", removed),
        )

    def analyze(self, diffs: Sequence[FileDiff]) -> ChangeSummary:
        summary = ChangeSummary()
        for diff in diffs:
            summary.add(self.analyze_file(diff), diff)
        return summary


_DEFAULT_EXTRACTOR = LexicalChangeExtractor()


def analyze_file(diff: FileDiff) -> FileChangeAnalysis:
    return _DEFAULT_EXTRACTOR.analyze_file(diff)


def analyze(diffs: Sequence[FileDiff]) -> ChangeSummary:
    """Analyse a commit's diffs with the default rule set."""
    return _DEFAULT_EXTRACTOR.analyze(diffs)
