"""
Title Conversion Rules
======================

Ordered, pattern-based rewriting of release-style item titles.

Rules are plain data (pattern, replacement template, priority). A
``TitleConverter`` compiles them once at startup, is frozen, and is then
shared read-only by every request.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..utils.exceptions import ConfigurationError, ErrorCode
from ..utils.logging import get_logger_for_component

DEFAULT_PRIORITY = 100

# $$ | $12 | ${12} | ${name}
_PLACEHOLDER_RE = re.compile(r"\$(?:(\$)|(\d+)|\{(\w+)\})")


class TitleRule(BaseModel):
    """A conversion rule as supplied by configuration."""

    name: str = Field(..., min_length=1, description="Unique rule identifier, used in logs")
    pattern: str = Field(..., description="Regular expression searched in the title")
    replacement: str = Field(..., description="Template using $1, ${2} or ${name} placeholders")
    priority: Optional[int] = Field(
        default=None, description="Lower runs first; unset uses the default priority"
    )


@dataclass(frozen=True)
class CompiledRule:
    """A validated rule ready for matching."""

    name: str
    regex: re.Pattern
    replacement: str
    priority: int
    sequence: int

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.priority, self.sequence)


def expand_template(template: str, match: re.Match) -> str:
    """Substitute capture placeholders in ``template`` with text from ``match``.

    Groups that did not take part in the match expand to the empty string.
    ``$$`` produces a literal dollar sign; a ``$`` that does not start a
    placeholder is copied through unchanged.
    """

    def _substitute(placeholder: re.Match) -> str:
        if placeholder.group(1):
            return "$"
        ref = placeholder.group(2) or placeholder.group(3)
        group = int(ref) if ref.isdigit() else ref
        return match.group(group) or ""

    return _PLACEHOLDER_RE.sub(_substitute, template)


def _check_template(name: str, regex: re.Pattern, template: str) -> None:
    for placeholder in _PLACEHOLDER_RE.finditer(template):
        if placeholder.group(1):
            continue
        ref = placeholder.group(2) or placeholder.group(3)
        if ref.isdigit():
            if int(ref) > regex.groups:
                raise ConfigurationError(
                    f"Rule '{name}' references group {ref} but its pattern "
                    f"defines only {regex.groups}",
                    rule_name=name,
                    error_code=ErrorCode.RULE_INVALID_TEMPLATE,
                )
        elif ref not in regex.groupindex:
            raise ConfigurationError(
                f"Rule '{name}' references unknown group name '{ref}'",
                rule_name=name,
                error_code=ErrorCode.RULE_INVALID_TEMPLATE,
            )


class TitleConverter:
    """Applies the first matching rule to a title.

    Rules are evaluated in ascending priority; ties keep insertion order.
    Only one rule is ever applied per call and its output is not fed back
    into the rule set.
    """

    def __init__(
        self,
        rules: Iterable[TitleRule] = (),
        default_priority: int = DEFAULT_PRIORITY,
    ):
        self.default_priority = default_priority
        self.logger = get_logger_for_component("rules")
        self._rules: List[CompiledRule] = []
        self._sequence = 0
        self._frozen = False

        for rule in rules:
            self.add_rule(rule)

    @property
    def rules(self) -> Tuple[CompiledRule, ...]:
        """Compiled rules in evaluation order."""
        return tuple(self._rules)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def add_rule(self, rule: TitleRule) -> CompiledRule:
        """Compile and register a rule.

        Raises:
            ConfigurationError: If the pattern does not compile, the template
                references missing groups, the name is taken, or the
                converter has already been frozen.
        """
        if self._frozen:
            raise ConfigurationError(
                f"Cannot add rule '{rule.name}': rule set is frozen",
                rule_name=rule.name,
                error_code=ErrorCode.RULE_SET_FROZEN,
            )

        if any(existing.name == rule.name for existing in self._rules):
            raise ConfigurationError(
                f"Duplicate rule name '{rule.name}'",
                rule_name=rule.name,
                error_code=ErrorCode.RULE_DUPLICATE,
            )

        try:
            regex = re.compile(rule.pattern)
        except re.error as e:
            self.logger.error(f"Invalid regex pattern for rule '{rule.name}': {e}")
            raise ConfigurationError(
                f"Invalid regex pattern for rule '{rule.name}': {e}",
                rule_name=rule.name,
                error_code=ErrorCode.RULE_INVALID_PATTERN,
            ) from e

        _check_template(rule.name, regex, rule.replacement)

        compiled = CompiledRule(
            name=rule.name,
            regex=regex,
            replacement=rule.replacement,
            priority=self.default_priority if rule.priority is None else rule.priority,
            sequence=self._sequence,
        )
        self._sequence += 1
        self._rules.append(compiled)
        self._rules.sort(key=lambda r: r.sort_key)

        self.logger.info(
            f"Added conversion rule: {compiled.name} (priority {compiled.priority})"
        )
        return compiled

    def freeze(self) -> "TitleConverter":
        """Disallow further rule additions. Returns self for chaining."""
        self._frozen = True
        return self

    def find_rule(self, title: str) -> Optional[Tuple[CompiledRule, re.Match]]:
        """Return the first rule whose pattern matches ``title`` and its match."""
        for rule in self._rules:
            match = rule.regex.search(title)
            if match is not None:
                return rule, match
        return None

    def convert(self, title: str) -> str:
        """Convert ``title`` with the first matching rule, or return it unchanged."""
        found = self.find_rule(title)
        if found is None:
            return title

        rule, match = found
        result = expand_template(rule.replacement, match)
        self.logger.debug(
            f"Title converted by rule '{rule.name}': {title} -> {result}"
        )
        return result

    def __len__(self) -> int:
        return len(self._rules)


def default_rules() -> List[TitleRule]:
    """Rules used when configuration does not provide any."""
    return [
        TitleRule(
            name="Detective Conan",
            pattern=(
                r"\[([^\]]+)\]\[名侦探柯南\]\[第(\d+)集\s+([^\]]+)\]"
                r"\[([^\]]+)\]\[([^\]]+)\](?:\[([^\]]+)\])?\[([^\]]+)\]"
            ),
            replacement=" [$1] Detective Conan - $2 ($4 $7 $5) ",
            priority=1,
        )
    ]


def build_converter(
    rules: Optional[Iterable[TitleRule]] = None,
    default_priority: int = DEFAULT_PRIORITY,
) -> TitleConverter:
    """Compile ``rules`` (or the defaults) into a frozen converter."""
    if rules is None:
        rules = default_rules()
    return TitleConverter(rules, default_priority=default_priority).freeze()
