"""Pure template rendering.

For every declared variable, `{{name}}` (inner whitespace allowed) is
replaced by the caller's value, else the template default, else "". None
counts as absent. Placeholders for undeclared names stay untouched. Nothing
is mutated and nothing raises for missing keys; usage counters are the
orchestrator's business.
"""

import re
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class RenderedContent:
    subject: str | None
    body: str


@lru_cache(maxsize=256)
def _placeholder_pattern(names: tuple[str, ...]) -> re.Pattern | None:
    if not names:
        return None
    alternatives = "|".join(re.escape(name) for name in sorted(names, key=len, reverse=True))
    return re.compile(r"\{\{\s*(" + alternatives + r")\s*\}\}")


def _value_for(name, variables, defaults) -> str:
    value = variables.get(name)
    if value is None:
        value = defaults.get(name)
    if value is None:
        return ""
    return str(value)


def render_text(text: str | None, declared, variables=None, defaults=None) -> str | None:
    if text is None:
        return None
    pattern = _placeholder_pattern(tuple(declared))
    if pattern is None:
        return text
    variables = variables or {}
    defaults = defaults or {}
    return pattern.sub(lambda match: _value_for(match.group(1), variables, defaults), text)


def render_template(template, variables=None) -> RenderedContent:
    """Render subject (for subject-bearing templates) and body of `template`."""
    declared = template.get_variables()
    defaults = template.get_default_values()
    subject = render_text(template.subject, declared, variables, defaults) if template.has_subject() else None
    body = render_text(template.content, declared, variables, defaults)
    return RenderedContent(subject=subject, body=body)
