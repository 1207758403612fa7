"""
Document number templates.

A template is literal text with placeholders ``{NAME}`` or ``{NAME:WIDTH}``:

    {PREFIX}      Document prefix (e.g. "INV", "OFF")
    {YEAR}        Full year (e.g. 2026)
    {YY}          Two-digit year (YEAR mod 100)
    {MONTH}       Month, 1-12
    {DAY}         Day of month, 1-31
    {NUMBER}      Global counter (all-time)
    {NUMBER_YEAR} Counter for the current calendar year

WIDTH left-pads the value with zeros: ``{NUMBER:4}`` renders 42 as "0042".

Invariants:
    - validate() is the gate: it reports every problem, never raises
    - render() is total: malformed or unknown placeholders are kept verbatim
    - build_variables() is pure apart from reading the clock when no date
      is given

How to change safely:
    - New variables go into TEMPLATE_VARIABLES and build_variables()
    - Never make render() stricter; stored templates must keep rendering

Example:
    >>> render("{PREFIX}-{YEAR}-{NUMBER:4}", {"PREFIX": "INV", "YEAR": 2026, "NUMBER": 42})
    'INV-2026-0042'
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, TypedDict

from ..errors import InvalidTemplateError

TEMPLATE_VARIABLES: tuple[str, ...] = (
    "PREFIX",
    "YEAR",
    "YY",
    "MONTH",
    "DAY",
    "NUMBER",
    "NUMBER_YEAR",
)

COUNTER_VARIABLES: frozenset[str] = frozenset({"NUMBER", "NUMBER_YEAR"})

MIN_WIDTH = 1
MAX_WIDTH = 10

DEFAULT_DOCUMENT_NUMBER_FORMAT = "{PREFIX}-{YEAR}-{NUMBER:4}"

_PLACEHOLDER = re.compile(r"\{(\w+)(?::(\d+))?\}", re.ASCII)


class NumberVariables(TypedDict):
    """Values substituted into a template."""

    PREFIX: str
    YEAR: int
    YY: int
    MONTH: int
    DAY: int
    NUMBER: int
    NUMBER_YEAR: int


@dataclass
class TemplateValidation:
    """Result of validating a template.

    Attributes:
        valid: True when there are no errors
        errors: Problems that make the template unusable
        warnings: Problems the user may accept (e.g. no counter variable)
        variables: Placeholder names in order of appearance
    """

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    variables: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "variables": list(self.variables),
        }


def validate(template: str) -> TemplateValidation:
    """Validate a document number template.

    Args:
        template: Template string to check

    Returns:
        TemplateValidation with errors, warnings and the variables found
    """
    errors: list[str] = []
    warnings: list[str] = []
    variables: list[str] = []

    if not template or not template.strip():
        errors.append("Template cannot be empty")
        return TemplateValidation(valid=False, errors=errors)

    matches = list(_PLACEHOLDER.finditer(template))
    if not matches:
        errors.append("Template must contain at least one variable like {NUMBER} or {YEAR}")
        return TemplateValidation(valid=False, errors=errors)

    for match in matches:
        name, width = match.group(1), match.group(2)
        variables.append(name)

        if name not in TEMPLATE_VARIABLES:
            errors.append(
                f"Unknown variable: {{{name}}}. Valid variables: {', '.join(TEMPLATE_VARIABLES)}"
            )

        if width is not None and not MIN_WIDTH <= int(width) <= MAX_WIDTH:
            errors.append(
                f"Invalid padding for {{{name}:{width}}}. "
                f"Padding must be between {MIN_WIDTH} and {MAX_WIDTH}"
            )

    if not COUNTER_VARIABLES.intersection(variables):
        warnings.append(
            "Template does not include {NUMBER} or {NUMBER_YEAR}. "
            "Document numbers may not be unique."
        )

    return TemplateValidation(
        valid=not errors, errors=errors, warnings=warnings, variables=variables
    )


def require_valid(template: str) -> TemplateValidation:
    """Validate a template and raise if it is unusable.

    Raises:
        InvalidTemplateError: If validation reports any error
    """
    result = validate(template)
    if not result.valid:
        raise InvalidTemplateError(
            f"Invalid document number template '{template}': {result.errors[0]}",
            template=template,
            errors=result.errors,
        )
    return result


def render(template: str, variables: Mapping[str, Any]) -> str:
    """Render a template. Never raises on malformed input.

    Args:
        template: Template string
        variables: Values keyed by variable name (see NumberVariables)

    Returns:
        The rendered document number
    """

    def substitute(match: re.Match[str]) -> str:
        name, width = match.group(1), match.group(2)
        if name not in TEMPLATE_VARIABLES:
            return match.group(0)
        value = variables.get(name)
        if value is None:
            return match.group(0)
        text = str(value)
        if width:
            return text.rjust(int(width), "0")
        return text

    return _PLACEHOLDER.sub(substitute, template)


def build_variables(
    prefix: str,
    global_counter: int,
    year_counter: int,
    reference_date: date | datetime | None = None,
) -> NumberVariables:
    """Build the variable set for a document number.

    Args:
        prefix: Document prefix
        global_counter: All-time counter value ({NUMBER})
        year_counter: Counter value for the reference year ({NUMBER_YEAR})
        reference_date: Date the number is issued on; defaults to now
            (local time)
    """
    if reference_date is None:
        reference_date = datetime.now()
    elif isinstance(reference_date, datetime) and reference_date.tzinfo is not None:
        reference_date = reference_date.astimezone()

    return NumberVariables(
        PREFIX=prefix,
        YEAR=reference_date.year,
        YY=reference_date.year % 100,
        MONTH=reference_date.month,
        DAY=reference_date.day,
        NUMBER=global_counter,
        NUMBER_YEAR=year_counter,
    )


def preview(template: str, prefix: str, global_counter: int, year_counter: int) -> str:
    """Render an example number for today, or the first validation error."""
    result = validate(template)
    if not result.valid:
        return f"Error: {result.errors[0]}"
    return render(template, build_variables(prefix, global_counter, year_counter))


@dataclass(frozen=True)
class NumberFormatPreset:
    """A ready-made template offered to the user."""

    id: str
    format: str
    example: str


PRESETS: tuple[NumberFormatPreset, ...] = (
    NumberFormatPreset("yy-number-year", "{YY}.{NUMBER_YEAR:3}", "26.005"),
    NumberFormatPreset("number-only", "{NUMBER:5}", "00042"),
    NumberFormatPreset("yy-month-number", "{YY}.{MONTH:2}.{NUMBER_YEAR:3}", "26.02.005"),
    NumberFormatPreset("prefix-year-number", DEFAULT_DOCUMENT_NUMBER_FORMAT, "INV-2026-0042"),
    NumberFormatPreset("year-slash-number", "{YEAR}/{NUMBER:4}", "2026/0042"),
    NumberFormatPreset("date-number", "{YY}{MONTH:2}{DAY:2}-{NUMBER:3}", "260206-042"),
)


def preset_for_format(template: str) -> NumberFormatPreset | None:
    """Return the preset using exactly this template, if any."""
    for preset in PRESETS:
        if preset.format == template:
            return preset
    return None
