"""
Document numbering for the CRM local store.

This package provides:
- Template validation, rendering and presets (template)
- Per-type global and per-year counter allocation (counters)

Invariants:
    - Validation and rendering are independent; rendering never raises
    - Counters only move forward
"""

from .counters import AllocatedNumber, advance_counters, allocate_number, next_number
from .template import (
    DEFAULT_DOCUMENT_NUMBER_FORMAT,
    PRESETS,
    TEMPLATE_VARIABLES,
    NumberFormatPreset,
    NumberVariables,
    TemplateValidation,
    build_variables,
    preset_for_format,
    preview,
    render,
    require_valid,
    validate,
)

__all__ = [
    # Templates
    "DEFAULT_DOCUMENT_NUMBER_FORMAT",
    "PRESETS",
    "TEMPLATE_VARIABLES",
    "NumberFormatPreset",
    "NumberVariables",
    "TemplateValidation",
    "build_variables",
    "preset_for_format",
    "preview",
    "render",
    "require_valid",
    "validate",
    # Counters
    "AllocatedNumber",
    "advance_counters",
    "allocate_number",
    "next_number",
]
