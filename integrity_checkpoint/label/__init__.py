"""Label templating and validation for checkpoints."""

from .expression import DateFormat, Template, compile_template, evaluate, format_date, system_properties
from .validator import INVALID_LABEL_CHARS, check_label_template, validate_label

__all__ = [
    "DateFormat",
    "INVALID_LABEL_CHARS",
    "Template",
    "check_label_template",
    "compile_template",
    "evaluate",
    "format_date",
    "system_properties",
    "validate_label",
]
