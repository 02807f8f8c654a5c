"""Checkpoint label validation."""

from __future__ import annotations

import logging
from typing import Iterator, Mapping, Optional

from ..errors import ExpressionEvaluationError, ExpressionSyntaxError
from .expression import evaluate

logger = logging.getLogger(__name__)

INVALID_LABEL_CHARS = "$,.:;/\\@"

EMPTY_LABEL_MESSAGE = "The label string is empty!"
ALPHA_START_MESSAGE = "The label must start with an alpha character!"
INVALID_CHARS_MESSAGE = (
    "The label cannot contain any of the following characters: $ , . : ; / \\ @"
)
MISSING_TEMPLATE_MESSAGE = "Please specify a label for this Checkpoint!"
UNBALANCED_TEMPLATE_MESSAGE = "Check if quotes, braces, or brackets are balanced. "


class _PlaceholderEnvironment(Mapping[str, str]):
    """Environment used before any build exists: each variable renders as its own name."""

    def __getitem__(self, key: str) -> str:
        return key

    def __iter__(self) -> Iterator[str]:
        return iter(())

    def __len__(self) -> int:
        return 0


def validate_label(label: Optional[str]) -> Optional[str]:
    """Check a rendered label against Integrity naming rules.

    Rules are applied in order and the first violation wins.

    Args:
        label: Candidate label

    Returns:
        Error message, or None if the label is valid

    Examples:
        >>> validate_label("nightly-42") is None
        True
        >>> validate_label("42-nightly")
        'The label must start with an alpha character!'
    """
    if not label:
        return EMPTY_LABEL_MESSAGE

    first = label[0]
    if not (("A" <= first <= "Z") or ("a" <= first <= "z")):
        return ALPHA_START_MESSAGE

    if any(ch in label for ch in INVALID_LABEL_CHARS):
        return INVALID_CHARS_MESSAGE

    return None


def check_label_template(
    template: Optional[str],
    env: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Validate a label template while it is being configured.

    The template is rendered against ``env`` and the result is checked with
    validate_label. Without ``env`` every variable stands in for itself, so
    ${env['JOB_NAME']} renders as JOB_NAME.

    Returns:
        Error message, or None if the template is acceptable
    """
    if not template:
        return MISSING_TEMPLATE_MESSAGE

    try:
        rendered = evaluate(env if env is not None else _PlaceholderEnvironment(), template)
    except ExpressionSyntaxError as exc:
        return UNBALANCED_TEMPLATE_MESSAGE + str(exc)
    except ExpressionEvaluationError as exc:
        logger.debug("Label template %r failed to render: %s", template, exc)
        return str(exc)

    return validate_label(rendered)
