"""Message transformer — rewrites error-report parts into plain-text instructions.

The model only understands text, so each ``data-report-errors`` part the UI
attaches is replaced with a fixed prompt quoting the summary and the affected
files. The rewrite is pure and idempotent: no report parts survive one pass.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from typing_extensions import assert_never

from vibechat.schemas import OtherPart, ReportErrorsPart, TextPart, ToolPart

if TYPE_CHECKING:
    from collections.abc import Sequence

    from vibechat.schemas import Message, Part, ReportErrorsData


def render_error_report(data: ReportErrorsData) -> str:
    text = (
        "There are errors in the generated code. "
        "This is the summary of the errors we have:\n"
        f"```{data.summary}```\n"
    )
    if data.paths:
        paths = "\n".join(data.paths)
        text += f"The following files may contain errors:\n```{paths}```\n"
    return text + "Fix the errors reported."


def transform_part(part: Part) -> Part:
    match part:
        case ReportErrorsPart(data=data):
            return TextPart(text=render_error_report(data))
        case TextPart() | ToolPart() | OtherPart():
            return part
        case _:
            assert_never(part)


def transform_messages(messages: Sequence[Message]) -> list[Message]:
    """Return copies of ``messages`` with every report part rendered as text."""
    return [
        message.model_copy(update={"parts": [transform_part(p) for p in message.parts]})
        for message in messages
    ]
