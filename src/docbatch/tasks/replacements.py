"""Placeholder replacement and output naming for generated documents."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from docbatch.tasks.models import PlaceholderMapping

INTERMEDIATE_PREFIX = "Temp_"
PDF_SUFFIX = ".pdf"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")

ParticipantRecord = Mapping[str, Any]


def stringify(value: Any) -> str:
    """Render one participant value as replacement text."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_replacements(
    participant: ParticipantRecord,
    mappings: Sequence[PlaceholderMapping],
) -> dict[str, str]:
    """Map placeholders to participant values; without mappings every field is used as-is."""

    if mappings:
        return {
            mapping.placeholder: stringify(participant.get(mapping.participant_key))
            for mapping in mappings
        }
    return {key: stringify(value) for key, value in participant.items()}


def sanitize_name_part(value: str) -> str:
    return _UNSAFE_CHARS.sub("_", value)


def participant_names(participant: ParticipantRecord) -> tuple[str, str]:
    first = participant.get("first_name") or participant.get("firstName") or ""
    last = participant.get("last_name") or participant.get("lastName") or ""
    return stringify(first).strip(), stringify(last).strip()


def build_output_name(
    participant: ParticipantRecord,
    *,
    participant_id: int,
    template_name: str,
) -> str:
    """Deterministic final file name for a participant's document."""

    first, last = participant_names(participant)
    if first and last:
        return (
            f"{template_name} - {sanitize_name_part(last)} "
            f"{sanitize_name_part(first)} - {participant_id}{PDF_SUFFIX}"
        )
    return fallback_output_name(participant_id=participant_id, template_name=template_name)


def fallback_output_name(*, participant_id: int, template_name: str) -> str:
    return f"{template_name}-participant-{participant_id}{PDF_SUFFIX}"


def intermediate_name(output_name: str) -> str:
    """Name of the temporary template copy that backs `output_name`."""

    stem = output_name[: -len(PDF_SUFFIX)] if output_name.endswith(PDF_SUFFIX) else output_name
    return f"{INTERMEDIATE_PREFIX}{stem}"


def single_document_file_name(participant: ParticipantRecord, *, participant_id: int) -> str:
    """Download file name for on-demand single-participant generation."""

    first, last = participant_names(participant)
    if first and last:
        stem = f"{sanitize_name_part(first)}_{sanitize_name_part(last)}_{participant_id}"
        return f"{stem}{PDF_SUFFIX}"
    return f"participant-{participant_id}{PDF_SUFFIX}"
