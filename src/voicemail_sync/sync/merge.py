"""Merging a freshly fetched page into the cached list.

``merge_page`` is a pure function: it never mutates ``previous`` and always
returns a new tuple, so the cache invariant can be tested on its own:

* ids are unique (first occurrence wins),
* a record already cached keeps its ``VoicemailUiState`` unchanged,
* a new record starts from a default ``VoicemailUiState`` whose
  ``original_note`` is the server note,
* soft-deleted records and records that fell off the page are dropped.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from voicemail_sync.models import VoicemailRecord, VoicemailUiState, VoicemailView
from voicemail_sync.sync import formatting

logger = structlog.get_logger()


def build_view(
    record: VoicemailRecord,
    ui: VoicemailUiState | None = None,
    now: datetime | None = None,
) -> VoicemailView:
    """Pair a record with UI state and compute its display strings."""

    if ui is None:
        ui = VoicemailUiState(original_note=record.note)
    return VoicemailView(
        record=record,
        ui=ui,
        formatted_duration=formatting.format_duration(record.audio_recording_duration_seconds),
        formatted_date=formatting.format_date(record.created_date),
        relative_time=formatting.relative_time(record.created_date, now),
        caller_display=formatting.caller_display(record.caller_address),
        phone_number=formatting.extract_phone_number(record.caller_address),
    )


def parse_records(results: Iterable[Mapping[str, Any]]) -> list[VoicemailRecord]:
    """Validate raw search results, skipping entries the platform sent malformed."""

    records: list[VoicemailRecord] = []
    for raw in results:
        try:
            records.append(VoicemailRecord.model_validate(raw))
        except ValidationError as exc:
            logger.warning("voicemail_record_invalid", error=str(exc))
    return records


def merge_page(
    previous: Sequence[VoicemailView],
    server_records: Iterable[VoicemailRecord],
    now: datetime | None = None,
) -> tuple[VoicemailView, ...]:
    """Build the new cached list from ``server_records``.

    Args:
        previous: The list currently cached.
        server_records: Records returned by the platform, in display order.
        now: Reference time for relative timestamps (defaults to now, UTC).

    Returns:
        The merged list, in server order.
    """

    now = now or datetime.now(timezone.utc)
    previous_ui = {view.id: view.ui for view in previous}

    merged: list[VoicemailView] = []
    seen: set[str] = set()
    for record in server_records:
        if record.deleted or record.id in seen:
            continue
        seen.add(record.id)
        merged.append(build_view(record, previous_ui.get(record.id), now))
    return tuple(merged)
