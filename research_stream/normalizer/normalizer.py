"""Normalizer: turns raw process output lines into typed events."""

import json
import re
import time
from typing import Any, Callable

from pydantic import ValidationError

from ..logging_config import get_logger, log_context
from ..models import (
    ChartSeries,
    ChartSpec,
    Event,
    EventType,
    InsightEvent,
    MetadataEvent,
    RunStatus,
    StatusEvent,
    ThoughtEvent,
)
from .payloads import (
    ChartPayload,
    InsightPayload,
    MetadataPayload,
    StatusPayload,
    ThoughtPayload,
    line_payload_adapter,
)

logger = get_logger(__name__)


EVENT_TYPES = frozenset(t.value for t in EventType)

# [thought] text, [thought:slot] text, [status] running, [meta:key] value, [gpu] H100
_TAG_RE = re.compile(r"^\[(?P<tag>[a-z_]+)(?::(?P<arg>[^\]\s]+))?\]\s?(?P<body>.*)$")
_KNOWN_TAGS = frozenset({"thought", "insight", "status", "meta", "gpu"})


class MalformedLine(ValueError):
    """A line shaped like an event that failed to validate."""


def _now_ms() -> float:
    return time.time() * 1000.0


class Normalizer:
    """Per-run line parser and the sole owner of the run's ``seq`` counter."""

    def __init__(self, run_id: str, clock: Callable[[], float] | None = None):
        self._run_id = run_id
        self._clock = clock or _now_ms
        self._next_seq = 0
        self.malformed_count = 0

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def next_seq(self) -> int:
        return self._next_seq

    def normalize(self, line: str | bytes) -> Event | None:
        """Parse one line; return an event, or None if the line is not an event.

        Malformed structured lines are counted and dropped, never raised.
        """
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        line = line.strip()
        if not line:
            return None

        try:
            if line.startswith("{"):
                return self._from_json(line)
            match = _TAG_RE.match(line)
            if match and match.group("tag") in _KNOWN_TAGS:
                return self._from_tag(
                    match.group("tag"), match.group("arg"), match.group("body").strip()
                )
        except MalformedLine as e:
            self.malformed_count += 1
            logger.debug(
                "Dropped malformed line: %s",
                e,
                extra=log_context(run_id=self._run_id, line=line[:200]),
            )
        return None

    def status(self, status: RunStatus | str, reason: str | None = None) -> StatusEvent:
        """Mint a supervisor-owned status event on this run's sequence."""
        return StatusEvent(
            run_id=self._run_id,
            seq=self._mint_seq(),
            status=RunStatus(status).value,
            reason=reason,
        )

    def _mint_seq(self) -> int:
        seq = self._next_seq
        self._next_seq += 1
        return seq

    def _from_json(self, line: str) -> Event | None:
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as e:
            raise MalformedLine(f"invalid JSON: {e.msg}") from e

        if not isinstance(raw, dict) or raw.get("type") not in EVENT_TYPES:
            return None

        try:
            payload = line_payload_adapter.validate_python(raw)
        except ValidationError as e:
            raise MalformedLine(
                f"invalid {raw['type']} payload ({e.error_count()} errors)"
            ) from e

        if isinstance(payload, ThoughtPayload):
            return self._thought(payload.text, payload.slot, payload.timestamp)
        if isinstance(payload, InsightPayload):
            return self._insight(
                payload.summary, payload.id, payload.timestamp, payload.chart
            )
        if isinstance(payload, StatusPayload):
            return self.status(payload.status)
        if isinstance(payload, MetadataPayload):
            return self._metadata(payload.key, payload.value)
        return None

    def _from_tag(self, tag: str, arg: str | None, body: str) -> Event:
        if tag == "thought":
            if not body:
                raise MalformedLine("empty thought")
            return self._thought(body, arg, None)
        if tag == "insight":
            if not body:
                raise MalformedLine("empty insight")
            return self._insight(body, arg, None, None)
        if tag == "status":
            if body not in (RunStatus.PENDING.value, RunStatus.RUNNING.value):
                raise MalformedLine(f"status not accepted from process: {body!r}")
            return self.status(body)
        if tag == "gpu":
            arg, tag = "gpu", "meta"
        if not arg or not body:
            raise MalformedLine("metadata needs a key and a value")
        return self._metadata(arg, body)

    def _thought(self, text: str, slot: str | None, timestamp: float | None) -> ThoughtEvent:
        return ThoughtEvent(
            run_id=self._run_id,
            seq=self._mint_seq(),
            text=text,
            timestamp=timestamp if timestamp is not None else self._clock(),
            slot=slot,
        )

    def _insight(
        self,
        summary: str,
        insight_id: str | None,
        timestamp: float | None,
        chart: ChartPayload | None,
    ) -> InsightEvent:
        seq = self._mint_seq()
        return InsightEvent(
            run_id=self._run_id,
            seq=seq,
            id=insight_id or f"{self._run_id}:{seq}",
            summary=summary,
            timestamp=timestamp if timestamp is not None else self._clock(),
            chart=_chart_spec(chart) if chart is not None else None,
        )

    def _metadata(self, key: str, value: Any) -> MetadataEvent:
        return MetadataEvent(
            run_id=self._run_id, seq=self._mint_seq(), key=key, value=value
        )


def _chart_spec(chart: ChartPayload) -> ChartSpec:
    return ChartSpec(
        series=tuple(
            ChartSeries(values=tuple(s.values), name=s.name) for s in chart.series
        ),
        type=chart.type,
        title=chart.title,
        labels=tuple(chart.labels) if chart.labels is not None else None,
    )
