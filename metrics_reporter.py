from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional


def _percentile(values: list[float], ratio: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    if len(ordered) == 1:
        return ordered[0]
    index = (len(ordered) - 1) * ratio
    lower = int(index)
    upper = min(lower + 1, len(ordered) - 1)
    if lower == upper:
        return ordered[lower]
    weight = index - lower
    return ordered[lower] * (1.0 - weight) + ordered[upper] * weight


class SessionMetricsReporter:
    """Per-session request metrics. Only counters and timings are written, never caption text."""

    def __init__(self, enabled: bool, output_path: str, summary_path: str, append_mode: bool = False) -> None:
        self._enabled = enabled
        self._output_path = Path(output_path)
        self._summary_path = Path(summary_path)
        self._append_mode = append_mode
        self._session_started_at: Optional[datetime] = None
        self._latencies: list[float] = []
        self._requests_logged = 0
        self._cached_requests = 0
        self._error_events = 0
        self._dropped_utterances = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_session(self) -> None:
        if not self._enabled:
            return
        self._session_started_at = datetime.now()
        self._latencies.clear()
        self._requests_logged = 0
        self._cached_requests = 0
        self._error_events = 0
        self._dropped_utterances = 0
        self._ensure_parent_dirs()
        if not self._append_mode:
            self._output_path.write_text("", encoding="utf-8")

    def record_request(self, kind: str, variant: str, cached: bool, latency_s: float) -> None:
        if not self._enabled:
            return
        self._requests_logged += 1
        if cached:
            self._cached_requests += 1
        else:
            self._latencies.append(latency_s)
        self._append_jsonl(
            {
                "event_type": "request",
                "recorded_at": datetime.now().isoformat(timespec="milliseconds"),
                "kind": kind,
                "variant": variant,
                "cached": cached,
                "latency_s": latency_s,
            }
        )

    def record_error(self, stage: str, error: str) -> None:
        if not self._enabled:
            return
        self._error_events += 1
        self._append_jsonl(
            {
                "event_type": "error",
                "recorded_at": datetime.now().isoformat(timespec="milliseconds"),
                "stage": stage,
                "error": error,
            }
        )

    def record_drop(self) -> None:
        if self._enabled:
            self._dropped_utterances += 1

    def snapshot(self) -> dict[str, float]:
        base = max(1, self._requests_logged + self._error_events)
        return {
            "avg_latency_s": (sum(self._latencies) / len(self._latencies)) if self._latencies else 0.0,
            "p95_latency_s": _percentile(self._latencies, 0.95),
            "cache_hit_pct": (self._cached_requests / max(1, self._requests_logged)) * 100.0,
            "error_rate_pct": (self._error_events / base) * 100.0,
        }

    def finalize_session(self) -> dict[str, Any]:
        if not self._enabled:
            return {}
        now = datetime.now()
        started = self._session_started_at or now
        summary = {
            "session_started_at": started.isoformat(timespec="milliseconds"),
            "session_ended_at": now.isoformat(timespec="milliseconds"),
            "session_duration_s": max(0.0, (now - started).total_seconds()),
            "requests_logged": self._requests_logged,
            "cached_requests": self._cached_requests,
            "error_events": self._error_events,
            "dropped_utterances": self._dropped_utterances,
            "latency_avg_s": sum(self._latencies) / len(self._latencies) if self._latencies else 0.0,
            "latency_p50_s": _percentile(self._latencies, 0.50),
            "latency_p95_s": _percentile(self._latencies, 0.95),
            "latency_max_s": max(self._latencies) if self._latencies else 0.0,
        }
        self._write_summary(summary)
        return summary

    def _ensure_parent_dirs(self) -> None:
        self._output_path.parent.mkdir(parents=True, exist_ok=True)
        self._summary_path.parent.mkdir(parents=True, exist_ok=True)

    def _append_jsonl(self, payload: dict[str, Any]) -> None:
        self._ensure_parent_dirs()
        line = json.dumps(payload, ensure_ascii=False)
        with self._output_path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.write("\n")

    def _write_summary(self, summary: dict[str, Any]) -> None:
        self._ensure_parent_dirs()
        with self._summary_path.open("w", encoding="utf-8") as handle:
            json.dump(summary, handle, ensure_ascii=False, indent=2)
