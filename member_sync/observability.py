from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Dict

from flask import g, has_request_context, request


_PROJECTION_DURATION_BUCKETS_MS = (1.0, 2.0, 5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0)
_REPLAY_DURATION_BUCKETS_SECONDS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)

_LOG_EVENT_ID_CTX: contextvars.ContextVar[str] = contextvars.ContextVar("log_event_id", default="")


def _normalize_event_id(value: str | None) -> str:
    return str(value or "").strip() or "n/a"


@contextlib.contextmanager
def bind_event_id(event_id: str | None):
    token = _LOG_EVENT_ID_CTX.set(_normalize_event_id(event_id))
    try:
        yield _LOG_EVENT_ID_CTX.get()
    finally:
        _LOG_EVENT_ID_CTX.reset(token)


def current_event_id(default: str | None = None) -> str:
    event_id = str(_LOG_EVENT_ID_CTX.get() or "").strip()
    if event_id:
        return event_id
    return default or "n/a"


class JsonLogFormatter(logging.Formatter):
    _base_keys = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if has_request_context():
            payload["request_id"] = str(getattr(g, "request_id", "") or "").strip() or "n/a"
            payload["path"] = request.path
            payload["method"] = request.method
        record_event_id = str(getattr(record, "event_id", "") or "").strip()
        payload["event_id"] = record_event_id or current_event_id(default="n/a")

        for key, value in record.__dict__.items():
            if key in self._base_keys or key.startswith("_"):
                continue
            if key in payload:
                continue
            if callable(value):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)
    app.logger.handlers = []
    app.logger.propagate = True


def ensure_request_id() -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if request_id:
        return request_id
    incoming = str(request.headers.get("X-Request-Id") or "").strip()
    request_id = incoming or str(uuid.uuid4())
    g.request_id = request_id
    return request_id


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._domain_event_published_total: Dict[str, int] = {}
        self._projection_processed_total: Dict[tuple[str, str], int] = {}
        self._projection_failed_total: Dict[tuple[str, str, str], int] = {}
        self._projection_last_success_timestamp: Dict[str, float] = {}
        self._projection_duration_ms = self._new_histogram_state(_PROJECTION_DURATION_BUCKETS_MS)
        self._replay_total: Dict[str, int] = {}
        self._replay_duration_seconds = self._new_histogram_state(_REPLAY_DURATION_BUCKETS_SECONDS)

    @staticmethod
    def _bucket_label(limit: float) -> str:
        return f"{limit:g}"

    @classmethod
    def _new_histogram_state(cls, limits: tuple[float, ...]) -> dict:
        return {
            "count": 0,
            "sum": 0.0,
            "buckets": {cls._bucket_label(limit): 0 for limit in limits} | {"+Inf": 0},
        }

    @classmethod
    def _observe_histogram(cls, state: dict, value: float, limits: tuple[float, ...]) -> None:
        duration = max(0.0, float(value))
        state["count"] += 1
        state["sum"] += duration
        for limit in limits:
            if duration <= limit:
                key = cls._bucket_label(limit)
                state["buckets"][key] = int(state["buckets"].get(key, 0)) + 1
        state["buckets"]["+Inf"] = int(state["count"])

    def observe_domain_event_published(self, event_type: str) -> None:
        key = str(event_type or "unknown").strip() or "unknown"
        with self._lock:
            self._domain_event_published_total[key] = int(self._domain_event_published_total.get(key, 0)) + 1

    def observe_projection_processed(self, projector: str, event_type: str, duration_ms: float) -> None:
        key = (str(projector or "unknown"), str(event_type or "unknown"))
        with self._lock:
            self._projection_processed_total[key] = int(self._projection_processed_total.get(key, 0)) + 1
            self._projection_last_success_timestamp[key[0]] = time.time()
            self._observe_histogram(self._projection_duration_ms, duration_ms, _PROJECTION_DURATION_BUCKETS_MS)

    def observe_projection_failed(self, projector: str, event_type: str, error_code: str) -> None:
        key = (str(projector or "unknown"), str(event_type or "unknown"), str(error_code or "system_error"))
        with self._lock:
            self._projection_failed_total[key] = int(self._projection_failed_total.get(key, 0)) + 1

    def observe_replay(self, result: str, duration_seconds: float) -> None:
        key = str(result or "unknown").strip() or "unknown"
        with self._lock:
            self._replay_total[key] = int(self._replay_total.get(key, 0)) + 1
            self._observe_histogram(self._replay_duration_seconds, duration_seconds, _REPLAY_DURATION_BUCKETS_SECONDS)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "domain_event_published_total": dict(self._domain_event_published_total),
                "projection_processed_total": {
                    f"{projector}:{event_type}": value
                    for (projector, event_type), value in self._projection_processed_total.items()
                },
                "projection_failed_total": {
                    f"{projector}:{event_type}:{error_code}": value
                    for (projector, event_type, error_code), value in self._projection_failed_total.items()
                },
                "replay_total": dict(self._replay_total),
            }

    def prometheus_snapshot(self) -> dict:
        with self._lock:
            return {
                "domain_event_published_total": [
                    {"event_type": event_type, "value": value}
                    for event_type, value in sorted(self._domain_event_published_total.items())
                ],
                "projection_processed_total": [
                    {"projector": projector, "event_type": event_type, "value": value}
                    for (projector, event_type), value in sorted(self._projection_processed_total.items())
                ],
                "projection_failed_total": [
                    {"projector": projector, "event_type": event_type, "error_code": error_code, "value": value}
                    for (projector, event_type, error_code), value in sorted(self._projection_failed_total.items())
                ],
                "projection_last_success_timestamp": [
                    {"projector": projector, "value": value}
                    for projector, value in sorted(self._projection_last_success_timestamp.items())
                ],
                "projection_duration_ms": {
                    "count": self._projection_duration_ms["count"],
                    "sum": self._projection_duration_ms["sum"],
                    "buckets": dict(self._projection_duration_ms["buckets"]),
                },
                "replay_total": [
                    {"result": result, "value": value} for result, value in sorted(self._replay_total.items())
                ],
                "replay_duration_seconds": {
                    "count": self._replay_duration_seconds["count"],
                    "sum": self._replay_duration_seconds["sum"],
                    "buckets": dict(self._replay_duration_seconds["buckets"]),
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._domain_event_published_total.clear()
            self._projection_processed_total.clear()
            self._projection_failed_total.clear()
            self._projection_last_success_timestamp.clear()
            self._projection_duration_ms = self._new_histogram_state(_PROJECTION_DURATION_BUCKETS_MS)
            self._replay_total.clear()
            self._replay_duration_seconds = self._new_histogram_state(_REPLAY_DURATION_BUCKETS_SECONDS)


_METRICS = MetricsRegistry()


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def observe_domain_event_published(event_type: str) -> None:
    _METRICS.observe_domain_event_published(event_type)


def observe_projection_processed(projector: str, event_type: str, duration_ms: float) -> None:
    _METRICS.observe_projection_processed(projector, event_type, duration_ms)


def observe_projection_failed(projector: str, event_type: str, error_code: str) -> None:
    _METRICS.observe_projection_failed(projector, event_type, error_code)


def observe_replay(result: str, duration_seconds: float) -> None:
    _METRICS.observe_replay(result, duration_seconds)


def _prom_label(value: object) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _prom_line(name: str, value: int | float, labels: dict[str, object] | None = None) -> str:
    if labels:
        labels_blob = ",".join(f'{key}="{_prom_label(val)}"' for key, val in sorted(labels.items()))
        return f"{name}{{{labels_blob}}} {value}"
    return f"{name} {value}"


def _prom_histogram(lines: list[str], name: str, state: dict) -> None:
    for bucket, value in state["buckets"].items():
        lines.append(_prom_line(f"{name}_bucket", int(value), labels={"le": bucket}))
    lines.append(_prom_line(f"{name}_sum", round(float(state["sum"]), 6)))
    lines.append(_prom_line(f"{name}_count", int(state["count"])))


def prometheus_metrics_text() -> str:
    snapshot = _METRICS.prometheus_snapshot()
    lines: list[str] = []

    lines.append("# HELP domain_event_published_total Domain events published on the event bus.")
    lines.append("# TYPE domain_event_published_total counter")
    for sample in snapshot["domain_event_published_total"]:
        lines.append(
            _prom_line(
                "domain_event_published_total",
                int(sample["value"]),
                labels={"event_type": sample["event_type"]},
            )
        )

    lines.append("# HELP customer_projection_processed_total Events applied by a projector.")
    lines.append("# TYPE customer_projection_processed_total counter")
    for sample in snapshot["projection_processed_total"]:
        lines.append(
            _prom_line(
                "customer_projection_processed_total",
                int(sample["value"]),
                labels={"projector": sample["projector"], "event_type": sample["event_type"]},
            )
        )

    lines.append("# HELP customer_projection_failed_total Events a projector failed to apply.")
    lines.append("# TYPE customer_projection_failed_total counter")
    for sample in snapshot["projection_failed_total"]:
        lines.append(
            _prom_line(
                "customer_projection_failed_total",
                int(sample["value"]),
                labels={
                    "projector": sample["projector"],
                    "event_type": sample["event_type"],
                    "error_code": sample["error_code"],
                },
            )
        )

    lines.append("# HELP customer_projection_last_success_timestamp Unix time of the last applied event.")
    lines.append("# TYPE customer_projection_last_success_timestamp gauge")
    for sample in snapshot["projection_last_success_timestamp"]:
        lines.append(
            _prom_line(
                "customer_projection_last_success_timestamp",
                round(float(sample["value"]), 3),
                labels={"projector": sample["projector"]},
            )
        )

    lines.append("# HELP customer_projection_duration_ms Time spent applying one event.")
    lines.append("# TYPE customer_projection_duration_ms histogram")
    _prom_histogram(lines, "customer_projection_duration_ms", snapshot["projection_duration_ms"])

    lines.append("# HELP customer_projection_replay_total Read model replays by result.")
    lines.append("# TYPE customer_projection_replay_total counter")
    for sample in snapshot["replay_total"]:
        lines.append(
            _prom_line("customer_projection_replay_total", int(sample["value"]), labels={"result": sample["result"]})
        )

    lines.append("# HELP customer_projection_replay_duration_seconds Read model replay duration.")
    lines.append("# TYPE customer_projection_replay_duration_seconds histogram")
    _prom_histogram(lines, "customer_projection_replay_duration_seconds", snapshot["replay_duration_seconds"])

    return "\n".join(lines) + "\n"


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
