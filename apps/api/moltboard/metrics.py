from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from time import monotonic
from typing import Generic, Iterable, TypeVar

WINDOW = timedelta(hours=24)
RECENT = timedelta(minutes=15)


@dataclass(frozen=True)
class RequestSample:
  at: datetime
  status: int
  latency_ms: float


@dataclass(frozen=True)
class DeliverySample:
  at: datetime
  ok: bool
  latency_ms: float


S = TypeVar("S", RequestSample, DeliverySample)


class SlidingWindow(Generic[S]):
  """Samples from the last `span`, oldest first. Not thread-safe on its own."""

  def __init__(self, span: timedelta = WINDOW) -> None:
    self.span = span
    self._items: deque[S] = deque()

  def add(self, sample: S) -> None:
    self._items.append(sample)
    self.trim(sample.at)

  def trim(self, now: datetime) -> None:
    horizon = now - self.span
    while self._items and self._items[0].at < horizon:
      self._items.popleft()

  def clear(self) -> None:
    self._items.clear()

  def items(self) -> list[S]:
    return list(self._items)


def p95(latencies: Iterable[float]) -> float:
  ordered = sorted(latencies)
  if not ordered:
    return 0.0
  return round(ordered[max(0, int(len(ordered) * 0.95) - 1)], 2)


def _rate(part: int, whole: int) -> float:
  return round(part * 100.0 / whole, 2) if whole else 0.0


class RuntimeMetrics:
  def __init__(self) -> None:
    self.started_at = datetime.now(timezone.utc)
    self._t0 = monotonic()
    self._requests: SlidingWindow[RequestSample] = SlidingWindow()
    self._deliveries: SlidingWindow[DeliverySample] = SlidingWindow()
    self._lock = Lock()

  def observe_request(self, status_code: int, latency_ms: float) -> None:
    sample = RequestSample(at=datetime.now(timezone.utc), status=status_code, latency_ms=latency_ms)
    with self._lock:
      self._requests.add(sample)

  def observe_webhook(self, success: bool, latency_ms: float) -> None:
    sample = DeliverySample(at=datetime.now(timezone.utc), ok=success, latency_ms=latency_ms)
    with self._lock:
      self._deliveries.add(sample)

  def reset(self) -> None:
    with self._lock:
      self._requests.clear()
      self._deliveries.clear()

  def snapshot(self) -> dict:
    now = datetime.now(timezone.utc)
    with self._lock:
      self._requests.trim(now)
      self._deliveries.trim(now)
      requests = self._requests.items()
      deliveries = self._deliveries.items()

    recent = [r for r in requests if r.at >= now - RECENT]
    failed_24h = [r for r in requests if r.status >= 500]
    failed_15m = [r for r in recent if r.status >= 500]
    return {
      "uptimeSeconds": max(0, int(monotonic() - self._t0)),
      "p95LatencyMs24h": p95(r.latency_ms for r in requests),
      "requestCount15m": len(recent),
      "requestCount24h": len(requests),
      "errorCount15m": len(failed_15m),
      "errorCount24h": len(failed_24h),
      "errorRate15m": _rate(len(failed_15m), len(recent)),
      "errorRate24h": _rate(len(failed_24h), len(requests)),
      "webhookDeliveries24h": len(deliveries),
      "webhookFailures24h": sum(1 for d in deliveries if not d.ok),
      "webhookP95LatencyMs24h": p95(d.latency_ms for d in deliveries),
    }


runtime_metrics = RuntimeMetrics()
