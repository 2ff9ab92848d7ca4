"""Cron-style schedules and a small in-process scheduler."""

from __future__ import annotations

import dataclasses
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

log = logging.getLogger(__name__)

_MONTH_NAMES = {
    name: number
    for number, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}
_DOW_NAMES = {
    name: number
    for number, name in enumerate(("sun", "mon", "tue", "wed", "thu", "fri", "sat"))
}

_DESCRIPTORS = {
    "@yearly": "0 0 0 1 1 *",
    "@annually": "0 0 0 1 1 *",
    "@monthly": "0 0 0 1 * *",
    "@weekly": "0 0 0 * * 0",
    "@daily": "0 0 0 * * *",
    "@midnight": "0 0 0 * * *",
    "@hourly": "0 0 * * * *",
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


class CronError(ValueError):
    """A schedule specification could not be parsed or satisfied."""


@dataclass(frozen=True)
class Schedule:
    """A set of matching times, or a constant delay between runs."""

    seconds: FrozenSet[int] = frozenset()
    minutes: FrozenSet[int] = frozenset()
    hours: FrozenSet[int] = frozenset()
    days_of_month: FrozenSet[int] = frozenset()
    months: FrozenSet[int] = frozenset()
    days_of_week: FrozenSet[int] = frozenset()
    dom_star: bool = False
    dow_star: bool = False
    interval: Optional[timedelta] = None

    def _day_matches(self, t: datetime) -> bool:
        dom = t.day in self.days_of_month
        dow = t.isoweekday() % 7 in self.days_of_week
        if self.dom_star or self.dow_star:
            return dom and dow
        return dom or dow

    def next(self, after: datetime) -> datetime:
        """Return the first matching time strictly after ``after``."""
        if self.interval is not None:
            return after.replace(microsecond=0) + self.interval

        t = after.replace(microsecond=0) + timedelta(seconds=1)
        year_limit = t.year + 5
        while t.year <= year_limit:
            if t.month not in self.months:
                year, month = (t.year + 1, 1) if t.month == 12 else (t.year, t.month + 1)
                t = t.replace(year=year, month=month, day=1, hour=0, minute=0, second=0)
                continue
            if not self._day_matches(t):
                t = (t + timedelta(days=1)).replace(hour=0, minute=0, second=0)
                continue
            if t.hour not in self.hours:
                t = t.replace(minute=0, second=0) + timedelta(hours=1)
                continue
            if t.minute not in self.minutes:
                t = t.replace(second=0) + timedelta(minutes=1)
                continue
            if t.second not in self.seconds:
                t += timedelta(seconds=1)
                continue
            return t
        raise CronError("schedule has no matching time")


def _number(text: str, names: Dict[str, int]) -> int:
    lowered = text.lower()
    if lowered in names:
        return names[lowered]
    try:
        return int(text)
    except ValueError:
        raise CronError(f"failed to parse int from {text!r}") from None


def _parse_field(
    text: str, low: int, high: int, names: Dict[str, int]
) -> Tuple[FrozenSet[int], bool]:
    values = set()
    star = False
    for part in text.split(","):
        span, has_step, step_text = part.partition("/")
        step = _number(step_text, {}) if has_step else 1
        if step <= 0:
            raise CronError(f"step must be positive: {part!r}")
        if span in ("*", "?"):
            start, end = low, high
            star = star or not has_step
        else:
            first, has_end, last = span.partition("-")
            start = _number(first, names)
            if has_end:
                end = _number(last, names)
            else:
                end = high if has_step else start
        if start < low or end > high:
            raise CronError(f"value out of range [{low}, {high}]: {part!r}")
        if start > end:
            raise CronError(f"beginning of range after end: {part!r}")
        values.update(range(start, end + 1, step))
    return frozenset(values), star


def _parse_duration(text: str) -> timedelta:
    text = text.strip()
    parts = _DURATION_PART.findall(text)
    if not text or "".join(n + u for n, u in parts) != text:
        raise CronError(f"failed to parse duration {text!r}")
    seconds = sum(float(n) * _DURATION_UNITS[u] for n, u in parts)
    return timedelta(seconds=max(int(seconds), 1))


def parse(spec: str) -> Schedule:
    """Parse a six-field (or five-field, without day of week) cron spec."""
    spec = spec.strip()
    if spec.startswith("@every "):
        return Schedule(interval=_parse_duration(spec[len("@every "):]))
    if spec.startswith("@"):
        try:
            spec = _DESCRIPTORS[spec]
        except KeyError:
            raise CronError(f"unrecognized descriptor: {spec!r}") from None

    fields = spec.split()
    if len(fields) == 5:
        fields.append("*")
    if len(fields) != 6:
        raise CronError(f"expected 5 or 6 fields, found {len(fields)}: {spec!r}")

    seconds, _ = _parse_field(fields[0], 0, 59, {})
    minutes, _ = _parse_field(fields[1], 0, 59, {})
    hours, _ = _parse_field(fields[2], 0, 23, {})
    dom, dom_star = _parse_field(fields[3], 1, 31, {})
    months, _ = _parse_field(fields[4], 1, 12, _MONTH_NAMES)
    dow, dow_star = _parse_field(fields[5], 0, 6, _DOW_NAMES)
    return Schedule(
        seconds=seconds,
        minutes=minutes,
        hours=hours,
        days_of_month=dom,
        months=months,
        days_of_week=dow,
        dom_star=dom_star,
        dow_star=dow_star,
    )


@dataclass
class Entry:
    """A named job registered in a cron, with its schedule and next run."""

    schedule: Schedule
    job: Any
    name: str
    next: Optional[datetime] = None


def _run_job(job: Any) -> None:
    try:
        run = getattr(job, "run", None)
        if callable(run):
            run()
        else:
            job()
    except Exception:  # a failing job must not stop the scheduler
        log.exception("cron job failed")


class Cron:
    """Runs jobs at the times their schedules select."""

    def __init__(self, tick: float = 0.2) -> None:
        self._entries: List[Entry] = []
        self._lock = threading.Lock()
        self._tick = tick
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def schedule(self, schedule: Schedule, job: Any, name: str) -> None:
        """Register a job under a name."""
        entry = Entry(schedule=schedule, job=job, name=name, next=schedule.next(datetime.now()))
        with self._lock:
            self._entries.append(entry)

    def remove(self, name: str) -> None:
        """Remove every entry registered under the name."""
        with self._lock:
            self._entries = [e for e in self._entries if e.name != name]

    def entries(self) -> List[Entry]:
        """Return copies of the registered entries, soonest first."""
        with self._lock:
            copies = [dataclasses.replace(e) for e in self._entries]
        copies.sort(key=lambda e: (e.next is None, e.next or datetime.min))
        return copies

    def _take_due(self, now: datetime) -> List[Tuple[str, Any]]:
        due = []
        with self._lock:
            for entry in self._entries:
                if entry.next is not None and entry.next <= now:
                    due.append((entry.name, entry.job))
                    entry.next = entry.schedule.next(now)
        return due

    def run_pending(self, now: datetime) -> List[str]:
        """Run the jobs that are due at ``now`` and return their names."""
        due = self._take_due(now)
        for _, job in due:
            _run_job(job)
        return [name for name, _ in due]

    def _loop(self) -> None:
        while not self._stop_event.wait(self._tick):
            for _, job in self._take_due(datetime.now()):
                threading.Thread(target=_run_job, args=(job,), daemon=True).start()

    def start(self) -> None:
        """Start running jobs in a background thread."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background thread; running jobs are not interrupted."""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join()
        self._thread = None