#!/usr/bin/env python3
"""
cron_runtime.py

Runs one external program on a cron schedule and supervises it: start,
graceful interrupt, forced kill after a timeout, and orderly shutdown on
SIGINT/SIGTERM (or after the first run in run-once mode).
"""

from __future__ import annotations

import argparse
import logging
import os
import re
import shlex
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from pathlib import Path
from queue import Empty, SimpleQueue
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadDateError, croniter

try:
    import yaml
except ImportError:  # pragma: no cover - dependency check at runtime
    yaml = None


PROG = "cron-runtime"
LOGGER_NAME = "cron_runtime"
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_KILL_TIMEOUT = 0
CONFIG_KEYS = {"debug", "once", "kill_timeout", "log_file"}

DESCRIPTORS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}
EVERY_PREFIX = "@every "
CRON_FIELD_RE = re.compile(r"^[0-9A-Za-z*?,/\-]+$")
MONTH_NAMES = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
DAY_NAMES = {"sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6}
# (name, min, max, names) in seconds-first order.
CRON_FIELDS = (
    ("second", 0, 59, {}),
    ("minute", 0, 59, {}),
    ("hour", 0, 23, {}),
    ("day-of-month", 1, 31, {}),
    ("month", 1, 12, MONTH_NAMES),
    ("day-of-week", 0, 6, DAY_NAMES),
)
TZ_PREFIX_RE = re.compile(r"^(?:CRON_TZ|TZ)=(\S+)\s+(.*)$")
DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

UTC = timezone.utc


class CronRuntimeError(Exception):
    """Base error for cron-runtime."""


class ConfigError(CronRuntimeError):
    """Runtime configuration error."""


class InvalidScheduleError(CronRuntimeError):
    """Schedule expression does not parse."""


class SpawnError(CronRuntimeError):
    def __init__(self, program: str, error: OSError) -> None:
        super().__init__(f'cannot start "{program}": {error}')
        self.program = program
        self.error = error


class ProcessExitError(CronRuntimeError):
    def __init__(
        self,
        pid: int,
        returncode: Optional[int] = None,
        error: Optional[OSError] = None,
    ) -> None:
        if error is not None:
            detail = f"wait failed: {error}"
        elif returncode is not None and returncode < 0:
            detail = f"terminated by {signal_name(-returncode)}"
        else:
            detail = f"exit status {returncode}"
        super().__init__(detail)
        self.pid = pid
        self.returncode = returncode
        self.error = error


class SignalDeliveryError(CronRuntimeError):
    """Interrupt could not be delivered, usually because the process is gone."""


class KillWaitExpired(CronRuntimeError):
    """Process did not exit after the interrupt before the kill timeout."""


logger = logging.getLogger(LOGGER_NAME)


def setup_logging(debug: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if logger.handlers:
        return logger
    file_handler: Optional[logging.Handler] = None
    if log_file is not None:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Error: Cannot open log file {log_file}: {exc}") from exc
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    if file_handler is not None:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger


def signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


def require_yaml_dependency() -> None:
    if yaml is None:
        raise ConfigError(
            "Missing required dependency: PyYAML. Install with: pip install -r requirements.txt"
        )


@dataclass(frozen=True)
class RuntimeConfig:
    expression: str
    program: str
    args: Tuple[str, ...] = ()
    debug: bool = False
    once: bool = False
    kill_timeout: int = DEFAULT_KILL_TIMEOUT
    log_file: Optional[Path] = None

    @property
    def command(self) -> List[str]:
        return [self.program, *self.args]


def ensure_bool(value: Any, field_path: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"Error: {field_path} must be boolean.")
    return value


def ensure_int(value: Any, field_path: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Error: {field_path} must be an integer.")
    if value < minimum:
        raise ConfigError(f"Error: {field_path} must be >= {minimum}.")
    return value


def ensure_str(value: Any, field_path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Error: {field_path} must be a non-empty string.")
    return value.strip()


def load_config_file(config_path: Path) -> Dict[str, Any]:
    """Read runtime defaults from a YAML mapping.

    Only the keys in CONFIG_KEYS are accepted. A relative ``log_file`` is
    resolved against the directory holding the config file.
    """
    require_yaml_dependency()
    if not config_path.exists():
        raise ConfigError(f"Error: Config file not found: {config_path}")

    try:
        payload = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error: Failed to parse YAML in {config_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Error: {config_path} must contain a mapping at the top level.")

    unknown = sorted(str(key) for key in payload if key not in CONFIG_KEYS)
    if unknown:
        raise ConfigError(f"Error: Unknown config key(s) in {config_path}: {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    if "debug" in payload:
        values["debug"] = ensure_bool(payload["debug"], "debug")
    if "once" in payload:
        values["once"] = ensure_bool(payload["once"], "once")
    if "kill_timeout" in payload:
        values["kill_timeout"] = ensure_int(payload["kill_timeout"], "kill_timeout", minimum=0)
    if "log_file" in payload:
        log_file = Path(ensure_str(payload["log_file"], "log_file")).expanduser()
        if not log_file.is_absolute():
            log_file = config_path.resolve().parent / log_file
        values["log_file"] = log_file
    return values


def local_timezone() -> tzinfo:
    tz_name = os.environ.get("TZ")
    if tz_name:
        try:
            return ZoneInfo(tz_name.lstrip(":"))
        except (ZoneInfoNotFoundError, ValueError):
            pass
    try:
        with open("/etc/localtime", "rb") as handle:
            return ZoneInfo.from_file(handle, key="localtime")
    except (OSError, ValueError):
        pass
    return datetime.now().astimezone().tzinfo or UTC


def _ensure_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class CronSchedule:
    expression: str
    timezone: tzinfo

    def next_after(self, after: datetime) -> Optional[datetime]:
        local_after = _ensure_aware_utc(after).astimezone(self.timezone).replace(microsecond=0)
        iterator = croniter(self.expression, local_after, second_at_beginning=True)
        try:
            nxt = iterator.get_next(datetime)
        except CroniterBadDateError:
            return None
        if nxt.tzinfo is None:
            nxt = nxt.replace(tzinfo=self.timezone)
        return nxt.astimezone(UTC)


@dataclass(frozen=True)
class IntervalSchedule:
    interval: timedelta

    def next_after(self, after: datetime) -> Optional[datetime]:
        return _ensure_aware_utc(after).replace(microsecond=0) + self.interval


Schedule = Union[CronSchedule, IntervalSchedule]


def parse_duration(text: str) -> float:
    """Parse a Go-style duration such as ``1h30m`` or ``500ms`` into seconds."""
    text = text.strip()
    if text == "0":
        return 0.0
    if not text:
        raise InvalidScheduleError("Error: empty duration.")
    total = 0.0
    pos = 0
    while pos < len(text):
        match = DURATION_PART_RE.match(text, pos)
        if not match:
            raise InvalidScheduleError(f'Error: Invalid duration "{text}".')
        total += float(match.group(1)) * DURATION_UNITS[match.group(2)]
        pos = match.end()
    return total


def _field_value(
    token: str,
    field_name: str,
    min_value: int,
    max_value: int,
    names: Dict[str, int],
) -> int:
    lowered = token.lower()
    if lowered in names:
        return names[lowered]
    if not token.isdigit():
        raise InvalidScheduleError(f'Error: Invalid token "{token}" in {field_name} field.')
    value = int(token)
    if value < min_value or value > max_value:
        raise InvalidScheduleError(
            f'Error: Value "{value}" out of bounds {min_value}-{max_value} in {field_name} field.'
        )
    return value


def validate_cron_field(
    raw: str,
    field_name: str,
    min_value: int,
    max_value: int,
    names: Dict[str, int],
) -> str:
    """Check one cron field and return it with names and ``?`` rewritten as numbers and ``*``."""
    if not CRON_FIELD_RE.match(raw):
        raise InvalidScheduleError(f'Error: Invalid cron token "{raw}" in {field_name} field.')

    parts: List[str] = []
    for part in raw.split(","):
        if not part:
            raise InvalidScheduleError(f'Error: Invalid cron token "{raw}" in {field_name} field.')
        base, slash, step_str = part.partition("/")
        if slash and (not step_str.isdigit() or int(step_str) <= 0):
            raise InvalidScheduleError(f'Error: Invalid step "{part}" in {field_name} field.')
        suffix = f"/{int(step_str)}" if slash else ""

        if base in ("*", "?"):
            parts.append("*" + suffix)
            continue
        if "-" in base:
            left, _, right = base.partition("-")
            start = _field_value(left, field_name, min_value, max_value, names)
            end = _field_value(right, field_name, min_value, max_value, names)
            if start > end:
                raise InvalidScheduleError(f'Error: Invalid range "{base}" in {field_name} field.')
            parts.append(f"{start}-{end}{suffix}")
            continue
        value = _field_value(base, field_name, min_value, max_value, names)
        # "N/step" means N through the field maximum.
        parts.append(f"{value}-{max_value}{suffix}" if slash else str(value))
    return ",".join(parts)


def parse_schedule(expression: str) -> Schedule:
    raw = expression.strip()
    zone = local_timezone()

    tz_match = TZ_PREFIX_RE.match(raw)
    if tz_match:
        tz_name, raw = tz_match.group(1), tz_match.group(2).strip()
        try:
            zone = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise InvalidScheduleError(f'Error: Invalid timezone "{tz_name}" in "{expression}".') from exc

    if raw.startswith("@"):
        if raw.startswith(EVERY_PREFIX):
            seconds = int(parse_duration(raw[len(EVERY_PREFIX):]))
            return IntervalSchedule(interval=timedelta(seconds=max(seconds, 1)))
        if raw not in DESCRIPTORS:
            raise InvalidScheduleError(f'Error: Unrecognized descriptor "{raw}".')
        raw = DESCRIPTORS[raw]

    fields = raw.split()
    if len(fields) not in (5, 6):
        raise InvalidScheduleError(
            f'Error: Expected 5 or 6 fields, found {len(fields)}: "{expression}".'
        )
    if len(fields) == 5:
        fields.insert(0, "0")
    normalized = " ".join(
        validate_cron_field(token, name, min_value, max_value, names)
        for token, (name, min_value, max_value, names) in zip(fields, CRON_FIELDS)
    )
    try:
        croniter(normalized, datetime.now(tz=zone), second_at_beginning=True)
    except (ValueError, KeyError) as exc:
        raise InvalidScheduleError(f'Error: Invalid cron expression "{expression}": {exc}') from exc
    return CronSchedule(expression=normalized, timezone=zone)


class CronTrigger:
    """Fires a callback on its own thread at every instant a schedule matches.

    Firings are neither queued nor coalesced; a slow callback can overlap
    the next one. ``stop()`` returns an event that is set once every
    dispatched callback has returned.
    """

    def __init__(self, schedule: Schedule, callback: Callable[[], Any]) -> None:
        self.schedule = schedule
        self._callback = callback
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._idle = threading.Event()
        self._in_flight = 0
        self._dispatched = 0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        with self._lock:
            if self._thread is not None or self._stopping.is_set():
                return
            self._thread = threading.Thread(target=self._loop, name="cron-trigger", daemon=True)
            self._thread.start()

    def stop(self) -> threading.Event:
        with self._lock:
            self._stopping.set()
            if self._in_flight == 0:
                self._idle.set()
        return self._idle

    def _loop(self) -> None:
        next_fire = self.schedule.next_after(datetime.now(tz=UTC))
        while not self._stopping.is_set():
            if next_fire is None:
                logger.warning("Schedule has no future firings; idling until stopped.")
                self._stopping.wait()
                break
            delay = (next_fire - datetime.now(tz=UTC)).total_seconds()
            if delay > 0:
                self._stopping.wait(delay)
                continue
            self._dispatch(next_fire)
            next_fire = self.schedule.next_after(max(next_fire, datetime.now(tz=UTC)))

    def _dispatch(self, scheduled_for: datetime) -> None:
        with self._lock:
            if self._stopping.is_set():
                return
            self._in_flight += 1
            self._dispatched += 1
            number = self._dispatched
        logger.debug("Dispatching firing #%s (scheduled_for=%s)", number, scheduled_for.isoformat())
        thread = threading.Thread(target=self._invoke, name=f"cron-run-{number}", daemon=True)
        thread.start()

    def _invoke(self) -> None:
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback raised")
        finally:
            with self._lock:
                self._in_flight -= 1
                if self._in_flight == 0 and self._stopping.is_set():
                    self._idle.set()


def schedule(expression: str, callback: Callable[[], Any]) -> CronTrigger:
    return CronTrigger(parse_schedule(expression), callback)


class OneShot:
    """Broadcast signal that can be fired at most once."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._listeners: List[Callable[[], None]] = []

    def __repr__(self) -> str:
        state = "fired" if self.is_set() else "pending"
        return f"OneShot({self.name!r}, {state})"

    def fire(self) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener()
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def add_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._listeners.append(listener)
                return
        listener()

    def remove_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)


def wait_any(*signals: OneShot, timeout: Optional[float] = None) -> Optional[OneShot]:
    """Block until one of ``signals`` fires; earlier arguments win ties.

    Returns None if ``timeout`` elapses first.
    """
    wakeup: SimpleQueue[None] = SimpleQueue()

    def notify() -> None:
        wakeup.put(None)

    for sig in signals:
        sig.add_listener(notify)
    try:
        wakeup.get(timeout=timeout)
    except Empty:
        return None
    finally:
        for sig in signals:
            sig.remove_listener(notify)
    return next((sig for sig in signals if sig.is_set()), None)


@dataclass(frozen=True)
class ShutdownSignals:
    terminate: OneShot = field(default_factory=lambda: OneShot("terminate"))
    stop: OneShot = field(default_factory=lambda: OneShot("stop"))
    kill: OneShot = field(default_factory=lambda: OneShot("kill"))


class OnceGuard:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed = False

    @property
    def claimed(self) -> bool:
        return self._claimed

    def claim(self) -> bool:
        with self._lock:
            if self._claimed:
                return False
            self._claimed = True
            return True


@dataclass
class Run:
    process: subprocess.Popen
    command: List[str]
    done: OneShot = field(default_factory=lambda: OneShot("done"))
    returncode: Optional[int] = None
    error: Optional[CronRuntimeError] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    def cancel(self) -> None:
        """Force-kill the process if it is still running."""
        if self.done.is_set():
            return
        try:
            self.process.kill()
        except OSError as exc:
            logger.error("[pid=%s] Failed to kill process: %s", self.pid, exc)


def start_process(program: str, args: Sequence[str], inherit_output: bool = False) -> Run:
    command = [program, *args]
    stream = None if inherit_output else subprocess.DEVNULL
    try:
        process = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=stream,
            stderr=stream,
        )
    except OSError as exc:
        raise SpawnError(program, exc) from exc
    run = Run(process=process, command=command)
    waiter = threading.Thread(target=_wait_for_exit, args=(run,), name=f"wait-{run.pid}", daemon=True)
    waiter.start()
    return run


def _wait_for_exit(run: Run) -> None:
    exit_error: Optional[ProcessExitError] = None
    try:
        run.returncode = run.process.wait()
        if run.returncode != 0:
            exit_error = ProcessExitError(run.pid, returncode=run.returncode)
    except OSError as exc:
        exit_error = ProcessExitError(run.pid, error=exc)
    finally:
        if exit_error is not None:
            logger.error("[pid=%s] Process exited with error: %s", run.pid, exit_error)
            # A KillWaitExpired recorded by the coordinator takes precedence.
            if run.error is None:
                run.error = exit_error
        run.done.fire()


def interrupt(run: Run) -> None:
    if run.done.is_set() or run.process.returncode is not None:
        raise SignalDeliveryError(f"process {run.pid} already exited")
    try:
        run.process.send_signal(signal.SIGINT)
    except OSError as exc:
        raise SignalDeliveryError(f"process {run.pid}: {exc}") from exc


class RunState(Enum):
    SKIPPED = "skipped"
    SPAWN_FAILED = "spawn_failed"
    COMPLETED = "completed"
    KILL_WAIT_EXPIRED = "kill_wait_expired"


class ExecutionCoordinator:
    """Trigger callback that owns the lifecycle of one run per firing."""

    def __init__(
        self,
        config: RuntimeConfig,
        signals: ShutdownSignals,
        start: Callable[..., Run] = start_process,
    ) -> None:
        self.config = config
        self.signals = signals
        self._start = start
        self._once = OnceGuard()

    def __call__(self) -> RunState:
        if self.config.once and not self._once.claim():
            return RunState.SKIPPED
        try:
            return self._execute()
        finally:
            if self.config.once:
                self.signals.stop.fire()

    def _execute(self) -> RunState:
        logger.info("CMD: %s", shlex.join(self.config.command))
        try:
            run = self._start(self.config.program, self.config.args, inherit_output=self.config.debug)
        except SpawnError as exc:
            logger.error("Failed to start process: %s", exc)
            return RunState.SPAWN_FAILED

        logger.debug("[pid=%s] Process starting...", run.pid)
        try:
            return self._supervise(run)
        finally:
            logger.debug("[pid=%s] Process finished", run.pid)
            run.cancel()

    def _supervise(self, run: Run) -> RunState:
        if wait_any(run.done, self.signals.terminate) is run.done:
            return RunState.COMPLETED

        logger.debug("[pid=%s] Process terminating...", run.pid)
        try:
            interrupt(run)
        except SignalDeliveryError as exc:
            logger.error("[pid=%s] Failed to send interrupt signal: %s", run.pid, exc)

        if wait_any(run.done, self.signals.kill) is run.done:
            return RunState.COMPLETED
        run.error = KillWaitExpired(f"process {run.pid} did not exit after interrupt")
        logger.warning("[pid=%s] Process killed: %s", run.pid, run.error)
        return RunState.KILL_WAIT_EXPIRED


class ShutdownOrchestrator:
    """Waits for SIGINT/SIGTERM or the stop signal and drives the shutdown."""

    handled_signals = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, config: RuntimeConfig, signals: ShutdownSignals, trigger: CronTrigger) -> None:
        self.config = config
        self.signals = signals
        self.trigger = trigger
        # SimpleQueue.put is reentrant, so it is safe to call from a signal handler.
        self._wakeups: SimpleQueue[Optional[int]] = SimpleQueue()
        self._previous_handlers: Dict[int, Any] = {}

    def install_signal_handlers(self) -> None:
        for sig in self.handled_signals:
            self._previous_handlers[sig] = signal.signal(sig, self._on_os_signal)

    def restore_signal_handlers(self) -> None:
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()

    def notify(self, signum: int) -> None:
        self._wakeups.put(signum)

    def _on_os_signal(self, signum: int, frame: Any) -> None:
        self.notify(signum)

    def run(self) -> int:
        self.signals.stop.add_listener(lambda: self._wakeups.put(None))

        signum = self._wakeups.get()
        if signum is None:
            logger.info("Stopping...")
        else:
            logger.info("Received %s signal, stopping...", signal_name(signum))
            self.signals.terminate.fire()

        idle = self.trigger.stop()
        if self.config.kill_timeout > 0 and not idle.wait(self.config.kill_timeout):
            logger.warning("Killing... (no exit within %ss)", self.config.kill_timeout)
            self.signals.kill.fire()
        idle.wait()
        logger.info("Cron stopped")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        usage="%(prog)s [flags] <expression> -- program [args...]",
        description="Run a program on a cron schedule and supervise its lifecycle.",
        allow_abbrev=False,
    )
    parser.add_argument("-debug", "--debug", action="store_true", default=None, help="Debug info")
    parser.add_argument("-once", "--once", action="store_true", default=None, help="Run once and exit")
    parser.add_argument(
        "-kill-timeout",
        "--kill-timeout",
        dest="kill_timeout",
        type=int,
        default=None,
        metavar="N",
        help="Kill timeout in seconds (default: 0, wait for the run indefinitely)",
    )
    parser.add_argument("-config", "--config", help="YAML file with default flag values")
    parser.add_argument("-log-file", "--log-file", dest="log_file", help="Also write logs to this file")
    parser.add_argument("positionals", nargs="*", metavar="expression", help=argparse.SUPPRESS)
    return parser


def _pick(cli_value: Any, file_values: Dict[str, Any], key: str, default: Any) -> Any:
    if cli_value is not None:
        return cli_value
    return file_values.get(key, default)


def parse_args(argv: Optional[Sequence[str]] = None) -> RuntimeConfig:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()

    separated = "--" in argv
    if separated:
        split = argv.index("--")
        head, program_argv = argv[:split], argv[split + 1:]
    else:
        head, program_argv = argv, []

    args = parser.parse_args(head)
    if len(args.positionals) + int(separated) + len(program_argv) < 3:
        parser.error("invalid number of arguments")
    # Flags must precede the expression, as with Go's flag package.
    if len(args.positionals) != 1 or not separated or head[-1] != args.positionals[0]:
        parser.error("invalid arguments")
    if args.kill_timeout is not None and args.kill_timeout < 0:
        parser.error("-kill-timeout must be >= 0")

    file_values = load_config_file(Path(args.config).expanduser()) if args.config else {}
    log_file = Path(args.log_file).expanduser() if args.log_file else file_values.get("log_file")
    return RuntimeConfig(
        expression=args.positionals[0],
        program=program_argv[0],
        args=tuple(program_argv[1:]),
        debug=_pick(args.debug, file_values, "debug", False),
        once=_pick(args.once, file_values, "once", False),
        kill_timeout=_pick(args.kill_timeout, file_values, "kill_timeout", DEFAULT_KILL_TIMEOUT),
        log_file=log_file,
    )


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = parse_args(argv)
        setup_logging(config.debug, config.log_file)
    except ConfigError as exc:
        setup_logging()
        logger.error(str(exc))
        return 1

    signals = ShutdownSignals()
    coordinator = ExecutionCoordinator(config, signals)
    try:
        trigger = schedule(config.expression, coordinator)
    except InvalidScheduleError as exc:
        logger.error("Failed to add cron job: %s", exc)
        return 1

    orchestrator = ShutdownOrchestrator(config, signals, trigger)
    orchestrator.install_signal_handlers()
    try:
        logger.debug(
            "Scheduled %s (once=%s, kill_timeout=%ss)",
            config.expression,
            config.once,
            config.kill_timeout,
        )
        trigger.start()
        return orchestrator.run()
    except Exception as exc:  # pragma: no cover - defensive
        logger.exception("Unexpected error: %s", exc)
        return 1
    finally:
        orchestrator.restore_signal_handlers()


if __name__ == "__main__":
    raise SystemExit(main())
