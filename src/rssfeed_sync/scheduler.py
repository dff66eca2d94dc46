"""Recurring sync scheduling through the user's crontab.

The program owns every crontab line whose command equals its own sync
command. Installing computes the lines it wants, compares them with the
lines it already owns and rewrites the table only when they differ, so
repeated installs never leave duplicate or stale entries behind.
"""

import logging
import os
import shlex
import subprocess
import sys
from dataclasses import dataclass
from typing import Callable

from rssfeed_sync.errors import (
    SchedulerFailedError,
    SchedulerUnavailableError,
    ScheduleInvalidError,
)

logger = logging.getLogger(__name__)

MIN_MINUTES = 1
MAX_MINUTES = 1440  # one day
SYNC_SUBCOMMAND = "sync"


@dataclass(frozen=True)
class CronSchedule:
    """Crontab time expressions for one interval, plus a readable form."""

    expressions: tuple[str, ...]
    description: str


def minutes_to_schedule(minutes: int) -> CronSchedule:
    """Map a sync interval in minutes to crontab expressions.

    Sub-hour intervals and whole hours use cron steps. Any other interval
    is laid out from midnight in ``minutes`` steps, and the run times are
    grouped by minute-of-hour into one expression each with an explicit
    hour list. That repeats exactly when the interval divides a day and
    otherwise restarts at midnight, as cron steps do.

    Raises:
        ScheduleInvalidError: If ``minutes`` is outside 1..1440.
    """
    if minutes < MIN_MINUTES or minutes > MAX_MINUTES:
        raise ScheduleInvalidError(
            f"invalid schedule minutes {minutes}, must be between "
            f"{MIN_MINUTES} and {MAX_MINUTES}"
        )

    if minutes < 60:
        if minutes == 1:
            return CronSchedule(("* * * * *",), "every minute")
        return CronSchedule((f"*/{minutes} * * * *",), f"every {minutes} minutes")
    if minutes == 60:
        return CronSchedule(("0 * * * *",), "every hour")

    hours, rest = divmod(minutes, 60)
    if rest == 0:
        expression = "0 0 * * *" if hours == 24 else f"0 */{hours} * * *"
        return CronSchedule((expression,), f"every {hours} hours")

    hours_by_minute: dict[int, list[int]] = {}
    for offset in range(0, MAX_MINUTES, minutes):
        hour, minute = divmod(offset, 60)
        hours_by_minute.setdefault(minute, []).append(hour)
    expressions = tuple(
        f"{minute} {','.join(str(h) for h in hour_list)} * * *"
        for minute, hour_list in sorted(hours_by_minute.items())
    )
    return CronSchedule(
        expressions, f"every {_plural(hours, 'hour')} and {_plural(rest, 'minute')}"
    )


def default_command(db_path: str | None = None) -> str:
    """Build the sync command line for the running program.

    This string is also the signature used to recognize the program's own
    crontab lines.
    """
    program = sys.argv[0] if sys.argv else ""
    if not program or program in ("-c", "-m") or program.endswith("__main__.py"):
        parts = [sys.executable, "-m", "rssfeed_sync"]
    else:
        parts = [os.path.abspath(program)]
    if db_path:
        parts += ["--db", os.path.abspath(os.path.expanduser(db_path))]
    parts.append(SYNC_SUBCOMMAND)
    # cron turns unescaped % into newlines
    return " ".join(shlex.quote(p) for p in parts).replace("%", r"\%")


class CrontabClient:
    """Reads and writes the current user's crontab with the crontab binary."""

    def __init__(self, binary: str = "crontab"):
        self.binary = binary

    def read(self) -> str:
        """Return the current crontab, or an empty string if there is none."""
        proc = self._run("-l")
        if proc.returncode != 0:
            if "no crontab" in proc.stderr.lower():
                return ""
            raise SchedulerFailedError(
                f"`{self.binary} -l` failed", proc.stderr.strip()
            )
        return proc.stdout

    def write(self, text: str) -> None:
        """Replace the whole crontab with ``text``."""
        proc = self._run("-", stdin=text)
        if proc.returncode != 0:
            raise SchedulerFailedError(
                f"`{self.binary} -` failed", proc.stderr.strip()
            )

    def _run(self, arg: str, stdin: str | None = None) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.binary, arg],
                input=stdin,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise SchedulerUnavailableError(
                f"`{self.binary}` not installed, please install it to use this feature"
            ) from e
        except OSError as e:
            raise SchedulerFailedError(f"could not run `{self.binary}`", str(e)) from e


class Scheduler:
    """Installs, updates and removes the recurring sync job."""

    def __init__(self, command: str, crontab: CrontabClient | None = None):
        self.command = command
        self.crontab = crontab or CrontabClient()

    def install(self, minutes: int) -> str:
        """Schedule the sync command every ``minutes`` minutes.

        Returns:
            A readable description of the schedule, e.g. "every 2 hours".

        Raises:
            ScheduleInvalidError: For an out-of-range interval.
            SchedulerUnavailableError: If crontab is not installed.
            SchedulerFailedError: If crontab rejects the read or write.
        """
        schedule = minutes_to_schedule(minutes)
        desired = [f"{expression} {self.command}" for expression in schedule.expressions]

        lines = self.crontab.read().splitlines()
        current = [_normalize(line) for line in lines if self._is_own(line)]
        if current == [_normalize(line) for line in desired]:
            logger.info("Sync already scheduled %s, leaving crontab unchanged", schedule.description)
            return schedule.description

        self.crontab.write(_render(_replace_lines(lines, desired, self._is_own)))
        logger.info("Scheduled sync to run %s", schedule.description)
        return schedule.description

    def uninstall(self) -> bool:
        """Remove the sync job. Returns False if none was scheduled."""
        lines = self.crontab.read().splitlines()
        kept = [line for line in lines if not self._is_own(line)]
        if len(kept) == len(lines):
            return False
        self.crontab.write(_render(kept))
        logger.info("Removed scheduled sync")
        return True

    def _is_own(self, line: str) -> bool:
        return _command_of(line) == _normalize(self.command)


def _command_of(line: str) -> str | None:
    """Return the command part of a crontab job line, None for other lines."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    if stripped.startswith("@"):
        parts = stripped.split(None, 1)
        expected = 2
    else:
        parts = stripped.split(None, 5)
        expected = 6
    # environment assignments such as MAILTO=... are not jobs
    if len(parts) != expected or "=" in parts[0]:
        return None
    return _normalize(parts[-1])


def _replace_lines(
    lines: list[str], desired: list[str], is_own: Callable[[str], bool]
) -> list[str]:
    """Swap owned lines for ``desired`` at the position of the first one."""
    result: list[str] = []
    placed = False
    for line in lines:
        if not is_own(line):
            result.append(line)
        elif not placed:
            result.extend(desired)
            placed = True
    if not placed:
        result.extend(desired)
    return result


def _render(lines: list[str]) -> str:
    return "\n".join(lines) + "\n" if lines else ""


def _normalize(text: str) -> str:
    return " ".join(text.split())


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"
