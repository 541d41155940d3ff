"""
KeepNotes Backend — Agent Worker Process Layer
================================================

What:  Starts the external agent process, drains its output streams, and
       enforces a hard deadline on its lifetime.
Why:   The agent is slow to start, untrusted and may hang or print anything.
       The event loop must never block on it, its pipes must never fill up,
       and it must never outlive its deadline.
How:   asyncio subprocess in its own session, two concurrent stream readers and
       one exit waiter. A loop.call_later timer kills the whole process group
       if the agent has not exited in time. Once the agent exits, its pipes get
       a short grace period to drain; anything still holding them after that
       is killed and abandoned.

Lifecycle:
    CREATED ──launch──▶ RUNNING ──exit──▶ EXITED_NORMALLY ──┐
                           │                                ├─ both streams EOF ─▶ FINALIZED
                           └──deadline──▶ EXITED_FORCED ────┘

    The state only moves on three events: the process exiting, stdout
    reaching EOF and stderr reaching EOF (or the drain grace running out).
    FINALIZED is reached once all three have happened; only then is a
    WorkerOutcome handed out.
"""

import asyncio
import codecs
import enum
import logging
import os
import signal
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Mapping, Optional, Tuple

from keepnotes.exceptions import LaunchError, WorkerError

logger = logging.getLogger(__name__)

# Read size per chunk; any size works, this just bounds a single read
READ_CHUNK_SIZE = 8192

# How long pipes may stay open after the agent itself has exited
DRAIN_GRACE_SECONDS = 2.0

# Interval for noticing that the agent was reaped
EXIT_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class WorkerInvocation:
    """Everything needed to start one agent run. Built once per chat request."""

    command: str
    args: Tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_ms: int = 120_000

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


@dataclass(frozen=True)
class WorkerOutcome:
    """
    Finalized record of one agent run.

    Invariant: timed_out implies terminated_by_signal is set. A process that
    died from a signal has exit_code None.
    """

    exit_code: Optional[int]
    terminated_by_signal: Optional[str]
    stdout: str
    stderr: str
    timed_out: bool = False


class WorkerState(str, enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    EXITED_NORMALLY = "exited_normally"
    EXITED_FORCED = "exited_forced"
    FINALIZED = "finalized"


class WorkerRun:
    """
    Mutable per-run recorder that becomes a WorkerOutcome.

    Each buffer has exactly one writer (its stream collector). The exit
    status is written once by the exit waiter.
    """

    def __init__(self) -> None:
        self.state = WorkerState.CREATED
        self._stdout: List[str] = []
        self._stderr: List[str] = []
        self._returncode: Optional[int] = None

    @property
    def stdout(self) -> str:
        return "".join(self._stdout)

    @property
    def stderr(self) -> str:
        return "".join(self._stderr)

    def append_stdout(self, text: str) -> None:
        self._stdout.append(text)

    def append_stderr(self, text: str) -> None:
        self._stderr.append(text)

    def mark_running(self) -> None:
        self._expect(WorkerState.CREATED)
        self.state = WorkerState.RUNNING

    def mark_exited(self, returncode: int, forced: bool) -> None:
        self._expect(WorkerState.RUNNING)
        self._returncode = returncode
        self.state = WorkerState.EXITED_FORCED if forced else WorkerState.EXITED_NORMALLY

    def finalize(self) -> WorkerOutcome:
        if self.state not in (WorkerState.EXITED_NORMALLY, WorkerState.EXITED_FORCED):
            raise RuntimeError(f"Cannot finalize a worker run in state {self.state.value}")
        timed_out = self.state is WorkerState.EXITED_FORCED
        exit_code, signal_name = _split_returncode(self._returncode)
        if timed_out and signal_name is None:
            # Windows kill() reports a plain exit code
            signal_name = "SIGKILL"
        self.state = WorkerState.FINALIZED
        return WorkerOutcome(
            exit_code=exit_code,
            terminated_by_signal=signal_name,
            stdout=self.stdout,
            stderr=self.stderr,
            timed_out=timed_out,
        )

    def _expect(self, expected: WorkerState) -> None:
        if self.state is not expected:
            raise RuntimeError(
                f"Worker run is {self.state.value}, expected {expected.value}"
            )


def _split_returncode(returncode: Optional[int]) -> Tuple[Optional[int], Optional[str]]:
    """asyncio reports death-by-signal N as returncode -N."""
    if returncode is None or returncode >= 0:
        return returncode, None
    try:
        return None, signal.Signals(-returncode).name
    except ValueError:
        return None, f"SIG{-returncode}"


# ══════════════════════════════════════════════════════════════════════════
# Process Launcher
# ══════════════════════════════════════════════════════════════════════════

Launcher = Callable[[WorkerInvocation], Awaitable[asyncio.subprocess.Process]]


async def launch_worker(invocation: WorkerInvocation) -> asyncio.subprocess.Process:
    """
    Start the agent process.

    stdin is DEVNULL so the agent sees EOF immediately; stdout and stderr are
    pipes drained by collect_stream(). The agent leads a new session, so
    everything it starts shares its process group (POSIX).

    Raises:
        LaunchError: the process could not be started (missing executable,
            permission denied, out of processes or file descriptors, an
            argument the OS cannot pass such as one with a NUL byte).
    """
    try:
        return await asyncio.create_subprocess_exec(
            invocation.command,
            *invocation.args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(invocation.env) if invocation.env else None,
            start_new_session=True,
        )
    except (OSError, ValueError) as exc:
        logger.error("Failed to spawn agent %s: %s", invocation.command, exc)
        reason = getattr(exc, "strerror", None) or str(exc)
        raise LaunchError(
            message=f"Failed to start agent process: {reason}",
            stderr=str(exc),
            context={"command": invocation.command, "errno": getattr(exc, "errno", None)},
        ) from exc


def kill_process_group(process: asyncio.subprocess.Process) -> None:
    """
    SIGKILL the agent and every process in its group.

    Falls back to process.kill() where there are no process groups, or when
    the agent was not started as a group leader (custom launchers).

    Raises:
        ProcessLookupError: nothing was left to kill.
    """
    if hasattr(os, "killpg"):
        try:
            os.killpg(process.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            pass
    process.kill()


# ══════════════════════════════════════════════════════════════════════════
# Stream Collector
# ══════════════════════════════════════════════════════════════════════════

async def collect_stream(
    stream: Optional[asyncio.StreamReader],
    append: Callable[[str], None],
    chunk_size: int = READ_CHUNK_SIZE,
) -> None:
    """
    Drain `stream` until EOF, handing each decoded chunk to `append` in order.

    Decoding is incremental so a UTF-8 sequence split across two reads comes
    out whole. Undecodable bytes become U+FFFD instead of failing the run.
    """
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(chunk_size)
        if not chunk:
            break
        text = decoder.decode(chunk)
        if text:
            append(text)
    tail = decoder.decode(b"", final=True)
    if tail:
        append(tail)


# ══════════════════════════════════════════════════════════════════════════
# Deadline Guard
# ══════════════════════════════════════════════════════════════════════════

class DeadlineGuard:
    """
    One-shot timer that kills a process which outlives its deadline.

    arm() schedules the timer, disarm() cancels it. When the timer fires on a
    process that is still running it sends exactly one kill and sets `fired`.
    The default kill takes the agent's whole process group with it, so
    nothing the agent started keeps its pipes open. A process that has
    already exited is left alone.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        timeout_seconds: float,
        kill: Optional[Callable[[], None]] = None,
    ):
        self._process = process
        self.timeout_seconds = timeout_seconds
        self._kill = kill or (lambda: kill_process_group(process))
        self._handle: Optional[asyncio.TimerHandle] = None
        self.fired = False

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self) -> None:
        if self._handle is not None or self.fired:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout_seconds, self._expire)

    def disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _expire(self) -> None:
        self._handle = None
        if self.fired or self._process.returncode is not None:
            return
        try:
            self._kill()
        except ProcessLookupError:
            # Exited between the returncode check and kill(); that is a natural exit
            return
        self.fired = True
        logger.warning(
            "Agent pid=%s exceeded %.1fs deadline, killed",
            self._process.pid,
            self.timeout_seconds,
        )


# ══════════════════════════════════════════════════════════════════════════
# Run
# ══════════════════════════════════════════════════════════════════════════

async def wait_for_exit(
    process: asyncio.subprocess.Process,
    poll_interval: float = EXIT_POLL_SECONDS,
) -> int:
    """
    Return the exit status as soon as the agent has been reaped.

    Process.wait() only returns once every pipe is closed as well, and a
    process the agent started can hold them open long after the agent is gone.
    """
    while process.returncode is None:
        await asyncio.sleep(poll_interval)
    return process.returncode


async def run_worker(
    invocation: WorkerInvocation,
    launcher: Launcher = launch_worker,
) -> WorkerOutcome:
    """
    Run the agent to completion (or to its deadline) and return the outcome.

    Both readers run while the exit waiter watches the process. The guard is
    disarmed the moment the agent exits; the readers then get
    DRAIN_GRACE_SECONDS to reach EOF. If something the agent left behind still
    holds the pipes after that, its process group is killed and whatever was
    read so far is the output.

    If this coroutine is cancelled the guard stays armed, so an abandoned
    agent is still killed at its deadline.

    Raises:
        LaunchError: from the launcher.
        WorkerError: reading a stream failed mid-run.
    """
    run = WorkerRun()
    process = await launcher(invocation)
    run.mark_running()

    guard = DeadlineGuard(process, invocation.timeout_seconds)
    guard.arm()

    drain = asyncio.gather(
        collect_stream(process.stdout, run.append_stdout),
        collect_stream(process.stderr, run.append_stderr),
    )
    try:
        returncode = await wait_for_exit(process)
        guard.disarm()
        run.mark_exited(returncode, forced=guard.fired)
        try:
            await asyncio.wait_for(drain, DRAIN_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(
                "Agent pid=%s exited but its pipes are still open after %.1fs, "
                "killing its process group",
                process.pid,
                DRAIN_GRACE_SECONDS,
            )
            _sweep(process)
    except OSError as exc:
        logger.error("Reading agent output failed: %s", exc)
        raise WorkerError(
            message=f"Agent process failed: {exc}",
            stdout=run.stdout,
            stderr=run.stderr,
            context={"pid": process.pid},
        ) from exc
    finally:
        drain.cancel()

    return run.finalize()


def _sweep(process: asyncio.subprocess.Process) -> None:
    try:
        kill_process_group(process)
    except (ProcessLookupError, PermissionError):
        # Group already empty (macOS reports EPERM for a group of zombies)
        logger.debug("Agent pid=%s left nothing to kill", process.pid)
