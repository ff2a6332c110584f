#!/usr/bin/env python3
"""
Supervision of the `code tunnel` process.

The CLI is started with piped output so every line can be classified:
authorization prompts are surfaced to the operator, and the relay's
"new client" line moves the tunnel from waiting for a connection to a
connected session. Two timers bound the run:

- the connection timer, armed at spawn, kills the tunnel if no client
  attaches in time;
- the session timer, armed on the first connection, kills it once the
  session has lasted long enough.

Only one of the two timers is ever live. The outcome of a run is decided
by a single settlement future, resolved by whichever comes first: the
process exiting, a timer firing, or a stream error.
"""

import asyncio
import codecs
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

import psutil

from .errors import (
    ConnectionTimeoutError,
    SessionTimeoutError,
    TunnelExitError,
    TunnelSpawnError,
    TunnelTimeoutError,
)

logger = logging.getLogger(__name__)

CONNECTION_MARKER = "Opened new client on channel"
USER_VISIBLE_PREFIXES = ("Open this link", "To grant access")
DEFAULT_CONNECTION_TIMEOUT = 5 * 60
DEFAULT_SESSION_TIMEOUT = 60 * 60
READ_CHUNK_SIZE = 4096
MAX_LINE_LENGTH = 64 * 1024
EXIT_POLL_INTERVAL = 0.1
OUTPUT_DRAIN_TIMEOUT = 1.0
REAP_TIMEOUT = 5.0


class LineKind(Enum):
    """Classification of one line of tunnel output."""
    NONE = "none"
    DIAGNOSTIC = "diagnostic"
    USER_VISIBLE = "user_visible"
    CONNECTION_DETECTED = "connection_detected"


class Phase(Enum):
    """Connection phase of a supervised tunnel."""
    AWAITING_CONNECTION = "awaiting_connection"
    CONNECTED = "connected"
    CLOSED = "closed"


class TerminationResult(Enum):
    """Result of a kill attempt."""
    SIGNALED = "signaled"
    ALREADY_EXITED = "already_exited"
    FAILED = "failed"


def build_tunnel_args(data_dir: Union[str, Path], name: Optional[str] = None,
                      verbose: bool = False) -> List[str]:
    """Build the `code` arguments that start a tunnel."""
    args = ["tunnel", "--accept-server-license-terms"]
    if verbose:
        args.append("--verbose")
    args.extend(["--cli-data-dir", str(data_dir)])
    if name:
        args.extend(["--name", name])
    return args


def split_lines(chunk: str, remainder: str = "",
                max_length: int = MAX_LINE_LENGTH) -> Tuple[List[str], str]:
    """
    Split decoded output into complete lines.

    Args:
        chunk: Newly read text
        remainder: Incomplete line left over from the previous chunk
        max_length: Longest incomplete line kept buffered; longer output
            without a newline is emitted as a line of its own

    Returns:
        Tuple of (complete non-empty lines, new remainder)
    """
    parts = (remainder + chunk).split("\n")
    remainder = parts.pop()
    lines = []
    for part in parts:
        if part.endswith("\r"):
            part = part[:-1]
        if part.strip():
            lines.append(part)
    if max_length and len(remainder) >= max_length:
        if remainder.strip():
            lines.append(remainder)
        remainder = ""
    return lines, remainder


def classify_line(line: str, marker: str = CONNECTION_MARKER) -> LineKind:
    """
    Classify one stdout line of the tunnel process.

    Args:
        line: A single line without its terminator
        marker: Substring that signals an attached client

    Returns:
        The LineKind of the line
    """
    if not line.strip():
        return LineKind.NONE
    if marker and marker in line:
        return LineKind.CONNECTION_DETECTED
    if line.lstrip().startswith(USER_VISIBLE_PREFIXES):
        return LineKind.USER_VISIBLE
    return LineKind.DIAGNOSTIC


def format_duration(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds:g} seconds"


@dataclass(frozen=True)
class ConnectionState:
    """Current phase and the one timer that governs it."""
    phase: Phase = Phase.AWAITING_CONNECTION
    timer: Optional[Any] = None


class ConnectionTimers:
    """
    Two-phase timeout state machine.

    The scheduler only needs a call_later(delay, callback, *args) method
    returning a handle with cancel(); an asyncio event loop qualifies.
    """

    def __init__(self, scheduler: Any, connection_timeout: float, session_timeout: float,
                 on_expired: Callable[[Phase], None]):
        self.scheduler = scheduler
        self.connection_timeout = connection_timeout
        self.session_timeout = session_timeout
        self.on_expired = on_expired
        self.state = ConnectionState()

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def active_timer(self) -> Optional[Any]:
        return self.state.timer

    def start(self) -> None:
        """Arm the connection timer."""
        self._transition(Phase.AWAITING_CONNECTION, self.connection_timeout)

    def mark_connected(self) -> bool:
        """
        Record a client connection.

        Returns:
            True on the first connection, False if already connected or closed
        """
        if self.state.phase is not Phase.AWAITING_CONNECTION:
            return False
        self._transition(Phase.CONNECTED, self.session_timeout)
        return True

    def close(self) -> None:
        """Cancel whichever timer is live."""
        self._transition(Phase.CLOSED)

    def _transition(self, phase: Phase, delay: Optional[float] = None) -> None:
        # The old timer is always cancelled before a new one is armed
        if self.state.timer is not None:
            self.state.timer.cancel()
        timer = None
        if delay is not None:
            timer = self.scheduler.call_later(delay, self._expire, phase)
        self.state = ConnectionState(phase, timer)

    def _expire(self, phase: Phase) -> None:
        if self.state.phase is not phase:
            return
        self.state = ConnectionState(Phase.CLOSED)
        self.on_expired(phase)


def _kill_descendants(pid: int) -> None:
    try:
        children = psutil.Process(pid).children(recursive=True)
    except (psutil.Error, ValueError) as e:
        logger.debug(f"Could not list child processes of {pid}: {e}")
        return
    for child in children:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            logger.debug(f"Could not kill child process {child.pid}: {e}")


def terminate_process(process: Any) -> TerminationResult:
    """
    Forcibly kill a process and its descendants without waiting for it.

    Never raises; failures are logged and reported in the result.
    """
    if process is None or process.returncode is not None:
        return TerminationResult.ALREADY_EXITED

    _kill_descendants(process.pid)
    try:
        process.kill()
    except ProcessLookupError:
        return TerminationResult.ALREADY_EXITED
    except OSError as e:
        logger.warning(f"Failed to kill VS Code tunnel process {process.pid}: {e}")
        return TerminationResult.FAILED
    return TerminationResult.SIGNALED


async def wait_for_exit(process: Any, poll_interval: float = EXIT_POLL_INTERVAL) -> int:
    """
    Wait until the process has exited, without waiting for its pipes.

    Process.wait() can block until every pipe reaches EOF, and a process
    started by the tunnel may hold the inherited pipes open indefinitely.
    """
    while process.returncode is None:
        await asyncio.sleep(poll_interval)
    return process.returncode


class TunnelSupervisor:
    """Runs `code tunnel` to completion under the two timeouts."""

    def __init__(self, executable: Union[str, Path], data_dir: Union[str, Path],
                 tunnel_name: Optional[str] = None, verbose: bool = False,
                 connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT,
                 session_timeout: float = DEFAULT_SESSION_TIMEOUT,
                 connection_marker: str = CONNECTION_MARKER):
        """
        Initialize the supervisor.

        Args:
            executable: Path to the VS Code CLI
            data_dir: Directory passed as --cli-data-dir
            tunnel_name: Optional --name value
            verbose: Pass --verbose to the CLI
            connection_timeout: Seconds to wait for the first client
            session_timeout: Seconds a connected session may last
            connection_marker: Output substring that signals a client
        """
        self.executable = Path(executable)
        self.data_dir = Path(data_dir)
        self.tunnel_name = tunnel_name
        self.verbose = verbose
        self.connection_timeout = connection_timeout
        self.session_timeout = session_timeout
        self.connection_marker = connection_marker

        self.process: Optional[asyncio.subprocess.Process] = None
        self.timers: Optional[ConnectionTimers] = None
        self.termination: Optional[TerminationResult] = None

    @property
    def args(self) -> List[str]:
        return build_tunnel_args(self.data_dir, self.tunnel_name, self.verbose)

    @property
    def connected(self) -> bool:
        return self.timers is not None and self.timers.phase is Phase.CONNECTED

    async def run(self) -> int:
        """
        Start the tunnel and wait for the run to settle.

        Returns:
            0 when the tunnel exited cleanly

        Raises:
            TunnelSpawnError: If the process cannot be started
            ConnectionTimeoutError: If no client connected in time
            SessionTimeoutError: If the session lasted too long
            TunnelExitError: If the process exited with a non-zero code
        """
        loop = asyncio.get_running_loop()
        args = self.args

        logger.info(f"Starting: {self.executable} {' '.join(args)}")
        try:
            self.process = await asyncio.create_subprocess_exec(
                str(self.executable),
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TunnelSpawnError(f"Failed to start VS Code tunnel: {e}") from e

        settled = loop.create_future()
        self.timers = ConnectionTimers(
            loop,
            self.connection_timeout,
            self.session_timeout,
            lambda phase: self._on_timeout(phase, settled),
        )
        self.timers.start()
        logger.info(
            f"VS Code tunnel started (pid {self.process.pid}); waiting up to "
            f"{format_duration(self.connection_timeout)} for a client to connect"
        )

        watcher = asyncio.ensure_future(self._watch(settled))
        try:
            exit_code = await settled
        except asyncio.CancelledError:
            self.termination = terminate_process(self.process)
            raise
        finally:
            self.timers.close()
            if not watcher.done():
                watcher.cancel()
            if self.termination is TerminationResult.SIGNALED:
                await self._reap()

        if exit_code:
            raise TunnelExitError(exit_code)
        return 0

    async def _watch(self, settled: asyncio.Future) -> None:
        process = self.process
        pumps = asyncio.gather(
            self._pump(process.stdout, self._handle_stdout_line),
            self._pump(process.stderr, self._handle_stderr_line),
        )
        exited = asyncio.ensure_future(wait_for_exit(process))
        try:
            done, _ = await asyncio.wait({pumps, exited}, return_when=asyncio.FIRST_COMPLETED)
            if pumps in done:
                pumps.result()
                exit_code = await exited
            else:
                exit_code = exited.result()
                await self._drain(pumps)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Lost VS Code tunnel output: {e}")
            self.termination = terminate_process(process)
            if not settled.done():
                settled.set_exception(e)
            return
        finally:
            for task in (pumps, exited):
                if not task.done():
                    task.cancel()

        logger.info(f"VS Code tunnel exited with code {exit_code}")
        if not settled.done():
            settled.set_result(exit_code)

    async def _drain(self, pumps: asyncio.Future) -> None:
        """Give the output pumps a short while to read what the exited tunnel wrote."""
        done, _ = await asyncio.wait({pumps}, timeout=OUTPUT_DRAIN_TIMEOUT)
        if pumps in done:
            pumps.result()
            return
        logger.debug(
            "VS Code tunnel output is still held open by another process; "
            "no longer reading it"
        )
        pumps.cancel()

    async def _reap(self) -> None:
        """Wait, within a bound, for a killed tunnel process to be collected."""
        try:
            await asyncio.wait_for(self.process.wait(), REAP_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(
                f"VS Code tunnel process {self.process.pid} was not collected "
                f"within {format_duration(REAP_TIMEOUT)} of being killed"
            )

    async def _pump(self, stream: asyncio.StreamReader, handle_line: Callable[[str], None]) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        remainder = ""
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            lines, remainder = split_lines(decoder.decode(chunk), remainder)
            for line in lines:
                handle_line(line)

        lines, _ = split_lines(decoder.decode(b"", final=True) + "\n", remainder)
        for line in lines:
            handle_line(line)

    def _handle_stdout_line(self, line: str) -> None:
        kind = classify_line(line, self.connection_marker)
        logger.debug(line)
        if kind is LineKind.USER_VISIBLE:
            logger.info(line)
        elif kind is LineKind.CONNECTION_DETECTED and self.timers is not None:
            if self.timers.mark_connected():
                logger.info(
                    f"Client connected to VS Code tunnel; session ends in "
                    f"{format_duration(self.session_timeout)}"
                )

    def _handle_stderr_line(self, line: str) -> None:
        logger.error(line)

    def _on_timeout(self, phase: Phase, settled: asyncio.Future) -> None:
        error: TunnelTimeoutError
        if phase is Phase.AWAITING_CONNECTION:
            error = ConnectionTimeoutError(
                f"Connection timeout: no client connected within "
                f"{format_duration(self.connection_timeout)}",
                self.connection_timeout,
            )
        else:
            error = SessionTimeoutError(
                f"Session timeout: tunnel session exceeded "
                f"{format_duration(self.session_timeout)}",
                self.session_timeout,
            )

        logger.warning(f"{error}; killing VS Code tunnel")
        self.termination = terminate_process(self.process)
        if not settled.done():
            settled.set_exception(error)
