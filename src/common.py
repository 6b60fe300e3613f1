"""Common utilities for driving external tools."""

import logging
import os
import signal
import socket
import subprocess
import threading
import time
from pathlib import Path
from typing import Optional, TextIO

logger = logging.getLogger(__name__)


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except Exception as e:
        return -1, '', str(e)


def stream_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    sink: Optional[TextIO] = None,
    timeout: Optional[int] = None,
    env: Optional[dict] = None
) -> int:
    """Run a command, streaming stdout and stderr line by line into sink.

    The whole process group is killed once timeout expires, including
    background children still holding the output pipe. Whatever the tool
    already wrote to its own files stays on disk, so callers can still read
    partial state after a timeout.

    Returns:
        Exit status, or -1 when the command could not be started or timed out
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            env=env,
            start_new_session=True,
        )
    except OSError as e:
        if sink is not None:
            sink.write(f'{e}\n')
        return -1

    timed_out = threading.Event()

    def _kill():
        timed_out.set()
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass  # group already exited

    timer = threading.Timer(timeout, _kill) if timeout else None
    if timer:
        timer.start()
    try:
        assert proc.stdout is not None
        for line in proc.stdout:
            if sink is not None:
                sink.write(line)
        rc = proc.wait()
    finally:
        if timer:
            timer.cancel()

    if timed_out.is_set():
        if sink is not None:
            sink.write(f'Command timed out after {timeout}s\n')
        return -1
    return rc


class CommandRunner:
    """Runs one external binary with a fixed deadline per invocation."""

    def __init__(self, binary: str, timeout: Optional[int] = None):
        self.binary = binary
        self.timeout = timeout

    def run(self, args: list[str], cwd: Optional[Path] = None, sink: Optional[TextIO] = None) -> int:
        """Run binary with args in cwd. Returns the exit status."""
        return stream_command([self.binary] + list(args), cwd=cwd, sink=sink, timeout=self.timeout)

    def capture(self, args: list[str], cwd: Optional[Path] = None) -> tuple[int, str, str]:
        """Run binary with args, keeping stdout and stderr apart."""
        return run_command([self.binary] + list(args), cwd=cwd, timeout=self.timeout or 600)


def find_free_port(host: str = '127.0.0.1') -> int:
    """Reserve an ephemeral port on host and release it for the caller."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        port: int = s.getsockname()[1]
    return port


def port_open(host: str, port: int, timeout: float = 1.0) -> bool:
    """Return True if a TCP connection to host:port succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_for_port(host: str, port: int, timeout: int = 30, interval: float = 0.5,
                  alive=None) -> bool:
    """Wait for a local listener to accept connections.

    Args:
        alive: Optional callable; polling stops early when it returns False
    """
    logger.debug(f"Waiting for {host}:{port} to accept connections...")
    start = time.time()
    while time.time() - start < timeout:
        if port_open(host, port):
            logger.debug(f"{host}:{port} is accepting connections")
            return True
        if alive is not None and not alive():
            return False
        time.sleep(interval)
    return False
