"""SOCKS5 relay into the private network through the jumpbox.

The relay is an `ssh -N -D` child process authenticated with the jumpbox
key. It lives for the rest of the invocation and is stopped at exit.
"""

import atexit
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from common import find_free_port, wait_for_port
from errors import TunnelError

logger = logging.getLogger(__name__)

LOCAL_HOST = '127.0.0.1'
JUMPBOX_USER = 'jumpbox'
DEFAULT_SSH_PORT = 22


def split_url(jumpbox_url: str) -> tuple[str, int]:
    """Split host:port, defaulting the port to 22."""
    host, sep, port = jumpbox_url.rpartition(':')
    if not sep:
        return jumpbox_url, DEFAULT_SSH_PORT
    try:
        return host, int(port)
    except ValueError:
        raise TunnelError(f"Invalid jumpbox url: {jumpbox_url!r}") from None


class Socks5Proxy:
    """Starts and stops the ssh SOCKS5 relay.

    Attributes:
        ssh_binary: ssh client to spawn
        startup_timeout: Seconds to wait for the local port to accept connections
    """

    def __init__(self, ssh_binary: str = 'ssh', startup_timeout: int = 30):
        self.ssh_binary = ssh_binary
        self.startup_timeout = startup_timeout
        self.port: Optional[int] = None
        self.url: Optional[str] = None
        self._proc: Optional[subprocess.Popen] = None
        self._key_file: Optional[Path] = None
        self._stderr = None
        self._registered = False

    def is_running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self, private_key: str, jumpbox_url: str) -> None:
        """Start the relay and return once it accepts connections.

        Starting again for the URL already being relayed is a no-op.

        Raises:
            TunnelError: ssh exited early or the port never opened
        """
        if self.is_running() and self.url == jumpbox_url:
            logger.debug(f"SOCKS5 proxy to {jumpbox_url} already running")
            return
        self.stop()

        host, ssh_port = split_url(jumpbox_url)
        self._key_file = self._write_key(private_key)
        self.port = find_free_port(LOCAL_HOST)

        cmd = [
            self.ssh_binary, '-N',
            '-D', f'{LOCAL_HOST}:{self.port}',
            '-i', str(self._key_file),
            '-p', str(ssh_port),
            '-o', 'StrictHostKeyChecking=no',
            '-o', 'UserKnownHostsFile=/dev/null',
            '-o', 'ExitOnForwardFailure=yes',
            '-o', 'ServerAliveInterval=30',
            '-o', 'LogLevel=ERROR',
            f'{JUMPBOX_USER}@{host}',
        ]
        logger.debug(f"Running: {' '.join(cmd)}")
        # Nothing reads stderr while the relay runs, so it goes to a file
        self._stderr = tempfile.TemporaryFile(mode='w+', prefix='jumpbox-ssh-')
        try:
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=self._stderr,
            )
        except OSError as e:
            self._remove_key()
            self._close_stderr()
            raise TunnelError(f"Cannot start {self.ssh_binary}: {e}") from e

        if not self._registered:
            atexit.register(self.stop)
            self._registered = True

        if not wait_for_port(LOCAL_HOST, self.port, timeout=self.startup_timeout, alive=self.is_running):
            detail = self._failure_detail()
            self.stop()
            raise TunnelError(f"SOCKS5 proxy to {jumpbox_url} did not start: {detail}")

        self.url = jumpbox_url
        logger.debug(f"SOCKS5 proxy listening on {self.addr()}")

    def addr(self) -> str:
        """Local address of the relay as host:port."""
        if self.port is None:
            raise TunnelError("SOCKS5 proxy has not been started")
        return f'{LOCAL_HOST}:{self.port}'

    def stop(self) -> None:
        """Terminate the relay: SIGTERM, then SIGKILL after 5s."""
        proc, self._proc = self._proc, None
        self.url = None
        if proc is not None and proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            logger.debug("Stopped SOCKS5 proxy")
        self._remove_key()
        self._close_stderr()

    def _failure_detail(self) -> str:
        if self._proc is None:
            return 'not started'
        if self._proc.poll() is None:
            return f'port {self.port} not open after {self.startup_timeout}s'
        err = ''
        if self._stderr is not None:
            self._stderr.seek(0)
            err = self._stderr.read()
        return f'ssh exited with status {self._proc.returncode}: {err.strip()}'

    @staticmethod
    def _write_key(private_key: str) -> Path:
        fd, path = tempfile.mkstemp(prefix='jumpbox-key-')
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(private_key)
        os.chmod(path, 0o600)
        return Path(path)

    def _remove_key(self) -> None:
        if self._key_file is not None:
            self._key_file.unlink(missing_ok=True)
            self._key_file = None

    def _close_stderr(self) -> None:
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None
