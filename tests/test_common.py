#!/usr/bin/env python3
"""Tests for common.py - external process and port utilities.

Tests verify:
1. run_command execution and error handling
2. stream_command line streaming, exit codes and timeouts
3. CommandRunner binary prefixing
4. Port helpers used by the SOCKS5 relay
"""

import io
import socket
import sys
import time
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from common import (
    CommandRunner,
    find_free_port,
    port_open,
    run_command,
    stream_command,
    wait_for_port,
)


class TestRunCommand:
    """Test run_command utility."""

    def test_returns_success_tuple(self):
        """Should return (returncode, stdout, stderr) on success."""
        rc, stdout, stderr = run_command(['echo', 'hello'])
        assert rc == 0
        assert 'hello' in stdout
        assert stderr == ''

    def test_returns_failure_tuple(self):
        """Should return non-zero returncode on failure."""
        rc, stdout, stderr = run_command(['false'])
        assert rc != 0

    def test_captures_stderr(self):
        """Should capture stderr."""
        rc, stdout, stderr = run_command(['sh', '-c', 'echo error >&2'])
        assert 'error' in stderr

    def test_respects_cwd(self, tmp_path):
        """Should run command in specified directory."""
        (tmp_path / 'marker.txt').write_text('found')
        rc, stdout, stderr = run_command(['cat', 'marker.txt'], cwd=tmp_path)
        assert rc == 0
        assert 'found' in stdout

    def test_timeout_returns_error(self):
        """Should return error on timeout."""
        rc, stdout, stderr = run_command(['sleep', '10'], timeout=1)
        assert rc == -1
        assert 'timed out' in stderr.lower()

    def test_missing_binary_returns_error(self):
        """A binary that does not exist yields -1 rather than raising."""
        rc, stdout, stderr = run_command(['definitely-not-a-real-binary-xyz'])
        assert rc == -1
        assert stderr


class TestStreamCommand:
    """Test stream_command utility."""

    def test_streams_stdout_and_stderr(self):
        """Both streams should reach the sink."""
        sink = io.StringIO()
        rc = stream_command(['sh', '-c', 'echo out; echo err >&2'], sink=sink)
        assert rc == 0
        assert 'out' in sink.getvalue()
        assert 'err' in sink.getvalue()

    def test_returns_exit_status(self):
        """Exit status should pass through."""
        assert stream_command(['sh', '-c', 'exit 3'], sink=io.StringIO()) == 3

    def test_timeout_kills_process(self):
        """A command past its deadline is killed and reported as -1."""
        sink = io.StringIO()
        rc = stream_command(['sleep', '10'], sink=sink, timeout=1)
        assert rc == -1
        assert 'timed out' in sink.getvalue()

    def test_timeout_kills_background_children(self):
        """A backgrounded child holding stdout must not outlive the deadline."""
        sink = io.StringIO()
        start = time.monotonic()
        rc = stream_command(['sh', '-c', 'sleep 20 & sleep 20'], sink=sink, timeout=1)
        elapsed = time.monotonic() - start
        assert rc == -1
        assert elapsed < 10
        assert 'timed out' in sink.getvalue()

    def test_missing_binary(self):
        """A command that cannot start returns -1 and reports why."""
        sink = io.StringIO()
        rc = stream_command(['definitely-not-a-real-binary-xyz'], sink=sink)
        assert rc == -1
        assert sink.getvalue()

    def test_sink_optional(self):
        """Output may be discarded."""
        assert stream_command(['echo', 'ignored']) == 0


class TestCommandRunner:
    """Test CommandRunner."""

    def test_run_prefixes_binary(self):
        """run() should prepend the binary and pass the deadline."""
        runner = CommandRunner('terraform', timeout=42)
        with patch('common.stream_command', return_value=0) as mock_stream:
            rc = runner.run(['init'], cwd=Path('/tmp'))
        assert rc == 0
        args, kwargs = mock_stream.call_args
        assert args[0] == ['terraform', 'init']
        assert kwargs['timeout'] == 42
        assert kwargs['cwd'] == Path('/tmp')

    def test_capture_prefixes_binary(self):
        """capture() should prepend the binary and return the tuple."""
        runner = CommandRunner('bosh')
        with patch('common.run_command', return_value=(0, 'version 7.0.0', '')) as mock_run:
            result = runner.capture(['-v'])
        assert result == (0, 'version 7.0.0', '')
        assert mock_run.call_args[0][0] == ['bosh', '-v']
        assert mock_run.call_args[1]['timeout'] == 600


class TestPorts:
    """Test port helpers."""

    def test_find_free_port(self):
        """Should return a bindable port."""
        port = find_free_port()
        assert 1024 <= port <= 65535

    def test_port_open_true_for_listener(self):
        """A listening socket should be reported open."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(('127.0.0.1', 0))
            server.listen(1)
            port = server.getsockname()[1]
            assert port_open('127.0.0.1', port) is True

    def test_port_open_false_for_closed(self):
        """A released port should be reported closed."""
        port = find_free_port()
        assert port_open('127.0.0.1', port, timeout=0.2) is False

    def test_wait_for_port_success(self):
        """Should return True as soon as the port accepts."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(('127.0.0.1', 0))
            server.listen(1)
            port = server.getsockname()[1]
            assert wait_for_port('127.0.0.1', port, timeout=2) is True

    def test_wait_for_port_stops_when_not_alive(self):
        """Polling should stop early once the owner process is gone."""
        port = find_free_port()
        with patch('common.time.sleep') as mock_sleep:
            result = wait_for_port('127.0.0.1', port, timeout=30, alive=lambda: False)
        assert result is False
        mock_sleep.assert_not_called()

    def test_wait_for_port_timeout(self):
        """Should return False after the timeout."""
        port = find_free_port()
        assert wait_for_port('127.0.0.1', port, timeout=0.3, interval=0.1) is False
