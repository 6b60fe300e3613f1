"""Process-wide proxy setting read by the bosh CLI."""

import logging
import os
from typing import MutableMapping, Optional

logger = logging.getLogger(__name__)

PROXY_VAR = 'BOSH_ALL_PROXY'


class ProxyEnvironment:
    """Sole owner of BOSH_ALL_PROXY for this process.

    Every bosh invocation inherits the process environment, so the variable
    must be cleared before talking to the jumpbox directly and set once the
    tunnel is up.
    """

    def __init__(self, var: str = PROXY_VAR, environ: Optional[MutableMapping] = None):
        self.var = var
        self.environ = os.environ if environ is None else environ

    def clear(self) -> None:
        self.environ.pop(self.var, None)
        logger.debug(f"Cleared {self.var}")

    def route_through(self, addr: str) -> str:
        """Send bosh traffic through the SOCKS5 relay at addr (host:port)."""
        value = f'socks5://{addr}'
        self.environ[self.var] = value
        logger.debug(f"Set {self.var}={value}")
        return value

    def current(self) -> Optional[str]:
        return self.environ.get(self.var)
