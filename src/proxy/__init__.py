"""Tunnel into the private network and the proxy variable that uses it."""

from proxy.environment import PROXY_VAR, ProxyEnvironment
from proxy.socks5 import Socks5Proxy

__all__ = [
    "PROXY_VAR",
    "ProxyEnvironment",
    "Socks5Proxy",
]
