"""Pre-flight checks and the post-create director probe.

Pre-flight catches a missing binary or checkout before any stage runs,
with an actionable message for each failure.
"""

import logging
import os
import shutil
import tempfile
from typing import Optional

import requests
import urllib3

from bosh.ops import BASE_MANIFESTS
from config import DriverConfig
from storage.state import DIRECTOR, JUMPBOX

# The director cert is only verified when its CA is known
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Pre-flight
# -----------------------------------------------------------------------------

def check_binaries(config: DriverConfig) -> tuple[list[str], list[str]]:
    """Check every configured binary resolves on PATH.

    Returns:
        (passed, failed) message lists
    """
    passed, failed = [], []
    for label, binary in (('terraform', config.terraform_binary),
                          ('bosh', config.bosh_binary),
                          ('ssh', config.ssh_binary)):
        path = shutil.which(binary)
        if path:
            passed.append(f"{label}: {path}")
        else:
            failed.append(
                f"{label} binary not found: {binary}\n"
                f"  Install it or set {label}_binary in bootloader.yaml"
            )
    return passed, failed


def check_checkouts(config: DriverConfig, iaas: Optional[str] = None) -> tuple[list[str], list[str]]:
    """Check the templates dir and deployment checkouts are in place."""
    passed, failed = [], []

    templates = config.templates_dir / iaas if iaas else config.templates_dir
    if templates.is_dir():
        passed.append(f"terraform templates: {templates}")
    else:
        failed.append(
            f"Terraform templates not found: {templates}\n"
            f"  Set templates_dir in bootloader.yaml or BOOTLOADER_TEMPLATES_DIR"
        )

    for kind in (JUMPBOX, DIRECTOR):
        repo, manifest = BASE_MANIFESTS[kind]
        path = config.deployments_dir / repo / manifest
        if path.is_file():
            passed.append(f"{kind} manifest: {path}")
        else:
            failed.append(
                f"Base manifest not found: {path}\n"
                f"  Clone {repo} into {config.deployments_dir}"
            )
    return passed, failed


def run_preflight_checks(config: DriverConfig, iaas: Optional[str] = None) -> tuple[bool, dict]:
    """Run all pre-flight checks.

    Returns:
        (success, results) where results maps category -> {'passed', 'failed'}
    """
    results: dict[str, dict[str, list[str]]] = {}

    passed, failed = check_binaries(config)
    results['binaries'] = {'passed': passed, 'failed': failed}

    passed, failed = check_checkouts(config, iaas)
    results['checkouts'] = {'passed': passed, 'failed': failed}

    success = all(not r['failed'] for r in results.values())
    return success, results


def format_preflight_results(results: dict) -> str:
    """Format pre-flight results for display."""
    lines = ["\nPreflight checks:\n"]

    category_names = {
        'binaries': 'Binaries',
        'checkouts': 'Templates and manifests',
    }

    for key, name in category_names.items():
        category = results.get(key, {'passed': [], 'failed': []})
        if category['passed'] or category['failed']:
            lines.append(f"{name}:")
            for item in category['passed']:
                lines.append(f"✓ {item}")
            for item in category['failed']:
                first_line, *rest = item.split('\n')
                lines.append(f"✗ {first_line}")
                for line in rest:
                    lines.append(f"  {line}")
            lines.append("")

    if all(not cat['failed'] for cat in results.values()):
        lines.append("All checks passed.")
    else:
        lines.append("Some checks failed. Fix issues before running up or destroy.")

    return '\n'.join(lines)


# -----------------------------------------------------------------------------
# Director probe
# -----------------------------------------------------------------------------

def probe_director(address: str, ca_cert: str, proxy_address: str,
                   timeout: float = 10.0) -> tuple[bool, str]:
    """GET {address}/info through the SOCKS5 relay.

    Hostnames are resolved on the far side of the relay (socks5h).

    Returns:
        (reachable, message)
    """
    if not address:
        return False, "director address not set"

    proxies = {
        'http': f'socks5h://{proxy_address}',
        'https': f'socks5h://{proxy_address}',
    }

    ca_file = None
    verify: object = False
    if ca_cert:
        fd, ca_file = tempfile.mkstemp(prefix='director-ca-', suffix='.pem')
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(ca_cert)
        verify = ca_file

    try:
        resp = requests.get(f"{address}/info", proxies=proxies, verify=verify, timeout=timeout)
        if resp.status_code != 200:
            return False, f"{address}/info returned HTTP {resp.status_code}"
        try:
            info = resp.json()
        except ValueError:
            return True, f"{address} responded"
        name = info.get('name', 'unknown')
        version = info.get('version', 'unknown')
        return True, f"{name} ({version})"
    except requests.exceptions.ConnectionError as e:
        return False, f"cannot connect to {address}: {e}"
    except requests.exceptions.Timeout:
        return False, f"{address} timed out after {timeout}s"
    except requests.exceptions.RequestException as e:
        return False, f"{address}: {e}"
    finally:
        if ca_file:
            os.unlink(ca_file)
