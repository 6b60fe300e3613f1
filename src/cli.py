#!/usr/bin/env python3
"""CLI entry point for bootloader-driver.

Commands:
- up: Create or resume an environment (infrastructure, jumpbox, director)
- destroy: Delete the director, jumpbox and infrastructure
- print-env: Shell exports for targeting the director
- director-ca-cert: Print the director CA certificate
- preflight: Check binaries, templates and manifests

Exit codes: 0 success, 1 stage failure (state saved), 2 bad input or state.
"""

import argparse
import logging
import subprocess
import sys
from pathlib import Path

from bosh.executor import BoshExecutor
from bosh.manager import BoshManager
from commands import Destroy, Up, UpOptions, director_ca_cert, print_env
from common import CommandRunner
from config import ConfigError, DriverConfig, load_config, resolve_credentials
from errors import BootloaderError, PartialStateError, PreconditionError, StateError
from proxy.environment import ProxyEnvironment
from proxy.socks5 import Socks5Proxy
from storage.state import IAAS_CHOICES, LB
from storage.store import StateStore
from terraform.executor import TerraformExecutor
from terraform.inputs import InputGenerator
from terraform.manager import TerraformManager
from terraform.templates import TemplateGenerator
from validation import format_preflight_results, probe_director, run_preflight_checks

EXIT_FAILURE = 1
EXIT_USAGE = 2


def get_version():
    """Get version from git tags (do not use hardcoded VERSION constant)."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else 'dev'
    except OSError:
        return 'dev'


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Argument parsing
# -----------------------------------------------------------------------------

def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--state-dir', '-s',
        type=Path,
        help='Directory holding bootloader-state.json (default: cwd or BOOTLOADER_STATE_DIR)',
    )
    parser.add_argument(
        '--templates-dir',
        type=Path,
        help='Terraform templates directory',
    )
    parser.add_argument(
        '--deployments-dir',
        type=Path,
        help='Directory with bosh-deployment/ and jumpbox-deployment/ checkouts',
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        default=None,
        help='Echo tool output and keep temp dirs',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )


def _add_lifecycle(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--skip-preflight',
        action='store_true',
        help='Skip pre-flight validation checks',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='bootloader',
        description='Provision a jumpbox and BOSH director on gcp, aws or azure',
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'bootloader-driver {get_version()}'
    )
    sub = parser.add_subparsers(dest='command', metavar='<command>')

    up = sub.add_parser('up', help='Create or resume an environment')
    _add_common(up)
    _add_lifecycle(up)
    up.add_argument('--iaas', choices=IAAS_CHOICES, help='Target IaaS (required for a new environment)')
    up.add_argument('--name', help='Environment id (default: generated)')
    up.add_argument('--ops-file', type=Path, help='Operations overlay applied to the director manifest')
    up.add_argument('--no-director', action='store_true', help='Stop after the jumpbox and tunnel')
    up.add_argument('--lb-type', help='Load balancer type from the templates (e.g. cf, concourse)')
    up.add_argument('--lb-domain', help='System domain for the load balancer')
    up.add_argument('--lb-cert', type=Path, help='Load balancer certificate file')
    up.add_argument('--lb-key', type=Path, help='Load balancer private key file')

    up.add_argument('--gcp-service-account-key', help='Service account key JSON or path to it')
    up.add_argument('--gcp-project-id', help='GCP project id')
    up.add_argument('--gcp-region', help='GCP region')
    up.add_argument('--gcp-zone', help='GCP zone')
    up.add_argument('--aws-access-key-id', help='AWS access key id')
    up.add_argument('--aws-secret-access-key', help='AWS secret access key')
    up.add_argument('--aws-region', help='AWS region')
    up.add_argument('--azure-subscription-id', help='Azure subscription id')
    up.add_argument('--azure-tenant-id', help='Azure tenant id')
    up.add_argument('--azure-client-id', help='Azure client id')
    up.add_argument('--azure-client-secret', help='Azure client secret')
    up.add_argument('--azure-region', help='Azure location')

    destroy = sub.add_parser('destroy', help='Delete the environment')
    _add_common(destroy)
    _add_lifecycle(destroy)
    destroy.add_argument('--no-confirm', '-y', action='store_true', help='Skip confirmation prompt')

    for name, help_text in (('print-env', 'Print shell exports for the director'),
                            ('director-ca-cert', 'Print the director CA certificate'),
                            ('preflight', 'Check binaries, templates and manifests')):
        _add_common(sub.add_parser(name, help=help_text))

    return parser


# -----------------------------------------------------------------------------
# Wiring
# -----------------------------------------------------------------------------

def resolve_config(args) -> DriverConfig:
    config = load_config(args.state_dir)
    return config.override(
        templates_dir=args.templates_dir,
        deployments_dir=args.deployments_dir,
        debug=args.debug,
    )


def build_managers(config: DriverConfig, store: StateStore, proxy_env: ProxyEnvironment):
    """Assemble the terraform and bosh managers for a config."""
    echo = sys.stderr if config.debug else None
    terraform_manager = TerraformManager(
        executor=TerraformExecutor(CommandRunner(config.terraform_binary, config.command_timeout),
                                   debug=config.debug),
        template_generator=TemplateGenerator(config.templates_dir),
        input_generator=InputGenerator(store.state_dir / 'terraform'),
        echo=echo,
    )
    bosh_manager = BoshManager(
        executor=BoshExecutor(CommandRunner(config.bosh_binary, config.command_timeout),
                              config.deployments_dir, stream=sys.stderr, debug=config.debug),
        socks5_proxy=Socks5Proxy(config.ssh_binary, config.tunnel_timeout),
        state_store=store,
        proxy_env=proxy_env,
    )
    return terraform_manager, bosh_manager


def _read_file(path, label: str) -> str:
    if path is None:
        return ''
    try:
        return Path(path).expanduser().read_text(encoding='utf-8')
    except OSError as e:
        raise ConfigError(f"Cannot read {label} {path}: {e}") from e


def up_options(args, iaas: str) -> UpOptions:
    lb = None
    if args.lb_type:
        lb = LB(
            type=args.lb_type,
            domain=args.lb_domain or '',
            cert=_read_file(args.lb_cert, 'load balancer certificate'),
            key=_read_file(args.lb_key, 'load balancer key'),
        )
    return UpOptions(
        iaas=iaas,
        credentials=resolve_credentials(iaas, vars(args)) if iaas else {},
        name=args.name or '',
        lb=lb,
        ops_file=_read_file(args.ops_file, 'ops file'),
        no_director=args.no_director,
    )


def _run_preflight(args, config: DriverConfig, iaas: str = None):
    if getattr(args, 'skip_preflight', False):
        logger.info("Skipping preflight checks (--skip-preflight)")
        return None
    success, results = run_preflight_checks(config, iaas or None)
    if not success:
        print(format_preflight_results(results))
        return EXIT_USAGE
    return None


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def cmd_up(args, config: DriverConfig, store: StateStore) -> int:
    iaas = args.iaas or store.get().iaas
    rc = _run_preflight(args, config, iaas)
    if rc is not None:
        return rc

    options = up_options(args, iaas)
    proxy_env = ProxyEnvironment()
    terraform_manager, bosh_manager = build_managers(config, store, proxy_env)
    up = Up(terraform_manager, bosh_manager, store, probe=probe_director)
    state = up.execute(options)
    logger.info(f"Environment {state.env_id} is up")
    return 0


def cmd_destroy(args, config: DriverConfig, store: StateStore) -> int:
    state = store.get()
    if state.is_empty():
        logger.info(f"No environment found in {store.state_dir}")
        return 0

    rc = _run_preflight(args, config, state.iaas)
    if rc is not None:
        return rc

    if not args.no_confirm:
        print(f"\nWARNING: This will destroy environment '{state.env_id}' on {state.iaas}.")
        print("This action cannot be undone.")
        response = input("Continue? [y/N] ").strip().lower()
        if response != 'y':
            print("Aborted.")
            return EXIT_FAILURE

    proxy_env = ProxyEnvironment()
    terraform_manager, bosh_manager = build_managers(config, store, proxy_env)
    Destroy(terraform_manager, bosh_manager, store, proxy_env).execute()
    return 0


def cmd_print_env(args, config: DriverConfig, store: StateStore) -> int:
    print(print_env(store.get(), store))
    return 0


def cmd_director_ca_cert(args, config: DriverConfig, store: StateStore) -> int:
    print(director_ca_cert(store.get()))
    return 0


def cmd_preflight(args, config: DriverConfig, store: StateStore) -> int:
    success, results = run_preflight_checks(config, store.get().iaas or None)
    print(format_preflight_results(results))
    return 0 if success else EXIT_USAGE


COMMANDS = {
    'up': cmd_up,
    'destroy': cmd_destroy,
    'print-env': cmd_print_env,
    'director-ca-cert': cmd_director_ca_cert,
    'preflight': cmd_preflight,
}


def main(argv: list = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    store = None
    try:
        config = resolve_config(args)
        store = StateStore(config.state_dir)
        return COMMANDS[args.command](args, config, store)
    except PartialStateError as e:
        logger.error(f"{e.stage} failed: {e.cause}")
        logger.error(f"State saved to {store.path}; re-run to continue")
        return EXIT_FAILURE
    except (ConfigError, PreconditionError, StateError) as e:
        logger.error(str(e))
        return EXIT_USAGE
    except BootloaderError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
