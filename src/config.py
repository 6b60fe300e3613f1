"""Driver configuration.

Settings are resolved in layers, later layers winning:
1. Built-in defaults
2. {state_dir}/bootloader.yaml (optional)
3. BOOTLOADER_* environment variables
4. CLI flags (applied by the caller via override())

IaaS credentials are resolved separately (flags > BOOTLOADER_<IAAS>_* env)
and merged into the persisted state by the up command.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional

import yaml

CONFIG_FILE = 'bootloader.yaml'
ENV_PREFIX = 'BOOTLOADER_'


class ConfigError(Exception):
    """Configuration error."""


def get_base_dir() -> Path:
    """Get the bootloader-driver directory."""
    return Path(__file__).parent.parent  # src/ -> bootloader-driver/


def get_sibling_dir(name: str) -> Path:
    """Get a sibling checkout (terraform-templates, deployments)."""
    return get_base_dir().parent / name


@dataclass
class DriverConfig:
    """Resolved driver settings.

    Attributes:
        state_dir: Directory holding bootloader-state.json and working files
        templates_dir: Per-IaaS terraform templates ({iaas}/*.tf)
        deployments_dir: Checkouts of bosh-deployment/ and jumpbox-deployment/
        command_timeout: Deadline in seconds for one external tool invocation
        tunnel_timeout: Seconds to wait for the SOCKS5 relay to accept connections
    """
    state_dir: Path = field(default_factory=Path.cwd)
    terraform_binary: str = 'terraform'
    bosh_binary: str = 'bosh'
    ssh_binary: str = 'ssh'
    templates_dir: Path = field(default_factory=lambda: get_sibling_dir('terraform-templates'))
    deployments_dir: Path = field(default_factory=lambda: get_sibling_dir('deployments'))
    command_timeout: int = 3600
    tunnel_timeout: int = 30
    debug: bool = False

    def __post_init__(self):
        for name in ('state_dir', 'templates_dir', 'deployments_dir'):
            value = getattr(self, name)
            if isinstance(value, str):
                setattr(self, name, Path(value).expanduser())

    def override(self, **values) -> 'DriverConfig':
        """Return a copy with non-None values applied (CLI flags)."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})


def _coerce(name: str, value, current):
    """Coerce a raw YAML/env value to the type of the field default."""
    try:
        if isinstance(current, bool):
            if isinstance(value, str):
                return value.strip().lower() in ('1', 'true', 'yes', 'on')
            return bool(value)
        if isinstance(current, int):
            return int(value)
        if isinstance(current, Path):
            return Path(str(value)).expanduser()
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def load_config(state_dir: Optional[Path] = None, environ: Optional[dict] = None) -> DriverConfig:
    """Load driver configuration for a state directory."""
    environ = os.environ if environ is None else environ

    if state_dir is None:
        state_dir = Path(environ.get(f'{ENV_PREFIX}STATE_DIR') or Path.cwd())
    config = DriverConfig(state_dir=Path(state_dir))
    known = {f.name: f for f in fields(DriverConfig) if f.name != 'state_dir'}

    config_file = config.state_dir / CONFIG_FILE
    if config_file.exists():
        data = _parse_yaml(config_file)
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ConfigError(f"Unknown keys in {config_file}: {', '.join(unknown)}")
        for name, value in data.items():
            setattr(config, name, _coerce(name, value, getattr(config, name)))

    for name in known:
        env_value = environ.get(f'{ENV_PREFIX}{name.upper()}')
        if env_value:
            setattr(config, name, _coerce(name, env_value, getattr(config, name)))

    return config


# IaaS credential fields, keyed by state sub-record
CREDENTIAL_FIELDS = {
    'gcp': ('service_account_key', 'project_id', 'region', 'zone'),
    'aws': ('access_key_id', 'secret_access_key', 'region'),
    'azure': ('subscription_id', 'tenant_id', 'client_id', 'client_secret', 'region'),
}

# Fields that must be present before terraform can run
REQUIRED_CREDENTIALS = {
    'gcp': ('service_account_key', 'project_id', 'region', 'zone'),
    'aws': ('access_key_id', 'secret_access_key', 'region'),
    'azure': ('subscription_id', 'tenant_id', 'client_id', 'client_secret'),
}


def resolve_credentials(iaas: str, flags: dict, environ: Optional[dict] = None) -> dict:
    """Collect credentials for iaas from flags and BOOTLOADER_<IAAS>_* env vars.

    A gcp service_account_key that names an existing file is replaced by the
    file contents.
    """
    if iaas not in CREDENTIAL_FIELDS:
        raise ConfigError(f"Unsupported IaaS: {iaas!r}. Choose one of: {', '.join(CREDENTIAL_FIELDS)}")
    environ = os.environ if environ is None else environ

    values = {}
    for name in CREDENTIAL_FIELDS[iaas]:
        value = flags.get(f'{iaas}_{name}') or environ.get(f'{ENV_PREFIX}{iaas.upper()}_{name.upper()}')
        if value:
            values[name] = value

    key = values.get('service_account_key')
    if iaas == 'gcp' and key and not key.lstrip().startswith('{'):
        path = Path(key).expanduser()
        if not path.is_file():
            raise ConfigError(f"GCP service account key file not found: {path}")
        values['service_account_key'] = path.read_text(encoding='utf-8')

    return values
