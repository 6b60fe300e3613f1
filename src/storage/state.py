"""Persisted environment state.

The State aggregate is the only record of provisioning progress between
invocations. Terraform and deploy-state blobs are kept as opaque strings:
they are handed back to the tool that produced them and never inspected.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any

STATE_VERSION = 3

IAAS_CHOICES = ('gcp', 'aws', 'azure')

JUMPBOX = 'jumpbox'
DIRECTOR = 'director'


def _from_dict(cls, data: dict):
    """Build a flat dataclass from data, ignoring unknown keys."""
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in (data or {}).items() if k in names})


@dataclass
class GCP:
    service_account_key: str = ''
    project_id: str = ''
    region: str = ''
    zone: str = ''


@dataclass
class AWS:
    access_key_id: str = ''
    secret_access_key: str = ''
    region: str = ''


@dataclass
class Azure:
    subscription_id: str = ''
    tenant_id: str = ''
    client_id: str = ''
    client_secret: str = ''
    region: str = ''


@dataclass
class LB:
    """Load balancer settings fed to the terraform inputs."""
    type: str = ''
    domain: str = ''
    cert: str = ''
    key: str = ''


@dataclass
class Jumpbox:
    """Jumpbox deployment.

    Attributes:
        variables: Resolved variables store (YAML text, holds secrets)
        state: Opaque deploy-state blob from bosh create-env
        manifest: Resolved manifest (YAML text)
        url: host:port the tunnel dials, set after a successful create
    """
    variables: str = ''
    state: str = ''
    manifest: str = ''
    url: str = ''

    def is_deployed(self) -> bool:
        return bool(self.state or self.manifest)


@dataclass
class Director:
    """Director deployment plus credentials derived from its variables."""
    name: str = ''
    address: str = ''
    username: str = ''
    password: str = ''
    ssl_ca: str = ''
    ssl_certificate: str = ''
    ssl_private_key: str = ''
    variables: str = ''
    state: str = ''
    manifest: str = ''
    user_ops_file: str = ''

    def is_deployed(self) -> bool:
        return bool(self.state or self.manifest)


@dataclass
class State:
    """Environment state aggregate."""
    version: int = STATE_VERSION
    env_id: str = ''
    iaas: str = ''
    no_director: bool = False
    gcp: GCP = field(default_factory=GCP)
    aws: AWS = field(default_factory=AWS)
    azure: Azure = field(default_factory=Azure)
    lb: LB = field(default_factory=LB)
    tf_state: str = ''
    latest_tf_output: str = ''
    tf_outputs: dict = field(default_factory=dict)
    jumpbox: Jumpbox = field(default_factory=Jumpbox)
    director: Director = field(default_factory=Director)

    def deployment(self, kind: str):
        """Return the jumpbox or director record for kind."""
        if kind == JUMPBOX:
            return self.jumpbox
        if kind == DIRECTOR:
            return self.director
        raise ValueError(f"Unknown deployment: {kind}")

    def is_empty(self) -> bool:
        return not self.env_id and not self.iaas

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'State':
        return cls(
            version=data.get('version', STATE_VERSION),
            env_id=data.get('env_id', ''),
            iaas=data.get('iaas', ''),
            no_director=data.get('no_director', False),
            gcp=_from_dict(GCP, data.get('gcp')),
            aws=_from_dict(AWS, data.get('aws')),
            azure=_from_dict(Azure, data.get('azure')),
            lb=_from_dict(LB, data.get('lb')),
            tf_state=data.get('tf_state', ''),
            latest_tf_output=data.get('latest_tf_output', ''),
            tf_outputs=dict(data.get('tf_outputs') or {}),
            jumpbox=_from_dict(Jumpbox, data.get('jumpbox')),
            director=_from_dict(Director, data.get('director')),
        )
