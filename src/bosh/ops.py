"""Manifest overlays applied during interpolation.

OVERLAYS maps (deployment, iaas) to the ordered ops files passed to
`bosh interpolate -o`. Entries are either embedded below or paths relative
to the deployment's checkout (bosh-deployment/ or jumpbox-deployment/).
Supporting a new IaaS means adding rows here.
"""

from pathlib import Path

from storage.state import DIRECTOR, JUMPBOX

BASE_MANIFESTS = {
    JUMPBOX: ('jumpbox-deployment', 'jumpbox.yml'),
    DIRECTOR: ('bosh-deployment', 'bosh.yml'),
}

GCP_DIRECTOR_EPHEMERAL_IP_OPS = """\
- type: replace
  path: /networks/name=default/subnets/0/cloud_properties/ephemeral_external_ip?
  value: true
"""

AWS_DIRECTOR_EPHEMERAL_IP_OPS = """\
- type: replace
  path: /resource_pools/name=vms/cloud_properties/auto_assign_public_ip?
  value: true
"""

AWS_ENCRYPT_DISK_OPS = """\
- type: replace
  path: /disk_pools/name=disks/cloud_properties?/encrypted
  value: true
- type: replace
  path: /disk_pools/name=disks/cloud_properties?/kms_key_arn
  value: ((kms_key_arn))
"""

AZURE_JUMPBOX_CPI = """\
- type: replace
  path: /resource_pools/name=vms/cloud_properties?
  value:
    instance_type: Standard_D1_v2

- type: replace
  path: /networks/name=public/subnets/0/cloud_properties?
  value:
    virtual_network_name: ((vnet_name))
    subnet_name: ((subnet_name))

- type: replace
  path: /networks/name=private/subnets/0/cloud_properties?
  value:
    virtual_network_name: ((vnet_name))
    subnet_name: ((subnet_name))
    security_group: ((default_security_group))

- type: replace
  path: /cloud_provider/template?
  value:
    name: azure_cpi
    release: bosh-azure-cpi

- type: replace
  path: /cloud_provider/properties/azure?
  value:
    environment: AzureCloud
    subscription_id: ((subscription_id))
    tenant_id: ((tenant_id))
    client_id: ((client_id))
    client_secret: ((client_secret))
    resource_group_name: ((resource_group_name))
    storage_account_name: ((storage_account_name))
    default_security_group: ((default_security_group))
    ssh_user: vcap
    ssh_public_key: ((public_key))
"""

EMBEDDED = {
    'gcp-bosh-director-ephemeral-ip-ops.yml': GCP_DIRECTOR_EPHEMERAL_IP_OPS,
    'aws-bosh-director-ephemeral-ip-ops.yml': AWS_DIRECTOR_EPHEMERAL_IP_OPS,
    'aws-bosh-director-encrypt-disk-ops.yml': AWS_ENCRYPT_DISK_OPS,
    'azure-jumpbox-cpi.yml': AZURE_JUMPBOX_CPI,
}

_DIRECTOR_COMMON = ('jumpbox-user.yml', 'uaa.yml', 'credhub.yml')

OVERLAYS = {
    (JUMPBOX, 'gcp'): ('gcp/cpi.yml',),
    (JUMPBOX, 'aws'): ('aws/cpi.yml',),
    (JUMPBOX, 'azure'): ('azure-jumpbox-cpi.yml',),
    (DIRECTOR, 'gcp'): ('gcp/cpi.yml',) + _DIRECTOR_COMMON + (
        'gcp-bosh-director-ephemeral-ip-ops.yml',
    ),
    (DIRECTOR, 'aws'): ('aws/cpi.yml',) + _DIRECTOR_COMMON + (
        'aws-bosh-director-ephemeral-ip-ops.yml',
        'aws/iam-instance-profile.yml',
        'aws-bosh-director-encrypt-disk-ops.yml',
    ),
    (DIRECTOR, 'azure'): ('azure/cpi.yml',) + _DIRECTOR_COMMON,
}

# Variables the store must hold after interpolation, as (key, subkey) pairs
REQUIRED_VARIABLES = {
    JUMPBOX: (('jumpbox_ssh', 'private_key'),),
    DIRECTOR: (
        ('admin_password', None),
        ('director_ssl', 'ca'),
        ('director_ssl', 'certificate'),
        ('director_ssl', 'private_key'),
    ),
}


def overlays_for(kind: str, iaas: str) -> tuple:
    """Ordered overlay identifiers for a deployment on an IaaS."""
    try:
        return OVERLAYS[(kind, iaas)]
    except KeyError:
        raise ValueError(f"No {kind} overlays for IaaS: {iaas!r}") from None


def overlay_filename(overlay: str) -> str:
    """Flat file name used for an overlay inside the interpolation dir."""
    return overlay.replace('/', '-')


def read_overlay(overlay: str, deployment_dir: Path) -> str:
    """Contents of an embedded overlay or one from the deployment checkout."""
    if overlay in EMBEDDED:
        return EMBEDDED[overlay]
    path = Path(deployment_dir) / overlay
    if not path.is_file():
        raise FileNotFoundError(f"Ops file not found: {path}")
    return path.read_text(encoding='utf-8')


def read_base_manifest(kind: str, deployments_dir: Path) -> str:
    """Base manifest for kind from its deployment checkout."""
    repo, name = BASE_MANIFESTS[kind]
    path = Path(deployments_dir) / repo / name
    if not path.is_file():
        raise FileNotFoundError(f"Base manifest not found: {path}")
    return path.read_text(encoding='utf-8')


def deployment_dir(kind: str, deployments_dir: Path) -> Path:
    return Path(deployments_dir) / BASE_MANIFESTS[kind][0]
