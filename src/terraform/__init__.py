"""Infrastructure provisioning through the terraform CLI."""

from terraform.executor import TerraformExecutor, parse_outputs
from terraform.inputs import InputGenerator
from terraform.manager import TerraformManager, MINIMUM_VERSION
from terraform.templates import TemplateGenerator

__all__ = [
    "TerraformExecutor",
    "parse_outputs",
    "InputGenerator",
    "TerraformManager",
    "MINIMUM_VERSION",
    "TemplateGenerator",
]
