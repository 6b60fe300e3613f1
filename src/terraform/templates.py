"""Terraform template assembly.

Templates live outside this repo in a templates directory:

    {templates_dir}/{iaas}/*.tf              base infrastructure
    {templates_dir}/{iaas}/lb/{type}/*.tf    load balancer, when configured

Files are concatenated in name order.
"""

from pathlib import Path

from config import ConfigError
from storage.state import State


class TemplateGenerator:
    """Builds the terraform template for a state."""

    def __init__(self, templates_dir: Path):
        self.templates_dir = Path(templates_dir)

    def _read_dir(self, directory: Path) -> list[str]:
        return [p.read_text(encoding='utf-8') for p in sorted(directory.glob('*.tf'))]

    def generate(self, state: State) -> str:
        iaas_dir = self.templates_dir / state.iaas
        if not state.iaas or not iaas_dir.is_dir():
            raise ConfigError(f"Terraform templates not found: {iaas_dir}")

        parts = self._read_dir(iaas_dir)
        if not parts:
            raise ConfigError(f"No *.tf files in {iaas_dir}")

        if state.lb.type:
            lb_dir = iaas_dir / 'lb' / state.lb.type
            if not lb_dir.is_dir():
                raise ConfigError(f"Unsupported {state.iaas} load balancer type: {state.lb.type}")
            parts.extend(self._read_dir(lb_dir))

        return '\n'.join(part.rstrip('\n') + '\n' for part in parts)
