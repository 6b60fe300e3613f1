"""terraform CLI invocation.

Each apply/destroy runs in a fresh temp directory holding the rendered
template, the prior state and the input variables. The state file is read
back whatever the exit code, so partial progress is never lost.
"""

import json
import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import Optional, TextIO

from common import CommandRunner
from errors import AggregateError, BootloaderError, CommandError, TerraformExecutorError

logger = logging.getLogger(__name__)

TEMPLATE_FILE = 'template.tf'
STATE_FILE = 'terraform.tfstate'
VARS_FILE = 'terraform.tfvars.json'


class TerraformExecutor:
    """Runs terraform init/apply/destroy/output/version."""

    def __init__(self, runner: CommandRunner, debug: bool = False):
        self.runner = runner
        self.debug = debug

    def _prepare(self, inputs: dict, template: str, tf_state: str) -> Path:
        work_dir = Path(tempfile.mkdtemp(prefix='terraform-'))
        (work_dir / TEMPLATE_FILE).write_text(template, encoding='utf-8')
        (work_dir / VARS_FILE).write_text(json.dumps(inputs, indent=2, sort_keys=True), encoding='utf-8')
        if tf_state:
            (work_dir / STATE_FILE).write_text(tf_state, encoding='utf-8')
        return work_dir

    def _run(self, operation: str, inputs: dict, template: str, tf_state: str,
             sink: Optional[TextIO]) -> str:
        work_dir = self._prepare(inputs, template, tf_state)
        try:
            rc = self.runner.run(['init', '-input=false'], cwd=work_dir, sink=sink)
            if rc != 0:
                raise CommandError('terraform init', rc)

            args = [operation, '-auto-approve', '-input=false',
                    f'-state={STATE_FILE}', f'-var-file={VARS_FILE}']
            logger.debug(f"Running terraform {operation} in {work_dir}")
            rc = self.runner.run(args, cwd=work_dir, sink=sink)
            if rc != 0:
                cause = CommandError(f'terraform {operation}', rc)
                try:
                    partial = self._read_state(work_dir)
                except OSError as read_err:
                    raise AggregateError([cause, read_err]) from cause
                raise TerraformExecutorError(partial, cause)

            return self._read_state(work_dir)
        finally:
            if not self.debug:
                shutil.rmtree(work_dir, ignore_errors=True)

    @staticmethod
    def _read_state(work_dir: Path) -> str:
        return (work_dir / STATE_FILE).read_text(encoding='utf-8')

    def apply(self, inputs: dict, template: str, tf_state: str, sink: Optional[TextIO] = None) -> str:
        """Apply template and return the updated state blob."""
        return self._run('apply', inputs, template, tf_state, sink)

    def destroy(self, inputs: dict, template: str, tf_state: str, sink: Optional[TextIO] = None) -> str:
        """Destroy resources in tf_state and return the updated state blob."""
        return self._run('destroy', inputs, template, tf_state, sink)

    def outputs(self, tf_state: str) -> dict:
        """Return terraform outputs as a flat {name: value} map."""
        if not tf_state:
            return {}
        work_dir = Path(tempfile.mkdtemp(prefix='terraform-'))
        try:
            (work_dir / STATE_FILE).write_text(tf_state, encoding='utf-8')
            rc, out, err = self.runner.capture(['output', '-json', f'-state={STATE_FILE}'], cwd=work_dir)
            if rc != 0:
                raise CommandError('terraform output', rc, err)
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
        return parse_outputs(out)

    def version(self) -> str:
        """Return the version reported by `terraform version`, without the v prefix."""
        rc, out, err = self.runner.capture(['version'])
        if rc != 0:
            raise CommandError('terraform version', rc, err)
        match = re.search(r'Terraform v(\S+)', out)
        if match:
            return match.group(1)
        lines = out.strip().splitlines()
        return lines[0].strip() if lines else ''


def parse_outputs(text: str) -> dict:
    """Flatten `terraform output -json` into {name: value}."""
    if not text.strip():
        return {}
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise BootloaderError(f"Cannot parse terraform outputs: {e}") from e
    outputs = {}
    for name, entry in raw.items():
        if isinstance(entry, dict) and 'value' in entry:
            outputs[name] = entry['value']
        else:
            outputs[name] = entry
    return outputs
