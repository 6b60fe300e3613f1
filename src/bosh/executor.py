"""bosh CLI invocation: interpolate, create-env, delete-env, version.

create-env/delete-env keep their working files in the vars dir, named after
the deployment:

    {name}-state.json       deploy-state blob (opaque, owned by bosh)
    {name}-variables.yml    variables store
    {name}-manifest.yml     resolved manifest

The state file is read back after every run, including failed ones, so the
caller can persist partial progress.
"""

import logging
import re
import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, TextIO

import yaml

from bosh import ops
from common import CommandRunner
from errors import (
    AggregateError,
    BoshVersionError,
    CommandError,
    CreateEnvError,
    DeleteEnvError,
    InterpolateError,
)
from storage.state import DIRECTOR, JUMPBOX

logger = logging.getLogger(__name__)

VERSION_DEV_BUILD = '[DEV BUILD]'


@dataclass
class InterpolateInput:
    """Inputs for one interpolation.

    Attributes:
        iaas: Selects the overlay row in bosh.ops.OVERLAYS
        deployment_vars: YAML vars file contents (network, credentials)
        variables: Prior variables store; empty on first run
        ops_file: Caller-supplied operations overlay (director only)
    """
    iaas: str
    deployment_vars: str
    variables: str = ''
    ops_file: str = ''


@dataclass
class InterpolateOutput:
    variables: str
    manifest: str


@dataclass
class EnvInput:
    """Inputs for create-env/delete-env."""
    deployment: str
    directory: Path
    manifest: str
    variables: str
    state: str = ''


def env_paths(directory: Path, deployment: str) -> tuple[Path, Path, Path]:
    """(state, variables, manifest) paths for a deployment."""
    directory = Path(directory)
    return (
        directory / f'{deployment}-state.json',
        directory / f'{deployment}-variables.yml',
        directory / f'{deployment}-manifest.yml',
    )


def missing_variables(kind: str, variables: str) -> list[str]:
    """Names of required secrets absent from a variables store."""
    try:
        store = yaml.safe_load(variables) or {}
    except yaml.YAMLError:
        store = {}
    if not isinstance(store, dict):
        store = {}

    missing = []
    for key, subkey in ops.REQUIRED_VARIABLES[kind]:
        value = store.get(key)
        if subkey is not None:
            value = value.get(subkey) if isinstance(value, dict) else None
        if not value:
            missing.append(f'{key}.{subkey}' if subkey else key)
    return missing


class BoshExecutor:
    """Runs the bosh CLI.

    Attributes:
        runner: Runs the bosh binary
        deployments_dir: Holds bosh-deployment/ and jumpbox-deployment/ checkouts
        stream: Receives create-env/delete-env output (default: stdout)
        debug: Keep interpolation temp dirs for inspection
    """

    def __init__(self, runner: CommandRunner, deployments_dir: Path,
                 stream: Optional[TextIO] = None, debug: bool = False):
        self.runner = runner
        self.deployments_dir = Path(deployments_dir)
        self.stream = stream
        self.debug = debug

    # -------------------------------------------------------------------------
    # Interpolation
    # -------------------------------------------------------------------------

    def jumpbox_interpolate(self, interpolate_input: InterpolateInput) -> InterpolateOutput:
        return self.interpolate(JUMPBOX, interpolate_input)

    def director_interpolate(self, interpolate_input: InterpolateInput) -> InterpolateOutput:
        return self.interpolate(DIRECTOR, interpolate_input)

    def interpolate(self, kind: str, interpolate_input: InterpolateInput) -> InterpolateOutput:
        """Resolve the manifest and variables store for a deployment.

        Infrastructure overlays are applied in a first pass. A director
        operations overlay is applied in a second pass on top of that
        result, so it cannot break the fields the first pass resolved.
        """
        work_dir = Path(tempfile.mkdtemp(prefix=f'{kind}-interpolate-'))
        try:
            return self._interpolate(kind, interpolate_input, work_dir)
        finally:
            if not self.debug:
                shutil.rmtree(work_dir, ignore_errors=True)

    def _interpolate(self, kind: str, interpolate_input: InterpolateInput,
                     work_dir: Path) -> InterpolateOutput:
        manifest_path = work_dir / 'manifest.yml'
        vars_store = work_dir / 'variables.yml'
        vars_file = work_dir / 'deployment-vars.yml'

        try:
            files = {
                manifest_path.name: ops.read_base_manifest(kind, self.deployments_dir),
                vars_file.name: interpolate_input.deployment_vars,
            }
            overlay_args = []
            source_dir = ops.deployment_dir(kind, self.deployments_dir)
            for overlay in ops.overlays_for(kind, interpolate_input.iaas):
                name = ops.overlay_filename(overlay)
                files[name] = ops.read_overlay(overlay, source_dir)
                overlay_args += ['-o', str(work_dir / name)]
        except (OSError, ValueError) as e:
            raise InterpolateError(kind, str(e)) from e

        if interpolate_input.variables:
            files[vars_store.name] = interpolate_input.variables
        for name, contents in files.items():
            (work_dir / name).write_text(contents, encoding='utf-8')

        args = ['interpolate', str(manifest_path), '--var-errs']
        if kind == DIRECTOR:
            args.append('--var-errs-unused')
        args += ['--vars-store', str(vars_store), '--vars-file', str(vars_file)] + overlay_args

        manifest = self._run_interpolate(kind, args, work_dir)

        if kind == DIRECTOR and interpolate_input.ops_file:
            user_ops = work_dir / 'user-ops-file.yml'
            user_ops.write_text(interpolate_input.ops_file, encoding='utf-8')
            manifest_path.write_text(manifest, encoding='utf-8')
            args = [
                'interpolate', str(manifest_path),
                '--var-errs',
                '--vars-store', str(vars_store),
                '--vars-file', str(vars_file),
                '-o', str(user_ops),
            ]
            manifest = self._run_interpolate(kind, args, work_dir, label='operations overlay: ')

        try:
            variables = vars_store.read_text(encoding='utf-8')
        except OSError as e:
            raise InterpolateError(kind, f"read variables store: {e}") from e

        missing = missing_variables(kind, variables)
        if missing:
            raise InterpolateError(kind, f"variables store is missing {', '.join(missing)}")

        return InterpolateOutput(variables=variables, manifest=manifest)

    def _run_interpolate(self, kind: str, args: list[str], work_dir: Path, label: str = '') -> str:
        rc, out, err = self.runner.capture(args, cwd=work_dir)
        if rc != 0:
            raise InterpolateError(kind, f"{label}{(err or out).strip()}")
        return out

    # -------------------------------------------------------------------------
    # create-env / delete-env
    # -------------------------------------------------------------------------

    def _write_previous_files(self, env_input: EnvInput) -> tuple[Path, Path, Path]:
        state_path, variables_path, manifest_path = env_paths(env_input.directory, env_input.deployment)
        Path(env_input.directory).mkdir(parents=True, exist_ok=True)
        if env_input.state:
            state_path.write_text(env_input.state, encoding='utf-8')
        elif state_path.exists():
            # No recorded state: a leftover file must not be mistaken for it
            state_path.unlink()
        variables_path.write_text(env_input.variables, encoding='utf-8')
        variables_path.chmod(0o600)
        manifest_path.write_text(env_input.manifest, encoding='utf-8')
        return state_path, variables_path, manifest_path

    def _run_env(self, command: str, env_input: EnvInput) -> Path:
        state_path, variables_path, manifest_path = self._write_previous_files(env_input)
        args = [
            command, str(manifest_path),
            '--vars-store', str(variables_path),
            '--state', str(state_path),
        ]
        logger.debug(f"Running bosh {command} for {env_input.deployment}")
        stream = self.stream if self.stream is not None else sys.stdout
        rc = self.runner.run(args, cwd=Path(env_input.directory), sink=stream)
        if rc != 0:
            raise CommandError(f'bosh {command} {env_input.deployment}', rc)
        return state_path

    def create_env(self, env_input: EnvInput) -> str:
        """Run create-env and return the new deploy-state blob."""
        state_path = env_paths(env_input.directory, env_input.deployment)[0]
        try:
            self._run_env('create-env', env_input)
        except CommandError as e:
            try:
                partial = state_path.read_text(encoding='utf-8')
            except OSError as read_err:
                raise AggregateError([e, read_err]) from e
            raise CreateEnvError(partial, e) from e
        return state_path.read_text(encoding='utf-8')

    def delete_env(self, env_input: EnvInput) -> None:
        """Run delete-env."""
        state_path = env_paths(env_input.directory, env_input.deployment)[0]
        try:
            self._run_env('delete-env', env_input)
        except CommandError as e:
            try:
                partial = state_path.read_text(encoding='utf-8')
            except OSError as read_err:
                raise AggregateError([e, read_err]) from e
            raise DeleteEnvError(partial, e) from e

    def version(self) -> str:
        """Version reported by `bosh -v`."""
        rc, out, err = self.runner.capture(['-v'])
        if rc != 0:
            raise CommandError('bosh -v', rc, err)
        if VERSION_DEV_BUILD in out:
            return VERSION_DEV_BUILD
        match = re.search(r'\d+\.\d+\.\d+', out)
        if not match:
            raise BoshVersionError("BOSH version could not be parsed")
        return match.group(0)
