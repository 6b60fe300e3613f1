"""Error taxonomy for the provisioning lifecycle.

Errors that carry partial state derive from PartialStateError. Callers merge
them into the persisted state with apply_to() and save before re-raising, so
a re-run resumes from the captured point.
"""

import copy


class BootloaderError(Exception):
    """Base class for lifecycle errors."""


class PreconditionError(BootloaderError):
    """A check that must pass before any stage runs (e.g. tool version)."""


class StateError(BootloaderError):
    """The persisted state file is unreadable or unsupported."""


class CommandError(BootloaderError):
    """An external tool exited non-zero."""

    def __init__(self, command: str, returncode: int, output: str = ''):
        self.command = command
        self.returncode = returncode
        self.output = output
        message = f"{command} exited with status {returncode}"
        if output:
            message = f"{message}: {output.strip()}"
        super().__init__(message)


class InterpolateError(BootloaderError):
    """Manifest interpolation failed (missing variables, bad overlay)."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(f"{kind} interpolate: {message}")


class AggregateError(BootloaderError):
    """Several failures that must be reported together."""

    def __init__(self, errors: list):
        self.errors = list(errors)
        super().__init__(', '.join(str(e) for e in self.errors))


class TunnelError(BootloaderError):
    """The SOCKS5 relay to the jumpbox could not be started."""


class BoshVersionError(BootloaderError):
    """The bosh CLI version string could not be parsed."""


# -----------------------------------------------------------------------------
# Executor-level errors (raw partial blobs from the tools)
# -----------------------------------------------------------------------------

class TerraformExecutorError(BootloaderError):
    """terraform apply/destroy failed; tf_state holds what it wrote."""

    def __init__(self, tf_state: str, cause: Exception):
        self.tf_state = tf_state
        self.cause = cause
        super().__init__(str(cause))


class CreateEnvError(BootloaderError):
    """bosh create-env failed; deploy_state holds what it wrote."""

    def __init__(self, deploy_state: str, cause: Exception):
        self.deploy_state = deploy_state
        self.cause = cause
        super().__init__(str(cause))


class DeleteEnvError(BootloaderError):
    """bosh delete-env failed; deploy_state holds what it wrote."""

    def __init__(self, deploy_state: str, cause: Exception):
        self.deploy_state = deploy_state
        self.cause = cause
        super().__init__(str(cause))


# -----------------------------------------------------------------------------
# Manager-level errors carrying partial state
# -----------------------------------------------------------------------------

class PartialStateError(BootloaderError):
    """A stage failed after making progress that must be persisted."""

    stage = 'unknown'

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"{self.stage}: {cause}")

    def apply_to(self, state):
        """Return a copy of state with the partial progress merged in."""
        raise NotImplementedError


class InfrastructureError(PartialStateError):
    """terraform apply/destroy failed."""

    def __init__(self, operation: str, tf_state: str, output: str, cause: Exception):
        self.operation = operation
        self.tf_state = tf_state
        self.output = output
        self.stage = f'terraform {operation}'
        super().__init__(cause)

    def apply_to(self, state):
        merged = copy.deepcopy(state)
        merged.tf_state = self.tf_state
        merged.latest_tf_output = self.output
        return merged


class DeploymentCreateError(PartialStateError):
    """create-env failed for a deployment."""

    def __init__(self, kind: str, variables: str, manifest: str, deploy_state: str,
                 cause: Exception):
        self.kind = kind
        self.variables = variables
        self.manifest = manifest
        self.deploy_state = deploy_state
        self.stage = f'create {kind}'
        super().__init__(cause)

    def apply_to(self, state):
        merged = copy.deepcopy(state)
        deployment = merged.deployment(self.kind)
        deployment.variables = self.variables
        deployment.manifest = self.manifest
        deployment.state = self.deploy_state
        return merged


class DeploymentDeleteError(PartialStateError):
    """delete-env failed for a deployment."""

    def __init__(self, kind: str, deploy_state: str, cause: Exception):
        self.kind = kind
        self.deploy_state = deploy_state
        self.stage = f'delete {kind}'
        super().__init__(cause)

    def apply_to(self, state):
        merged = copy.deepcopy(state)
        merged.deployment(self.kind).state = self.deploy_state
        return merged


class TunnelStartError(PartialStateError):
    """The jumpbox was created but the tunnel to it did not come up."""

    stage = 'start proxy'

    def __init__(self, jumpbox, cause: Exception):
        self.jumpbox = jumpbox
        super().__init__(cause)

    def apply_to(self, state):
        merged = copy.deepcopy(state)
        merged.jumpbox = copy.deepcopy(self.jumpbox)
        return merged
