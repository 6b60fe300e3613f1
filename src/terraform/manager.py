"""Infrastructure lifecycle through terraform."""

import copy
import io
import logging
from typing import Optional, TextIO

from packaging.version import InvalidVersion, Version

from errors import InfrastructureError, PreconditionError, TerraformExecutorError
from storage.state import State
from terraform.executor import TerraformExecutor
from terraform.inputs import InputGenerator
from terraform.templates import TemplateGenerator

logger = logging.getLogger(__name__)

MINIMUM_VERSION = Version('0.10.0')


class _Tee:
    """Collects tool output, optionally echoing it to a stream."""

    def __init__(self, echo: Optional[TextIO] = None):
        self.buffer = io.StringIO()
        self.echo = echo

    def write(self, text: str) -> int:
        if self.echo is not None:
            self.echo.write(text)
        return self.buffer.write(text)

    def getvalue(self) -> str:
        return self.buffer.getvalue()


class TerraformManager:
    """Applies and destroys infrastructure, capturing partial state on failure.

    Attributes:
        executor: Runs the terraform binary
        template_generator: Builds the template for a state
        input_generator: Builds the input variables for a state
        echo: Optional stream that also receives terraform output
    """

    def __init__(self, executor: TerraformExecutor, template_generator: TemplateGenerator,
                 input_generator: InputGenerator, echo: Optional[TextIO] = None):
        self.executor = executor
        self.template_generator = template_generator
        self.input_generator = input_generator
        self.echo = echo

    def version(self) -> str:
        return self.executor.version()

    def validate_version(self) -> None:
        """Fail fast unless terraform reports a parsable version >= 0.10.0."""
        raw = self.version()
        try:
            version = Version(raw)
        except InvalidVersion as e:
            raise PreconditionError(f"Terraform version could not be parsed: {e}") from e
        if version < MINIMUM_VERSION:
            raise PreconditionError(f"Terraform version must be at least v{MINIMUM_VERSION}")
        logger.debug(f"Terraform version {version} is supported")

    def apply(self, state: State) -> State:
        """Apply the infrastructure for state; returns the updated state."""
        logger.info("generating terraform template")
        template = self.template_generator.generate(state)

        logger.info("generating terraform variables")
        inputs = self.input_generator.generate(state)

        logger.info("applying terraform template")
        output = _Tee(self.echo)
        try:
            tf_state = self.executor.apply(inputs, template, state.tf_state, sink=output)
        except TerraformExecutorError as e:
            raise InfrastructureError('apply', e.tf_state, output.getvalue(), e.cause) from e

        updated = copy.deepcopy(state)
        updated.tf_state = tf_state
        updated.latest_tf_output = output.getvalue()
        return updated

    def destroy(self, state: State) -> State:
        """Destroy the infrastructure; a state without tf_state is a no-op."""
        if not state.tf_state:
            logger.debug("No terraform state, skipping infrastructure destroy")
            return state

        logger.info("destroying infrastructure")
        template = self.template_generator.generate(state)
        inputs = self.input_generator.generate(state)

        output = _Tee(self.echo)
        try:
            tf_state = self.executor.destroy(inputs, template, state.tf_state, sink=output)
        except TerraformExecutorError as e:
            raise InfrastructureError('destroy', e.tf_state, output.getvalue(), e.cause) from e

        updated = copy.deepcopy(state)
        updated.tf_state = tf_state
        updated.latest_tf_output = output.getvalue()
        logger.info("finished destroying infrastructure")
        return updated

    def get_outputs(self, state: State) -> dict:
        """Resolved terraform outputs for state. Does not modify state."""
        return self.executor.outputs(state.tf_state)
