"""Tests for terraform/manager.py - infrastructure lifecycle."""

import io
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from errors import CommandError, InfrastructureError, PreconditionError, TerraformExecutorError
from terraform.inputs import InputGenerator
from terraform.manager import TerraformManager
from terraform.templates import TemplateGenerator


def _manager(executor=None, echo=None):
    template_generator = MagicMock()
    template_generator.generate.return_value = '# template\n'
    input_generator = MagicMock()
    input_generator.generate.return_value = {'env_id': 'env-test'}
    return TerraformManager(executor or MagicMock(), template_generator, input_generator, echo=echo)


class TestValidateVersion:
    """Test TerraformManager.validate_version."""

    def test_accepts_new_version(self):
        executor = MagicMock()
        executor.version.return_value = '9.0.0'
        _manager(executor).validate_version()

    def test_rejects_old_version(self):
        executor = MagicMock()
        executor.version.return_value = '0.0.1'
        with pytest.raises(PreconditionError, match='Terraform version must be at least v0.10.0'):
            _manager(executor).validate_version()

    def test_rejects_unparsable_version(self):
        executor = MagicMock()
        executor.version.return_value = 'lol.5.2'
        with pytest.raises(PreconditionError, match='could not be parsed'):
            _manager(executor).validate_version()

    def test_accepts_minimum(self):
        executor = MagicMock()
        executor.version.return_value = '0.10.0'
        _manager(executor).validate_version()


class TestApply:
    """Test TerraformManager.apply."""

    def test_success(self, gcp_state, caplog):
        executor = MagicMock()

        def apply(inputs, template, tf_state, sink=None):
            sink.write('Apply complete! Resources: 12 added.\n')
            return '{"serial": 1}'

        executor.apply.side_effect = apply
        manager = _manager(executor)

        with caplog.at_level('INFO'):
            updated = manager.apply(gcp_state)

        assert updated.tf_state == '{"serial": 1}'
        assert 'Resources: 12 added' in updated.latest_tf_output
        assert gcp_state.tf_state == ''
        executor.apply.assert_called_once()
        assert executor.apply.call_args[0][:3] == ({'env_id': 'env-test'}, '# template\n', '')
        messages = [r.getMessage() for r in caplog.records]
        assert messages.index('generating terraform template') < messages.index('applying terraform template')

    def test_echo_stream(self, gcp_state):
        """Output should also reach the echo stream."""
        executor = MagicMock()
        executor.apply.side_effect = lambda inputs, template, tf_state, sink=None: sink.write('hi\n') and '{}'
        echo = io.StringIO()
        _manager(executor, echo=echo).apply(gcp_state)
        assert echo.getvalue() == 'hi\n'

    def test_failure_raises_infrastructure_error(self, gcp_state):
        executor = MagicMock()

        def apply(inputs, template, tf_state, sink=None):
            sink.write('Error: quota exceeded\n')
            raise TerraformExecutorError('{"serial": 1, "partial": true}', CommandError('terraform apply', 1))

        executor.apply.side_effect = apply
        with pytest.raises(InfrastructureError) as exc_info:
            _manager(executor).apply(gcp_state)

        err = exc_info.value
        assert err.operation == 'apply'
        assert err.tf_state == '{"serial": 1, "partial": true}'
        assert 'quota exceeded' in err.output

    def test_other_errors_propagate(self, gcp_state):
        executor = MagicMock()
        executor.apply.side_effect = CommandError('terraform init', 1)
        with pytest.raises(CommandError):
            _manager(executor).apply(gcp_state)

    def test_apply_twice_is_stable(self, gcp_state, templates_dir, tmp_path):
        """Unchanged state should produce equal inputs on every apply."""
        executor = MagicMock()
        executor.apply.side_effect = lambda inputs, template, tf_state, sink=None: tf_state or '{"serial": 1}'
        manager = TerraformManager(executor, TemplateGenerator(templates_dir), InputGenerator(tmp_path / 'tf'))

        first = manager.apply(gcp_state)
        second = manager.apply(first)

        first_call, second_call = executor.apply.call_args_list
        assert first_call[0][0] == second_call[0][0]
        assert first_call[0][1] == second_call[0][1]
        assert second.tf_state == first.tf_state


class TestDestroy:
    """Test TerraformManager.destroy."""

    def test_empty_tf_state_is_noop(self, gcp_state):
        executor = MagicMock()
        manager = _manager(executor)
        assert manager.destroy(gcp_state) is gcp_state
        executor.destroy.assert_not_called()
        manager.template_generator.generate.assert_not_called()

    def test_destroy(self, gcp_state):
        gcp_state.tf_state = '{"serial": 5}'
        executor = MagicMock()
        executor.destroy.return_value = '{"serial": 6}'
        updated = _manager(executor).destroy(gcp_state)
        assert updated.tf_state == '{"serial": 6}'
        assert executor.destroy.call_args[0][2] == '{"serial": 5}'

    def test_destroy_failure(self, gcp_state):
        gcp_state.tf_state = '{"serial": 5}'
        executor = MagicMock()
        executor.destroy.side_effect = TerraformExecutorError('{"serial": 7}', CommandError('terraform destroy', 1))
        with pytest.raises(InfrastructureError) as exc_info:
            _manager(executor).destroy(gcp_state)
        assert exc_info.value.operation == 'destroy'
        assert exc_info.value.apply_to(gcp_state).tf_state == '{"serial": 7}'


class TestGetOutputs:
    """Test TerraformManager.get_outputs."""

    def test_delegates_without_mutating(self, gcp_state):
        gcp_state.tf_state = '{"serial": 1}'
        executor = MagicMock()
        executor.outputs.return_value = {'jumpbox_url': '1.2.3.4:22'}
        assert _manager(executor).get_outputs(gcp_state) == {'jumpbox_url': '1.2.3.4:22'}
        executor.outputs.assert_called_once_with('{"serial": 1}')
        assert gcp_state.tf_outputs == {}
