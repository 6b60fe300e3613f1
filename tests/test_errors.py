"""Tests for errors.py - error messages and partial-state merging."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from errors import (
    AggregateError,
    CommandError,
    DeploymentCreateError,
    DeploymentDeleteError,
    InfrastructureError,
    InterpolateError,
    TunnelStartError,
)
from storage.state import DIRECTOR, JUMPBOX, Jumpbox, State


class TestMessages:
    """Test error message formatting."""

    def test_command_error(self):
        err = CommandError('terraform apply', 1, 'boom\n')
        assert str(err) == 'terraform apply exited with status 1: boom'
        assert err.returncode == 1

    def test_interpolate_error(self):
        assert str(InterpolateError(JUMPBOX, 'missing var')) == 'jumpbox interpolate: missing var'

    def test_aggregate_joins_messages(self):
        """Every underlying message should be reported."""
        err = AggregateError([CommandError('bosh create-env jumpbox', 1), OSError('no such file')])
        assert 'bosh create-env jumpbox exited with status 1' in str(err)
        assert 'no such file' in str(err)
        assert len(err.errors) == 2

    def test_partial_error_names_stage(self):
        err = InfrastructureError('destroy', '{}', '', CommandError('terraform destroy', 1))
        assert err.stage == 'terraform destroy'
        assert str(err).startswith('terraform destroy: ')


class TestApplyTo:
    """Test PartialStateError.apply_to."""

    def test_infrastructure_error(self):
        """Partial tf_state and output should be merged."""
        state = State(env_id='env-1', iaas='gcp', tf_state='old')
        err = InfrastructureError('apply', 'partial', 'Error: quota', CommandError('terraform apply', 1))
        merged = err.apply_to(state)
        assert merged.tf_state == 'partial'
        assert merged.latest_tf_output == 'Error: quota'
        assert state.tf_state == 'old'

    def test_deployment_create_error(self):
        """Variables, manifest and deploy state should be merged for the kind."""
        state = State(env_id='env-1', iaas='gcp')
        err = DeploymentCreateError(DIRECTOR, 'admin_password: x\n', 'name: bosh\n', '{"cid": 1}',
                                    CommandError('bosh create-env director', 1))
        merged = err.apply_to(state)
        assert merged.director.variables == 'admin_password: x\n'
        assert merged.director.manifest == 'name: bosh\n'
        assert merged.director.state == '{"cid": 1}'
        assert merged.jumpbox == Jumpbox()
        assert state.director.state == ''
        assert err.stage == 'create director'

    def test_deployment_delete_error(self):
        """Only the deploy state should change."""
        state = State(env_id='env-1', iaas='gcp')
        state.jumpbox.manifest = 'name: jumpbox\n'
        err = DeploymentDeleteError(JUMPBOX, '{"cid": 2}', CommandError('bosh delete-env jumpbox', 1))
        merged = err.apply_to(state)
        assert merged.jumpbox.state == '{"cid": 2}'
        assert merged.jumpbox.manifest == 'name: jumpbox\n'

    def test_tunnel_start_error(self):
        """The created jumpbox should be kept."""
        jumpbox = Jumpbox(variables='v', state='s', manifest='m', url='1.2.3.4:22')
        err = TunnelStartError(jumpbox, OSError('refused'))
        merged = err.apply_to(State(env_id='env-1', iaas='gcp'))
        assert merged.jumpbox == jumpbox
        assert merged.jumpbox is not jumpbox
        assert err.stage == 'start proxy'
