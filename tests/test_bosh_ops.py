"""Tests for bosh/ops.py - overlay selection."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from bosh import ops
from storage.state import DIRECTOR, JUMPBOX


class TestOverlays:
    """Test the (deployment, iaas) overlay table."""

    def test_every_iaas_has_rows(self):
        for iaas in ('gcp', 'aws', 'azure'):
            assert ops.overlays_for(JUMPBOX, iaas)
            assert ops.overlays_for(DIRECTOR, iaas)

    def test_director_cpi_first(self):
        """The CPI overlay must be applied before the add-ons."""
        overlays = ops.overlays_for(DIRECTOR, 'aws')
        assert overlays[0] == 'aws/cpi.yml'
        assert overlays.index('jumpbox-user.yml') < overlays.index('aws-bosh-director-encrypt-disk-ops.yml')

    def test_unknown_iaas(self):
        with pytest.raises(ValueError, match='openstack'):
            ops.overlays_for(JUMPBOX, 'openstack')

    def test_overlay_filename(self):
        assert ops.overlay_filename('gcp/cpi.yml') == 'gcp-cpi.yml'
        assert ops.overlay_filename('uaa.yml') == 'uaa.yml'

    def test_embedded_overlays_referenced(self):
        """Every embedded overlay should be used by some row."""
        used = {o for row in ops.OVERLAYS.values() for o in row}
        assert set(ops.EMBEDDED) <= used


class TestReading:
    """Test reading overlays and base manifests."""

    def test_read_embedded(self, tmp_path):
        text = ops.read_overlay('aws-bosh-director-encrypt-disk-ops.yml', tmp_path)
        assert '((kms_key_arn))' in text

    def test_read_from_checkout(self, deployments_dir):
        text = ops.read_overlay('gcp/cpi.yml', ops.deployment_dir(DIRECTOR, deployments_dir))
        assert 'value: gcp' in text

    def test_read_missing_overlay(self, tmp_path):
        with pytest.raises(FileNotFoundError, match='Ops file not found'):
            ops.read_overlay('gcp/cpi.yml', tmp_path)

    def test_read_base_manifest(self, deployments_dir):
        assert ops.read_base_manifest(JUMPBOX, deployments_dir) == 'name: jumpbox\n'
        assert ops.read_base_manifest(DIRECTOR, deployments_dir) == 'name: bosh\n'

    def test_missing_base_manifest(self, tmp_path):
        with pytest.raises(FileNotFoundError, match='Base manifest not found'):
            ops.read_base_manifest(DIRECTOR, tmp_path)
