"""Unit tests for ClusterOperation admission checks."""

from __future__ import annotations

import pytest

from kubeonkube.errors import InputRejectedError
from kubeonkube.reconcile.validation import check_artifact_refs, is_valid_image_name


class TestImageName:
    """Tests for image name validation."""

    @pytest.mark.parametrize("image", ["nginx", "nginx:1.2", "ghcr.io/kubean-io/spray-job:v0.4.0"])
    def test_valid_images(self, image: str) -> None:
        """Test well-formed image names are accepted."""
        assert is_valid_image_name(image) is True

    @pytest.mark.parametrize("image", ["", "my image", "-abc", "abc-", "nginx:1.2 ", "\tnginx"])
    def test_invalid_images(self, image: str) -> None:
        """Test empty, spaced or badly terminated names are rejected."""
        assert is_valid_image_name(image) is False


class TestCheckArtifactRefs:
    """Tests for the artifact precondition check."""

    def test_existing_cluster_artifacts_pass(self, seeded_store, make_operation) -> None:
        """Test a Cluster with existing hosts and vars passes."""
        cluster = seeded_store.get_cluster("cluster-1")

        check_artifact_refs(seeded_store, cluster, make_operation())

    def test_missing_hosts_ref_is_rejected(self, seeded_store, make_cluster, make_operation) -> None:
        """Test an empty hosts reference on the Cluster is rejected."""
        cluster = make_cluster(hostsConfRef=None)

        with pytest.raises(InputRejectedError, match="hostsConfRef is empty"):
            check_artifact_refs(seeded_store, cluster, make_operation())

    def test_absent_vars_config_map_is_rejected(self, seeded_store, make_operation) -> None:
        """Test a vars reference to a missing ConfigMap is rejected."""
        del seeded_store.config_maps[("cluster-artifacts", "cluster-1-vars")]
        cluster = seeded_store.get_cluster("cluster-1")

        with pytest.raises(InputRejectedError, match="varsConfRef") as exc_info:
            check_artifact_refs(seeded_store, cluster, make_operation())
        assert exc_info.value.reason == "MissingArtifact"

    def test_absent_ssh_secret_is_rejected(self, seeded_store, make_cluster, make_operation) -> None:
        """Test an SSH reference to a missing Secret is rejected."""
        cluster = make_cluster(ssh=True)

        with pytest.raises(InputRejectedError, match="sshAuthRef"):
            check_artifact_refs(seeded_store, cluster, make_operation())

    def test_artifacts_in_different_namespaces_are_rejected(
        self, seeded_store, make_cluster, make_operation
    ) -> None:
        """Test Cluster artifacts spread over namespaces are rejected."""
        seeded_store.add_secret("elsewhere", "cluster-1-ssh", {"ssh-privatekey": "a2V5"})
        cluster = make_cluster(sshAuthRef={"namespace": "elsewhere", "name": "cluster-1-ssh"})

        with pytest.raises(InputRejectedError, match="same namespace") as exc_info:
            check_artifact_refs(seeded_store, cluster, make_operation())
        assert exc_info.value.reason == "NamespaceMismatch"

    def test_operation_copies_are_not_rechecked(self, fake_store, make_cluster, make_operation) -> None:
        """Test slots the operation already filled skip the Cluster check."""
        cluster = make_cluster()
        op = make_operation(
            hostsConfRef={"namespace": "kubeonkube-system", "name": "hosts-copy"},
            varsConfRef={"namespace": "kubeonkube-system", "name": "vars-copy"},
        )

        check_artifact_refs(fake_store, cluster, op)
