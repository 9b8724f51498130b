"""Unit tests for the ClusterOperation digest."""

from __future__ import annotations

import hashlib

from kubeonkube.crd import ClusterOperation, HookAction
from kubeonkube.reconcile.digest import DIGEST_SALT, check_modified, seal


class TestSeal:
    """Tests for digest computation."""

    def test_seal_is_lowercase_md5_of_salted_fields(self, make_operation) -> None:
        """Test the digest covers salt, cluster, action type, trimmed action and image."""
        op = make_operation(action="  echo hi \n")

        expected = hashlib.md5(
            f"{DIGEST_SALT}cluster-1shellecho hikubespray:v2.24".encode()
        ).hexdigest()
        assert seal(op) == expected

    def test_seal_is_deterministic(self, make_operation) -> None:
        """Test equal operations produce equal digests."""
        assert seal(make_operation(name="a")) == seal(make_operation(name="b"))

    def test_seal_includes_hooks_in_order(self, make_operation) -> None:
        """Test pre-hooks then post-hooks contribute type and trimmed action."""
        op = make_operation(
            preHook=[{"actionType": "shell", "action": " date "}],
            postHook=[{"actionType": "playbook", "action": "precheck.yml"}],
        )

        expected = hashlib.md5(
            f"{DIGEST_SALT}cluster-1shellecho hikubespray:v2.24shelldateplaybookprecheck.yml".encode()
        ).hexdigest()
        assert seal(op) == expected

    def test_changing_hook_action_changes_digest(self, make_operation) -> None:
        """Test editing a hook body produces a different digest."""
        op = make_operation(preHook=[{"actionType": "shell", "action": "date"}])
        before = seal(op)

        op.spec.pre_hook[0].action = "uptime"

        assert seal(op) != before

    def test_extra_args_are_not_sealed(self, make_operation) -> None:
        """Test fields outside the sealed set do not affect the digest."""
        op = make_operation()
        before = seal(op)

        op.spec.extra_args = "-vvv"

        assert seal(op) == before


class TestCheckModified:
    """Tests for post-seal modification detection."""

    def test_unsealed_operation_is_not_modified(self, make_operation) -> None:
        """Test an empty digest never reports a modification."""
        assert check_modified(make_operation()) is False

    def test_not_modified_right_after_seal(self, make_operation) -> None:
        """Test a freshly sealed operation matches its digest."""
        op = make_operation()
        op.status.digest = seal(op)

        assert check_modified(op) is False

    def test_modified_after_sealed_field_changes(self, make_operation) -> None:
        """Test changing the image after sealing is detected."""
        op = make_operation()
        op.status.digest = seal(op)

        op.spec.image = "kubespray:v2.25"

        assert check_modified(op) is True

    def test_modified_after_hook_added(self) -> None:
        """Test appending a hook after sealing is detected."""
        op = ClusterOperation.model_validate(
            {"metadata": {"name": "op"}, "spec": {"cluster": "c", "actionType": "shell", "action": "ls"}}
        )
        op.status.digest = seal(op)

        op.spec.post_hook.append(HookAction(action_type="shell", action="rm -rf /tmp/x"))

        assert check_modified(op) is True
