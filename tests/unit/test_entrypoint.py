"""Unit tests for entrypoint script synthesis."""

from __future__ import annotations

import pytest

from kubeonkube.errors import InputRejectedError, ScriptArgsError
from kubeonkube.reconcile.entrypoint import (
    ActionDescriptor,
    EntrypointCommands,
    build_command,
    build_playbook_command,
    compile_entrypoint,
    render,
    synthesize,
)


class TestBuildCommand:
    """Tests for compiling a single descriptor."""

    def test_shell_action_is_used_verbatim(self) -> None:
        """Test shell actions become the command unchanged."""
        descriptor = ActionDescriptor(action_type="shell", action="echo hi")

        assert build_command(descriptor, private_key=False) == "echo hi"

    def test_builtin_playbook_with_private_key(self) -> None:
        """Test the playbook command layout with a private key attached."""
        command = build_playbook_command("scale.yml", "", private_key=True, builtin=True)

        assert command == (
            'ansible-playbook -i /conf/hosts.yml -b --become-user root -e "@/conf/group_vars.yml" '
            "--private-key /auth/ssh-privatekey /kubespray/scale.yml"
        )

    def test_playbook_without_private_key_and_extra_args(self) -> None:
        """Test extra args are appended after the playbook path."""
        command = build_playbook_command("precheck.yml", "-e foo=bar", private_key=False, builtin=True)

        assert "--private-key" not in command
        assert command.endswith("/kubespray/precheck.yml -e foo=bar")

    def test_builtin_playbook_outside_allow_list_is_rejected(self) -> None:
        """Test unknown built-in playbooks fail naming the allow-list."""
        descriptor = ActionDescriptor(action_type="playbook", action="reset.yml")

        with pytest.raises(ScriptArgsError, match="precheck.yml, scale.yml"):
            build_command(descriptor, private_key=False)

    def test_external_playbook_skips_allow_list(self) -> None:
        """Test externally sourced playbooks are not checked against the allow-list."""
        descriptor = ActionDescriptor(action_type="playbook", action="custom.yml", builtin=False)

        assert build_command(descriptor, private_key=False).endswith("/kubespray/custom.yml")

    def test_unsupported_action_type_is_rejected(self) -> None:
        """Test unknown action types fail naming the supported types."""
        descriptor = ActionDescriptor(action_type="python", action="main.py")

        with pytest.raises(ScriptArgsError, match="playbook, shell"):
            build_command(descriptor, private_key=False)

    def test_script_args_error_is_input_rejected(self) -> None:
        """Test synthesis failures classify as bad user input."""
        error = ScriptArgsError("bad")

        assert isinstance(error, InputRejectedError)
        assert error.reason == "InvalidActionArgs"


class TestCompileEntrypoint:
    """Tests for ordering and hook error prefixes."""

    def test_commands_keep_stage_order(self) -> None:
        """Test pre-hooks, main and post-hooks compile in order."""
        commands = compile_entrypoint(
            [ActionDescriptor("shell", "pre-1"), ActionDescriptor("shell", "pre-2")],
            ActionDescriptor("shell", "main"),
            [ActionDescriptor("shell", "post-1")],
        )

        assert commands.pre_hook_cmds == ("pre-1", "pre-2")
        assert commands.main_cmd == "main"
        assert commands.post_hook_cmds == ("post-1",)

    def test_prehook_error_is_prefixed(self) -> None:
        """Test hook failures name the stage and index."""
        with pytest.raises(ScriptArgsError, match=r"^prehook\[1\]: unsupported action type"):
            compile_entrypoint(
                [ActionDescriptor("shell", "ok"), ActionDescriptor("bogus", "x")],
                ActionDescriptor("shell", "main"),
                [],
            )

    def test_posthook_error_is_prefixed(self) -> None:
        """Test post-hook failures carry the posthook prefix."""
        with pytest.raises(ScriptArgsError, match=r"^posthook\[0\]: unsupported playbook"):
            compile_entrypoint(
                [],
                ActionDescriptor("shell", "main"),
                [ActionDescriptor("playbook", "nope.yml")],
            )


class TestRender:
    """Tests for script rendering."""

    def test_render_one_command_per_line(self) -> None:
        """Test the template sequences commands on their own lines."""
        script = render(EntrypointCommands(("a",), "b", ("c",)))

        lines = script.splitlines()
        assert lines[0] == "#!/bin/bash"
        assert lines[-3:] == ["a", "b", "c"]
        assert script == script.strip()

    def test_synthesize_shell_main_action(self, make_operation) -> None:
        """Test a shell main action ends the script with exactly its command."""
        script = synthesize(make_operation(action="echo hi"))

        assert script.splitlines()[-1] == "echo hi"

    def test_synthesize_uses_private_key_when_ssh_attached(self, make_operation) -> None:
        """Test an attached SSH secret adds --private-key to playbook commands."""
        op = make_operation(
            action_type="playbook",
            action="scale.yml",
            sshAuthRef={"namespace": "kubeonkube-system", "name": "ssh-1"},
        )

        last = synthesize(op).splitlines()[-1]
        assert "--private-key" in last
        assert "/kubespray/scale.yml" in last

    def test_synthesize_rejects_bad_hook(self, make_operation) -> None:
        """Test a bad hook fails the whole synthesis."""
        op = make_operation(postHook=[{"actionType": "playbook", "action": "evil.yml"}])

        with pytest.raises(ScriptArgsError):
            synthesize(op)
