"""Entrypoint script synthesis.

Compiles the pre-hooks, the main action and the post-hooks of a
ClusterOperation into the ``entrypoint.sh`` run by the backing job.

Descriptor rules:
- ``shell``: the action is used verbatim as the command.
- ``playbook``: an ``ansible-playbook`` invocation against the mounted
  inventory and vars; built-in playbooks must be on the allow-list.
- anything else is rejected.

Every descriptor failure raises ``ScriptArgsError`` so callers can tell bad
input apart from infrastructure errors.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from kubeonkube.crd import ActionType, ClusterOperation, HookAction, ref_is_empty
from kubeonkube.errors import ScriptArgsError
from kubeonkube.observability._logging import get_logger


log = get_logger(__name__)

# Paths inside the job container
HOSTS_PATH = "/conf/hosts.yml"
VARS_PATH = "/conf/group_vars.yml"
PRIVATE_KEY_PATH = "/auth/ssh-privatekey"
PLAYBOOK_ROOT = "/kubespray"
ENTRYPOINT_PATH = "/bin/entrypoint.sh"
ENTRYPOINT_KEY = "entrypoint.sh"

SUPPORTED_ACTION_TYPES = (ActionType.PLAYBOOK.value, ActionType.SHELL.value)
BUILTIN_PLAYBOOKS = ("precheck.yml", "scale.yml")

ENTRYPOINT_TEMPLATE = """#!/bin/bash
set -o errexit
set -o nounset
set -o pipefail

{commands}
"""


@dataclass(frozen=True)
class ActionDescriptor:
    """One pre-hook, main action or post-hook."""

    action_type: str
    action: str
    extra_args: str = ""
    builtin: bool = True

    @classmethod
    def from_hook(cls, hook: HookAction) -> ActionDescriptor:
        return cls(
            action_type=hook.action_type,
            action=hook.action,
            extra_args=hook.extra_args,
            builtin=hook.is_builtin,
        )


@dataclass(frozen=True)
class EntrypointCommands:
    """Compiled commands in execution order."""

    pre_hook_cmds: tuple[str, ...]
    main_cmd: str
    post_hook_cmds: tuple[str, ...]


def build_playbook_command(action: str, extra_args: str, private_key: bool, builtin: bool) -> str:
    """``ansible-playbook`` invocation for a playbook identifier."""
    if builtin and action not in BUILTIN_PLAYBOOKS:
        msg = (
            f"unsupported playbook {action!r}, "
            f"supported playbooks: {', '.join(BUILTIN_PLAYBOOKS)}"
        )
        raise ScriptArgsError(msg, details={"playbook": action})

    command = f'ansible-playbook -i {HOSTS_PATH} -b --become-user root -e "@{VARS_PATH}"'
    if private_key:
        command = f"{command} --private-key {PRIVATE_KEY_PATH}"
    command = f"{command} {PLAYBOOK_ROOT}/{action}"
    if extra_args:
        command = f"{command} {extra_args}"
    return command


def build_command(descriptor: ActionDescriptor, private_key: bool) -> str:
    """Compile a single descriptor into one shell command line."""
    if not descriptor.builtin:
        log.warning(
            "external_action_source",
            action=descriptor.action,
            action_type=descriptor.action_type,
        )

    if descriptor.action_type == ActionType.PLAYBOOK.value:
        return build_playbook_command(
            descriptor.action, descriptor.extra_args, private_key, descriptor.builtin
        )
    if descriptor.action_type == ActionType.SHELL.value:
        return descriptor.action

    msg = (
        f"unsupported action type {descriptor.action_type!r}, "
        f"supported types: {', '.join(SUPPORTED_ACTION_TYPES)}"
    )
    raise ScriptArgsError(msg, details={"action_type": descriptor.action_type})


def _build_hooks(stage: str, hooks: Iterable[ActionDescriptor], private_key: bool) -> tuple[str, ...]:
    commands = []
    for index, hook in enumerate(hooks):
        try:
            commands.append(build_command(hook, private_key))
        except ScriptArgsError as e:
            raise ScriptArgsError(f"{stage}[{index}]: {e.message}", details=e.details) from e
    return tuple(commands)


def compile_entrypoint(
    pre_hooks: Iterable[ActionDescriptor],
    main: ActionDescriptor,
    post_hooks: Iterable[ActionDescriptor],
    *,
    private_key: bool = False,
) -> EntrypointCommands:
    """Compile all descriptors, failing on the first invalid one."""
    pre_cmds = _build_hooks("prehook", pre_hooks, private_key)
    main_cmd = build_command(main, private_key)
    post_cmds = _build_hooks("posthook", post_hooks, private_key)
    return EntrypointCommands(pre_hook_cmds=pre_cmds, main_cmd=main_cmd, post_hook_cmds=post_cmds)


def render(commands: EntrypointCommands) -> str:
    """Render compiled commands, one per line, through the script template."""
    lines = [*commands.pre_hook_cmds, commands.main_cmd, *commands.post_hook_cmds]
    return ENTRYPOINT_TEMPLATE.format(commands="\n".join(lines)).strip()


def synthesize(operation: ClusterOperation) -> str:
    """Entrypoint script text for a ClusterOperation."""
    spec = operation.spec
    main = ActionDescriptor(
        action_type=spec.action_type,
        action=spec.action,
        extra_args=spec.extra_args,
        builtin=spec.is_builtin,
    )
    commands = compile_entrypoint(
        [ActionDescriptor.from_hook(hook) for hook in spec.pre_hook],
        main,
        [ActionDescriptor.from_hook(hook) for hook in spec.post_hook],
        private_key=not ref_is_empty(spec.ssh_auth_ref),
    )
    return render(commands)


__all__ = [
    "BUILTIN_PLAYBOOKS",
    "ENTRYPOINT_KEY",
    "ENTRYPOINT_PATH",
    "HOSTS_PATH",
    "PLAYBOOK_ROOT",
    "PRIVATE_KEY_PATH",
    "SUPPORTED_ACTION_TYPES",
    "VARS_PATH",
    "ActionDescriptor",
    "EntrypointCommands",
    "build_command",
    "build_playbook_command",
    "compile_entrypoint",
    "render",
    "synthesize",
]
