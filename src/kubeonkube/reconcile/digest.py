"""Content digest of a ClusterOperation's immutable fields.

The digest is computed once, when ``status.digest`` is empty, and later
compared against a fresh computation to detect edits made after
submission.
"""

import hashlib

from kubeonkube.crd import ClusterOperation


DIGEST_SALT = "kubeonkube"


def seal(operation: ClusterOperation) -> str:
    """Fingerprint cluster, action, image and every hook in declaration order."""
    spec = operation.spec
    parts = [
        DIGEST_SALT,
        spec.cluster,
        spec.action_type,
        spec.action.strip(),
        spec.image,
    ]
    for hook in [*spec.pre_hook, *spec.post_hook]:
        parts.append(hook.action_type)
        parts.append(hook.action.strip())
    return hashlib.md5("".join(parts).encode("utf-8"), usedforsecurity=False).hexdigest()


def check_modified(operation: ClusterOperation) -> bool:
    """True when the sealed fields no longer match the stored digest."""
    if not operation.status.digest:
        return False
    return operation.status.digest != seal(operation)


__all__ = ["DIGEST_SALT", "check_modified", "seal"]
