"""Map a mail identity to the storage server login."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from .models import Login, StorageCredential


class UsernamePolicy(str, Enum):
    AS_IS = "asis"
    STRIP_DOMAIN = "stripdomain"
    REQUIRE_EMAIL = "email"
    DELEGATED = "ldap"


_POLICY_ALIASES = {
    "%s": UsernamePolicy.AS_IS,
    "asis": UsernamePolicy.AS_IS,
    "plain": UsernamePolicy.AS_IS,
    "copy": UsernamePolicy.AS_IS,
    "%u": UsernamePolicy.STRIP_DOMAIN,
    "stripdomain": UsernamePolicy.STRIP_DOMAIN,
    "localpart": UsernamePolicy.STRIP_DOMAIN,
    "username": UsernamePolicy.STRIP_DOMAIN,
    "email": UsernamePolicy.REQUIRE_EMAIL,
    "ldap": UsernamePolicy.DELEGATED,
}


def parse_policy(value: str | UsernamePolicy) -> UsernamePolicy:
    """Normalize a configured policy name. Unknown names count as delegated."""
    if isinstance(value, UsernamePolicy):
        return value
    return _POLICY_ALIASES.get(value.strip().lower(), UsernamePolicy.DELEGATED)


def resolve_username(identity: str, policy: str | UsernamePolicy) -> Optional[str]:
    """Resolve the storage username for a mail identity.

    Returns ``None`` when the policy cannot be resolved locally, e.g. a
    directory lookup, or when the identity does not satisfy the policy.
    """
    policy = parse_policy(policy)
    if not identity:
        return None
    if policy is UsernamePolicy.AS_IS:
        return identity
    if policy is UsernamePolicy.STRIP_DOMAIN:
        return identity.split("@", 1)[0] or None
    if policy is UsernamePolicy.REQUIRE_EMAIL:
        return identity if "@" in identity else None
    return None


def select_login(
    identity: str,
    mail_password: Optional[str],
    policy: str | UsernamePolicy,
    credential: Optional[StorageCredential],
    server: Optional[str] = None,
) -> Optional[Login]:
    """Prefer a persisted app password, fall back to the mail session's password.

    An app password issued by a different server than ``server`` is ignored.
    """
    if credential is not None and (not server or _same_server(credential.server_url, server)):
        return Login(credential.storage_username, credential.app_password, from_app_password=True)
    username = resolve_username(identity, policy)
    if username is None:
        return None
    return Login(username, mail_password or "")


def _same_server(left: str, right: str) -> bool:
    return left.rstrip("/").lower() == right.rstrip("/").lower()
