"""Short, type-prefixed identifiers for tkxr entities."""

from __future__ import annotations

import secrets
import string

ID_ALPHABET = string.ascii_letters + string.digits
ID_TOKEN_LENGTH = 8

# Kinds whose prefix is not simply their first three letters
_PREFIX_OVERRIDES = {
    "user": "usr",
}


def id_prefix(kind: str) -> str:
    """Return the id prefix used for a kind of entity."""
    kind = kind.lower()
    return _PREFIX_OVERRIDES.get(kind, kind[:3])


def new_id(kind: str) -> str:
    """Generate a new id such as ``tas-4fZq81Lp`` for the given kind.

    The token is 8 characters drawn from a 62-character alphabet (about 2^47
    values), so no check against existing ids is made.
    """
    token = "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_TOKEN_LENGTH))
    return f"{id_prefix(kind)}-{token}"
