"""
HTTP-01 challenge artifacts.

The artifact is written straight into the configured challenge directory,
which an external web server maps to ``/.well-known/acme-challenge/``.
"""
from __future__ import annotations

import os
from pathlib import Path

from storage.atomic import atomic_write_text


def challenge_token(key_authorization: str) -> str:
    """The served filename: the first dot-delimited segment of the key-authorization."""
    return key_authorization.split(".")[0]


def write_challenge_file(challenge_path: str, key_authorization: str) -> Path:
    """
    Write *key_authorization* to ``<challenge_path>/<token>``.

    Returns the Path of the written file.
    """
    token_path = Path(challenge_path) / challenge_token(key_authorization)
    atomic_write_text(token_path, key_authorization)
    # mkstemp creates 0600 files; the web server must be able to read it
    os.chmod(token_path, 0o644)
    return token_path


def remove_challenge_file(challenge_path: str, key_authorization: str) -> None:
    """Remove the challenge artifact after the CA reached a terminal state."""
    token_path = Path(challenge_path) / challenge_token(key_authorization)
    try:
        os.remove(token_path)
    except FileNotFoundError:
        pass
