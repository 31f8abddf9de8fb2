# ABOUTME: SSH identity handling for git clones.
# ABOUTME: Detects encrypted keys, prompts for passphrases, and builds git's ssh environment.
"""SSH key handling for ackdev."""

from __future__ import annotations

import base64
import os
import shlex
import stat
import struct
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import click
import structlog

DEFAULT_PRIVATE_KEYS = [
    "id_dsa",
    "id_rsa",
    "id_ecdsa",
    "id_ecdsa_sk",
    "id_ed25519",
    "id_ed25519_sk",
]

OPENSSH_MAGIC = b"openssh-key-v1\x00"
PASSPHRASE_ENV = "ACKDEV_SSH_PASSPHRASE"

ASKPASS_SCRIPT = f"""#!/bin/sh
printf '%s\\n' "${PASSPHRASE_ENV}"
"""

log = structlog.get_logger(__name__)


class InvalidKeyError(Exception):
    """File is not a PEM or OpenSSH private key."""

    pass


def prompt_passphrase(key_path: Path) -> str:
    """Read a key passphrase from the terminal without echo."""
    return click.prompt(
        f"Enter passphrase for {key_path}",
        hide_input=True,
        err=True,
    )


def _pem_body(text: str) -> tuple[str, list[str]]:
    """Split a PEM document into its BEGIN label and body lines."""
    lines = [line.strip() for line in text.strip().splitlines()]
    if not lines or not lines[0].startswith("-----BEGIN ") or not lines[-1].startswith(
        "-----END "
    ):
        raise InvalidKeyError("invalid ssh private key")
    label = lines[0][len("-----BEGIN ") :].rstrip("-")
    return label, lines[1:-1]


def _openssh_cipher(body: list[str]) -> str:
    blob = base64.b64decode("".join(body))
    if not blob.startswith(OPENSSH_MAGIC):
        raise InvalidKeyError("invalid openssh private key")
    offset = len(OPENSSH_MAGIC)
    (length,) = struct.unpack(">I", blob[offset : offset + 4])
    return blob[offset + 4 : offset + 4 + length].decode("ascii")


def is_encrypted_key(data: bytes | str) -> bool:
    """
    Check whether a private key is protected by a passphrase.

    Handles legacy PEM (``Proc-Type: 4,ENCRYPTED``), PKCS#8
    (``ENCRYPTED PRIVATE KEY``) and OpenSSH format keys.

    Raises:
        InvalidKeyError: If data is not a private key.
    """
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    label, body = _pem_body(text)

    if label == "ENCRYPTED PRIVATE KEY":
        return True
    if label == "OPENSSH PRIVATE KEY":
        try:
            return _openssh_cipher(body) != "none"
        except (ValueError, struct.error) as e:
            raise InvalidKeyError(f"invalid openssh private key: {e}") from e
    if not label.endswith("PRIVATE KEY"):
        raise InvalidKeyError(f"not a private key: {label}")
    return any(line.startswith("Proc-Type:") and "ENCRYPTED" in line for line in body)


@dataclass
class SshIdentity:
    """A private key git should authenticate with."""

    key_path: Path
    passphrase: str | None = None
    _askpass: Path | None = field(default=None, repr=False)

    def _askpass_script(self) -> Path:
        if self._askpass is None:
            fd, name = tempfile.mkstemp(prefix="ackdev-askpass-", suffix=".sh")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(ASKPASS_SCRIPT)
            os.chmod(name, stat.S_IRWXU)
            self._askpass = Path(name)
        return self._askpass

    def git_environment(self) -> dict[str, str]:
        """Environment variables making git's ssh use this key."""
        env = {
            "GIT_SSH_COMMAND": (
                f"ssh -i {shlex.quote(str(self.key_path))} -o IdentitiesOnly=yes"
            ),
        }
        if self.passphrase is not None:
            env.update(
                {
                    PASSPHRASE_ENV: self.passphrase,
                    "SSH_ASKPASS": str(self._askpass_script()),
                    "SSH_ASKPASS_REQUIRE": "force",
                    "DISPLAY": os.environ.get("DISPLAY", ":0"),
                }
            )
        else:
            env["GIT_SSH_COMMAND"] += " -o BatchMode=yes"
        return env

    def cleanup(self) -> None:
        """Remove the askpass helper, if one was written."""
        if self._askpass is not None:
            self._askpass.unlink(missing_ok=True)
            self._askpass = None


def new_identity(
    key_path: str | Path,
    prompt: Callable[[Path], str] = prompt_passphrase,
) -> SshIdentity:
    """
    Load an SSH identity, asking for the passphrase if the key is encrypted.

    Args:
        key_path: Path to the private key.
        prompt: Called with the key path to obtain the passphrase.

    Returns:
        The identity to hand to the git client.

    Raises:
        OSError: If the key cannot be read.
        InvalidKeyError: If the file is not a private key.
    """
    path = Path(key_path).expanduser()
    data = path.read_bytes()
    if is_encrypted_key(data):
        log.debug("Private key is encrypted, prompting for passphrase", key=str(path))
        return SshIdentity(key_path=path, passphrase=prompt(path))
    return SshIdentity(key_path=path)


def default_identities(ssh_dir: str | Path = "~/.ssh") -> list[SshIdentity]:
    """Find the unencrypted default private keys in ssh_dir."""
    directory = Path(ssh_dir).expanduser()
    identities: list[SshIdentity] = []
    for name in DEFAULT_PRIVATE_KEYS:
        path = directory / name
        try:
            if not is_encrypted_key(path.read_bytes()):
                identities.append(SshIdentity(key_path=path))
        except (OSError, InvalidKeyError):
            continue
    return identities
