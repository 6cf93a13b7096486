# sequencer/clients/wallet.py
import os
from pathlib import Path

from sequencer.core.capabilities import Wallet
from sequencer.core.errors import WalletError
from sequencer.crypto.keys import KeyPair


class FileWallet(Wallet):
    """
    Ed25519 private key read once from a PEM (PKCS8) file.
    Never logs or renders the key; only its public identity.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        try:
            pem = self.path.read_bytes()
        except OSError as e:
            raise WalletError(f"Cannot read wallet file {self.path}: {e.strerror}") from e
        try:
            self._key = KeyPair.from_private_pem(pem)
        except (ValueError, TypeError) as e:
            raise WalletError(f"Wallet file {self.path} does not hold an Ed25519 private key") from e

    def key_pair(self) -> KeyPair:
        return self._key

    @staticmethod
    def create(path: str | Path) -> "FileWallet":
        """Generate a fresh key and write it to `path` (mode 0600). Refuses to overwrite."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError as e:
            raise WalletError(f"Wallet file {path} already exists") from e
        except OSError as e:
            raise WalletError(f"Cannot create wallet file {path}: {e.strerror}") from e
        with os.fdopen(fd, "wb") as f:
            f.write(KeyPair.generate().private_pem())
        return FileWallet(path)


class StaticWallet(Wallet):
    """Wallet over an in-memory key pair."""

    def __init__(self, key: KeyPair | None):
        self._key = key

    def key_pair(self) -> KeyPair:
        if self._key is None:
            raise WalletError("Wallet holds no key material")
        return self._key
