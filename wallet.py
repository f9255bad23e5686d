"""
Wallet Module - Secure Key Management
=====================================
Handles encrypted storage of Solana secret keys and turning them into
signing keypairs. The trading core never reads keys itself; callers load a
``Keypair`` here and pass it in.

Security Features:
- PBKDF2-HMAC-SHA256 key derivation (600k iterations)
- Fernet (AES-128-CBC) encryption
- Unique salt per encryption
- File permissions 0o600 (owner-only)
- Rate limiting on failed decrypts
"""

import os
import json
import base64
import secrets
import logging
from pathlib import Path
from typing import Callable, Optional, Dict, Tuple
from dataclasses import dataclass
from datetime import datetime, timedelta

import base58
from solders.keypair import Keypair
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import Config

logger = logging.getLogger(__name__)

SECRET_KEY_LENGTH = 64
PRIVATE_KEY_ENV = "PRIVATE_KEY"


@dataclass
class RateLimitEntry:
    """Tracks password attempt rate limiting."""
    attempts: int = 0
    first_attempt: Optional[datetime] = None
    locked_until: Optional[datetime] = None

    def is_locked(self) -> bool:
        if self.locked_until is None:
            return False
        return datetime.now() < self.locked_until

    def record_attempt(self):
        now = datetime.now()
        if self.first_attempt is None or (now - self.first_attempt) > timedelta(hours=1):
            # Reset after 1 hour
            self.attempts = 1
            self.first_attempt = now
        else:
            self.attempts += 1

        # Lock after 5 failed attempts for 30 minutes
        if self.attempts >= 5:
            self.locked_until = now + timedelta(minutes=30)

    def reset(self):
        self.attempts = 0
        self.first_attempt = None
        self.locked_until = None


def validate_secret_key(secret: str) -> bool:
    """True if ``secret`` is a base58 encoded 64 byte Solana secret key."""
    if not secret:
        return False
    try:
        return len(base58.b58decode(secret.strip())) == SECRET_KEY_LENGTH
    except ValueError:
        return False


def load_keypair(secret: str) -> Keypair:
    """
    Build a keypair from a base58 secret key or a solana-keygen JSON array.

    Raises:
        ValueError: if the secret is malformed
    """
    secret = secret.strip()
    if secret.startswith("["):
        return Keypair.from_json(secret)
    if not validate_secret_key(secret):
        raise ValueError("Secret key must be a base58 encoded 64 byte key")
    return Keypair.from_bytes(base58.b58decode(secret))


class SecureKeyManager:
    """
    Manages secure encryption and decryption of Solana secret keys.

    Uses PBKDF2-HMAC-SHA256 with 600,000 iterations for key derivation,
    and Fernet (AES-128-CBC) for encryption.
    """

    KEY_FILE = ".pump_wallet.enc"
    ITERATIONS = 600_000

    def __init__(self, key_file: Optional[str] = None):
        """
        Initialize key manager.

        Args:
            key_file: Path to encrypted key file (default: .pump_wallet.enc)
        """
        self.key_file = Path(key_file or self.KEY_FILE)
        self._rate_limits: Dict[str, RateLimitEntry] = {}

    def _check_rate_limit(self, key: str) -> Tuple[bool, Optional[str]]:
        entry = self._rate_limits.get(key, RateLimitEntry())

        if entry.is_locked():
            remaining = (entry.locked_until - datetime.now()).seconds
            return False, f"Too many failed attempts. Locked for {remaining} seconds."

        self._rate_limits[key] = entry
        return True, None

    def _record_success(self, key: str):
        if key in self._rate_limits:
            self._rate_limits[key].reset()

    def _derive_key(self, password: str, salt: bytes) -> bytes:
        """Derive a Fernet key from the password using PBKDF2."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))

    def encrypt_and_save(self, secret_key: str, password: str) -> bool:
        """
        Encrypt and save a secret key.

        Args:
            secret_key: base58 encoded Solana secret key
            password: Encryption password

        Returns:
            True if successful
        """
        if not validate_secret_key(secret_key):
            logger.error("Invalid secret key format")
            return False

        salt = secrets.token_bytes(16)
        fernet = Fernet(self._derive_key(password, salt))
        encrypted = fernet.encrypt(secret_key.strip().encode())

        data = {
            "salt": base64.b64encode(salt).decode(),
            "encrypted_key": encrypted.decode(),
            "public_key": str(load_keypair(secret_key).pubkey()),
            "version": 1,
            "created": datetime.now().isoformat(),
            "iterations": self.ITERATIONS
        }

        try:
            self.key_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.key_file, 'w') as f:
                json.dump(data, f)
            # Set owner-only permissions (Unix)
            os.chmod(self.key_file, 0o600)
        except OSError as e:
            logger.error(f"Error saving encrypted key: {e}")
            return False

        return True

    def load_and_decrypt(self, password: str) -> Optional[str]:
        """
        Load and decrypt the secret key.

        Returns:
            Decrypted base58 secret key, or None if it could not be decrypted
        """
        rate_key = str(self.key_file)

        allowed, error = self._check_rate_limit(rate_key)
        if not allowed:
            logger.warning(f"[Security] {error}")
            return None

        if not self.key_file.exists():
            logger.error("No wallet file found. Run 'wallet import' first.")
            return None

        with open(self.key_file, 'r') as f:
            data = json.load(f)

        salt = base64.b64decode(data["salt"])
        fernet = Fernet(self._derive_key(password, salt))

        try:
            decrypted = fernet.decrypt(data["encrypted_key"].encode())
        except InvalidToken:
            self._rate_limits[rate_key].record_attempt()
            logger.error("Error decrypting key: wrong password or corrupted file")
            return None

        self._record_success(rate_key)
        return decrypted.decode()

    def public_key(self) -> Optional[str]:
        """Public address stored next to the encrypted key."""
        if not self.key_file.exists():
            return None
        with open(self.key_file, 'r') as f:
            return json.load(f).get("public_key")

    def exists(self) -> bool:
        """Check if encrypted key file exists."""
        return self.key_file.exists()


def resolve_secret(
    config: Config,
    password_prompt: Callable[[], str],
    environ: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Find the caller's secret key.

    ``PRIVATE_KEY`` in the environment wins; otherwise the keystore named by
    ``config.key_file`` is decrypted with a password from ``password_prompt``.
    """
    environ = os.environ if environ is None else environ
    secret = environ.get(PRIVATE_KEY_ENV)
    if secret:
        return secret.strip()

    manager = SecureKeyManager(config.key_file)
    if not manager.exists():
        logger.error(f"No {PRIVATE_KEY_ENV} set and no keystore at {manager.key_file}")
        return None
    return manager.load_and_decrypt(password_prompt())
