"""VAPID key configuration and at-rest encryption of the private key.

The private key may be stored encrypted with Fernet (AES-128-CBC) using a key
derived from SECRET_KEY; Fernet tokens start with 'gAAAAA'.
"""

import base64
import hashlib

from cryptography.fernet import Fernet
from pydantic import BaseModel

from ..config import settings


class VapidConfig(BaseModel):
    public_key: str = ""
    private_key: str = ""
    subject: str = ""


def _derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet key from the app SECRET_KEY using SHA-256."""
    digest = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(digest)


def encrypt_value(plaintext: str) -> str:
    f = Fernet(_derive_fernet_key(settings.secret_key))
    return f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    f = Fernet(_derive_fernet_key(settings.secret_key))
    return f.decrypt(ciphertext.encode()).decode()


def get_vapid_config() -> VapidConfig:
    private_key = settings.vapid_private_key
    if private_key.startswith("gAAAAA"):
        private_key = decrypt_value(private_key)

    subject = settings.vapid_subject
    if subject and not subject.startswith(("mailto:", "https://")):
        subject = f"mailto:{subject}"

    return VapidConfig(public_key=settings.vapid_public_key, private_key=private_key, subject=subject)


def validate_vapid_config(config: VapidConfig) -> tuple[bool, list[str]]:
    errors = []
    if not config.public_key.strip():
        errors.append("VAPID_PUBLIC_KEY is not set")
    if not config.private_key.strip():
        errors.append("VAPID_PRIVATE_KEY is not set")
    return not errors, errors


def is_notification_enabled() -> bool:
    is_valid, _ = validate_vapid_config(get_vapid_config())
    return is_valid
