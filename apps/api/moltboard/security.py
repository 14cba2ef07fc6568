from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

from cryptography.fernet import Fernet, InvalidToken

from moltboard.config import settings

API_KEY_PREFIX = "moltboard_ck_"


class IntegrationSecretDecryptError(RuntimeError):
  """The stored webhook secret was encrypted under a different FERNET_KEY."""


def _fernet() -> Fernet:
  raw = (settings.fernet_key or "").encode("utf-8")
  try:
    return Fernet(raw)
  except ValueError:
    # Plain passphrases are padded or cut to 32 bytes.
    return Fernet(base64.urlsafe_b64encode(raw.ljust(32, b"\0")[:32]))


def encrypt_secret(plaintext: str) -> str:
  token = _fernet().encrypt(plaintext.encode("utf-8"))
  return token.decode("ascii")


def decrypt_secret(token: str) -> str:
  return _fernet().decrypt(token.encode("ascii")).decode("utf-8")


def decrypt_integration_secret(token: str) -> str:
  try:
    return decrypt_secret(token)
  except (InvalidToken, UnicodeEncodeError) as exc:
    raise IntegrationSecretDecryptError(
      "Webhook secret cannot be decrypted with the current key; regenerate the integration credentials."
    ) from exc


def _token_b64url(nbytes: int) -> str:
  return base64.urlsafe_b64encode(secrets.token_bytes(nbytes)).decode("ascii").rstrip("=")


def new_api_key() -> str:
  return API_KEY_PREFIX + _token_b64url(24)


def new_webhook_secret() -> str:
  return _token_b64url(32)


def api_key_prefix(api_key: str) -> str:
  return api_key[:16] + "..."


def api_key_hash(api_key: str) -> str:
  # Keyed with APP_SECRET; rotating it invalidates every stored key hash.
  key = (settings.app_secret or "").encode("utf-8")
  msg = (api_key or "").strip().encode("utf-8")
  return hmac.new(key, msg, hashlib.sha256).hexdigest()
