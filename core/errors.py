"""
core/errors.py -- Exception taxonomy shared by the cipher and the auth gate.

Propagation policy:
  ConfigurationError / EncryptionError abort the current operation. The API
      layer turns them into a generic 500 -- no secret material or exception
      text reaches the client.

  DecryptionFailure is never raised out of core/crypto.py. It is carried on
      DecryptResult.error so callers can log it; the read path keeps serving
      the stored value.

  AuthenticationError subclasses happen at login time. CredentialError
      subclasses happen on every protected request and are all reported to the
      client as the same 401 so the response does not reveal which check failed.

Layer rule: core/ is the kernel. No imports from api/, auth/, or vault/.
"""

from __future__ import annotations


class StashItError(Exception):
    """Base class for every error raised by StashIt itself."""


class ConfigurationError(StashItError):
    """A required secret is missing from configuration."""


class EncryptionError(StashItError):
    """The cipher failed while producing an envelope."""


class DecryptionFailure(StashItError):
    """An envelope-shaped value could not be decrypted (bad base64, tag mismatch, wrong key)."""


# ---------------------------------------------------------------------------
# Login-time failures
# ---------------------------------------------------------------------------


class AuthenticationError(StashItError):
    """Login could not produce a verified identity."""


class MissingAssertionError(AuthenticationError):
    """Neither an authorization code nor a provider token was supplied."""


class IdentityProviderError(AuthenticationError):
    """The identity provider rejected the assertion or could not be reached."""


# ---------------------------------------------------------------------------
# Per-request credential failures
# ---------------------------------------------------------------------------


class CredentialError(StashItError):
    """The request does not carry a usable session credential."""


class MissingCredentialError(CredentialError):
    """No Authorization: Bearer header was sent."""


class InvalidCredentialError(CredentialError):
    """Signature does not verify or the payload is malformed."""


class ExpiredCredentialError(CredentialError):
    """The credential is past its expiry."""


class UnknownSubjectError(CredentialError):
    """The credential is genuine but its user record no longer exists."""
