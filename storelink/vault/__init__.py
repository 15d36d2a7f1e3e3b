"""Credential Vault: token encryption at rest and single-use OAuth state."""
from storelink.vault.cipher import TokenCipher, derive_key, split_blob
from storelink.vault.vault import (
    SECRET_PREFIX,
    STATE_PREFIX,
    CredentialVault,
    SecretRecord,
    StateValidation,
    validate_domain,
)

__all__ = [
    "SECRET_PREFIX",
    "STATE_PREFIX",
    "CredentialVault",
    "SecretRecord",
    "StateValidation",
    "TokenCipher",
    "derive_key",
    "split_blob",
    "validate_domain",
]
