"""
Token Relay - privacy-preserving push token relay.

Clients encrypt their push-notification device token with a hybrid
RSA / AES-256-GCM envelope. An untrusted relay only ever handles the
ciphertext and an opaque identifier; the trusted decryptor holds the private
key and decrypts just in time to deliver a notification.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
