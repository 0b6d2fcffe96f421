"""
CipherChat - Global Constants and Configuration Values

This module defines all constants used throughout the CipherChat core.
All magic numbers and configuration defaults are centralized here.

Version: 1.0.0
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "CipherChat"

# Storage Defaults
DEFAULT_DATA_DIR = "~/.cipherchat"
CONFIG_FILENAME = "config.toml"
DATABASE_FILENAME = "cipherchat.db"
KEYPAIR_FILENAME = "keypair.json"
LOG_FILENAME = "cipherchat.log"

# Account Limits
MAX_USERNAME_LENGTH = 64
MAX_MESSAGE_SIZE = 100 * 1024  # 100 KB of UTF-8 plaintext

# Asymmetric Keys (X25519)
KEY_SIZE = 32  # 256 bits for X25519 public and private keys

# Message Encryption (X25519 + HKDF-SHA256 + ChaCha20-Poly1305)
MESSAGE_NONCE_SIZE = 12  # 96 bits for ChaCha20-Poly1305
MESSAGE_KEY_INFO = b"cipherchat-message-key-v1"

# Escrow Envelope (Argon2id + AES-256-GCM)
SALT_SIZE = 16  # 128 bits
ENVELOPE_NONCE_SIZE = 12  # 96 bits for GCM
ENVELOPE_TAG_SIZE = 16  # 128-bit GCM tag
ENVELOPE_KEY_SIZE = 32  # AES-256
ENVELOPE_CONTEXT = b"cipherchat-escrow-v1"
ENVELOPE_VERSION = "1.0"
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MB
ARGON2_PARALLELISM = 1

# Password Hashing (argon2 PasswordHasher)
PASSWORD_HASH_TIME_COST = 3
PASSWORD_HASH_MEMORY_COST = 65536  # 64 MB
PASSWORD_HASH_PARALLELISM = 4

# Messaging
FANOUT_MAX_WORKERS = 8
UNDECRYPTABLE_PLACEHOLDER = "[Unable to decrypt]"

# Logging
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
