# Shared application constants

# --- Derivation path ---
# m/83696968'/67797668'/{entity_index}'
# The first level is the BIP-85 application number, the second identifies
# bip-keychain so the same root secret can serve unrelated HD schemes.
BIP85_APP = 83696968
BIPKEYCHAIN_APP = 67797668

HARDENED_OFFSET = 0x80000000
MAX_INDEX = 0xFFFFFFFF

# Master + two namespace levels + entity level.
KEY_TREE_DEPTH = 3
MAX_DERIVATION_DEPTH = KEY_TREE_DEPTH

# --- Key material sizes ---
ROOT_SECRET_SIZE = 64
DIGEST_SIZE = 64

# Deepest nesting accepted in an entity payload.
MAX_ENTITY_NESTING = 64
ED25519_SEED_SIZE = 32

# --- Output ---
DEFAULT_SSH_COMMENT = "bip-keychain"

# --- Environment ---
# The mnemonic is only ever read from the environment, never from argv,
# so it does not show up in process listings.
SEED_ENV_VAR = "BIP_KEYCHAIN_SEED"
PASSPHRASE_ENV_VAR = "BIP_KEYCHAIN_PASSPHRASE"
LOG_LEVEL_ENV_VAR = "BIPKEYCHAIN_LOG_LEVEL"

# Worker threads used by the batch orchestrator when none is requested.
DEFAULT_BATCH_WORKERS = 4
