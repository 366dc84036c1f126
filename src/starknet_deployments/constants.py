"""Configuration constants for starknet-deployments library."""

# StarkNet field prime; every calldata value must be a felt in [0, FIELD_PRIME)
FIELD_PRIME = 2**251 + 17 * 2**192 + 1

# Entrypoint selectors are starknet_keccak(name): keccak256 truncated to 250 bits
SELECTOR_MASK = 2**250 - 1

# Short strings pack at most 31 ASCII characters into one felt
MAX_SHORT_STRING_LENGTH = 31

# JSON-RPC methods used at the network boundary
RPC_ADD_DEPLOY_TRANSACTION = "starknet_addDeployTransaction"
RPC_ADD_INVOKE_TRANSACTION = "starknet_addInvokeTransaction"
RPC_GET_TRANSACTION_RECEIPT = "starknet_getTransactionReceipt"
RPC_CALL = "starknet_call"

# StarkNet JSON-RPC error codes
RPC_ERROR_ENTRY_POINT_NOT_FOUND = 21
RPC_ERROR_TXN_HASH_NOT_FOUND = 29

# Marker the sequencer puts in revert reasons for a missing entrypoint
ENTRY_POINT_NOT_FOUND_MARKER = "ENTRY_POINT_NOT_FOUND"

# Receipt statuses, both the finality/execution split and the older single status
ACCEPTED_STATUSES = {"ACCEPTED_ON_L2", "ACCEPTED_ON_L1"}
REJECTED_STATUSES = {"REJECTED"}
REVERTED_STATUSES = {"REVERTED"}

# Configuration defaults
DEFAULT_CONFIG_FILENAME = "deployment.yml"
DEFAULT_REGISTRY_DIRNAME = "deployments"
DEFAULT_TIMEOUT = 300.0
DEFAULT_RETRIES = 0
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_RPC_TIMEOUT = 30

# Registry write attempts before a RegistryWriteConflict surfaces
DEFAULT_MAX_WRITE_ATTEMPTS = 3

# Prefix marking a reference in config values and step arguments
VARIABLE_PREFIX = "$"

# Step argument resolving to the owner account of the network
OWNER_VARIABLE = "owner"
