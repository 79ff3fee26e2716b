"""Shared constants for tapsign."""

# Curve
SUPPORTED_CURVE = "secp256k1"
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

# Public key encodings (bytes)
UNCOMPRESSED_PUBKEY_SIZE = 65  # 0x04 || X || Y
RAW_PUBKEY_SIZE = 64           # X || Y
COMPRESSED_PUBKEY_SIZE = 33    # 0x02/0x03 || X

# Ethereum
WEI_PER_ETH = 1_000_000_000_000_000_000  # 10^18
ETH_ADDRESS_SIZE = 20
MSG_HASH_SIZE = 32
RAW_SIGNATURE_HEX_LEN = 128  # r(32) + s(32), no v

# EIP-1559 fee-market transaction
DYNAMIC_FEE_TX_TYPE = 2

# y-parity candidates for typed transactions, tried in this order
RECOVERY_IDS = (0, 1)

# Tip floor; maxFeePerGas is the node's current gas price
DEFAULT_PRIORITY_FEE_WEI = 1

# Chain IDs
ETH_MAINNET_CHAIN_ID = 1
ETH_SEPOLIA_CHAIN_ID = 11155111

# RPC URLs
ETH_MAINNET_RPC_URL = "https://ethereum-rpc.publicnode.com"
ETH_SEPOLIA_RPC_URL = "https://ethereum-sepolia-rpc.publicnode.com"
DEFAULT_NETWORK = "sepolia"
