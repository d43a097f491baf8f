"""Shared constants for remitflow."""

FLOW_STATE_KEY = "remitflow:remittance_flow"
HISTORY_KEY = "remitflow:transaction_history"

DEFAULT_HISTORY_LIMIT = 10

# Confirmation handling, in milliseconds
DEFAULT_CONFIRMATION_TIMEOUT_MS = 60_000
DEFAULT_GRACE_DELAY_MS = 5_000
DEFAULT_CONFIRMATIONS = 1

TOKEN_DECIMALS = 6
BPS_DENOMINATOR = 10_000
RATE_SCALE = 1_000_000
MAX_FEE_BPS = 1_000

USER_REJECTION_MARKERS = ("user rejected", "user denied")
USER_REJECTION_MESSAGE = "Transaction was rejected in your wallet. Please try again."

# Chain ids for the networks a flow may name
CHAIN_IDS = {
    "mainnet": 1,
    "sepolia": 11155111,
    "base": 8453,
}
