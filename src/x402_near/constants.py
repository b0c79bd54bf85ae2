"""Protocol constants for the NEAR exact-amount scheme."""

SCHEME_NEAR_DELEGATE_EXACT = "near-delegate-exact"

X_PAYMENT_HEADER = "X-PAYMENT"
X_PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"

# NEP-141 transfer methods accepted as payment
FT_TRANSFER = "ft_transfer"
FT_TRANSFER_CALL = "ft_transfer_call"
TRANSFER_METHODS = (FT_TRANSFER, FT_TRANSFER_CALL)

FT_TRANSFER_GAS = 30_000_000_000_000  # 30 Tgas
FT_TRANSFER_DEPOSIT = 1  # 1 yoctoNEAR, required by NEP-141

# Delegate validity window, in blocks past the latest final block
DEFAULT_BLOCK_HEIGHT_TTL = 600

DEFAULT_MAX_TIMEOUT_SECONDS = 60
DEFAULT_MIME_TYPE = "application/json"

# Error codes returned to clients in repeated 402 challenges
ERR_PAYMENT_MALFORMED = "PAYMENT_MALFORMED"
ERR_PAYMENT_INVALID = "PAYMENT_INVALID"
ERR_PAYMENT_NOT_SETTLED = "PAYMENT_NOT_SETTLED"

# Atomic amounts are NEP-141 u128 balances: at most 39 decimal digits
MAX_ATOMIC_DIGITS = 39
MAX_ATOMIC_AMOUNT = (1 << 128) - 1
