"""
Quota managers for token and crypto spend budgets.

Both managers keep no local state: windows live in the durable state
service and are re-read on every call.
"""

from statekeeper.quota.crypto import (
    CRYPTO_QUOTA_PREFIX,
    CryptoQuotaManager,
    address_quota_key,
    global_quota_key,
)
from statekeeper.quota.estimation import (
    HeuristicTokenCounter,
    TextPart,
    UnknownPart,
    ValuePart,
    estimate_input_tokens_from_messages,
    estimate_tokens_from_text,
)
from statekeeper.quota.models import (
    CryptoPrecheck,
    NetworkResetResult,
    QuotaCheck,
    from_micro_eth,
    to_micro_eth,
)
from statekeeper.quota.reset import RESET_BATCH_SIZE
from statekeeper.quota.tokens import (
    TOKEN_QUOTA_PREFIX,
    TokenQuotaManager,
    token_quota_key,
)

__all__ = [
    "CRYPTO_QUOTA_PREFIX",
    "RESET_BATCH_SIZE",
    "TOKEN_QUOTA_PREFIX",
    "CryptoPrecheck",
    "CryptoQuotaManager",
    "HeuristicTokenCounter",
    "NetworkResetResult",
    "QuotaCheck",
    "TextPart",
    "TokenQuotaManager",
    "UnknownPart",
    "ValuePart",
    "address_quota_key",
    "estimate_input_tokens_from_messages",
    "estimate_tokens_from_text",
    "from_micro_eth",
    "global_quota_key",
    "to_micro_eth",
    "token_quota_key",
]
