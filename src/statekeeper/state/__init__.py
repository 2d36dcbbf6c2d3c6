"""
Transport layer for the durable state service.

All mutable counter state lives in the remote service; this package only
sends action envelopes and unwraps their results.
"""

from statekeeper.state.client import (
    Err,
    Ok,
    StateClient,
    StateError,
    StateErrorKind,
    StateResult,
    StateServiceError,
    StateServiceInactiveError,
    unwrap,
)
from statekeeper.state.factory import (
    close_state_client,
    create_state_client,
    get_state_client,
    is_state_service_enabled,
    set_state_client,
)
from statekeeper.state.models import (
    MAX_SAFE_INTEGER,
    QuotaUsage,
    QuotaWindow,
    RateLimitCheckResult,
    ResetResult,
)

__all__ = [
    "MAX_SAFE_INTEGER",
    "Err",
    "Ok",
    "QuotaUsage",
    "QuotaWindow",
    "RateLimitCheckResult",
    "ResetResult",
    "StateClient",
    "StateError",
    "StateErrorKind",
    "StateResult",
    "StateServiceError",
    "StateServiceInactiveError",
    "close_state_client",
    "create_state_client",
    "get_state_client",
    "is_state_service_enabled",
    "set_state_client",
    "unwrap",
]
