"""Static chain id <-> network name mapping used to scope crypto quotas."""

from functools import lru_cache

DEFAULT_LOCAL_CHAIN_ID = 90_999_999


@lru_cache
def chain_ids(local_chain_id: int = DEFAULT_LOCAL_CHAIN_ID) -> dict[str, int]:
    """Network name -> chain id."""
    return {
        "ethereum": 1,
        "sepolia": 11_155_111,
        "ritonet": local_chain_id,
    }


@lru_cache
def network_names(local_chain_id: int = DEFAULT_LOCAL_CHAIN_ID) -> dict[int, str]:
    """Chain id -> network name (reverse of chain_ids)."""
    names: dict[int, str] = {}
    for name, chain_id in chain_ids(local_chain_id).items():
        # First name wins if a local id collides with a public one.
        names.setdefault(chain_id, name)
    return names


def network_key(
    chain_id: int | None,
    local_chain_id: int = DEFAULT_LOCAL_CHAIN_ID,
) -> str:
    """
    Resolve the quota namespace for a chain.

    Unknown ids degrade to ``chain-<id>`` and a missing id to ``unknown``
    so spend tracking keeps working with incomplete chain configuration.
    """
    if not chain_id:
        return "unknown"
    return network_names(local_chain_id).get(chain_id, f"chain-{chain_id}")
