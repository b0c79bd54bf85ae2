from typing import Literal


SupportedNetworks = Literal["mainnet", "testnet"]

NEAR_RPC_URLS = {
    "mainnet": "https://rpc.mainnet.near.org",
    "testnet": "https://rpc.testnet.near.org",
}

NEAR_EXPLORER_TX_URLS = {
    "mainnet": "https://nearblocks.io/txns/",
    "testnet": "https://testnet.nearblocks.io/txns/",
}


def get_rpc_url(network: str, custom_url: str | None = None) -> str:
    """Get the RPC URL for a given NEAR network.

    Args:
        network: Network name ("mainnet" or "testnet")
        custom_url: Optional custom RPC URL to use instead of default

    Returns:
        RPC URL string

    Raises:
        ValueError: If network is not supported
    """
    if custom_url:
        return custom_url

    if network not in NEAR_RPC_URLS:
        raise ValueError(f"Unsupported NEAR network: {network}")

    return NEAR_RPC_URLS[network]


def get_explorer_tx_url(network: str, tx_hash: str) -> str:
    """Link to a transaction on the network's block explorer."""
    base = NEAR_EXPLORER_TX_URLS.get(network, NEAR_EXPLORER_TX_URLS["testnet"])
    return f"{base}{tx_hash}"
