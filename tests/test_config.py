import pytest

from x402_near.config import BuyerSettings, FacilitatorSettings, SellerSettings
from x402_near.exceptions import ConfigurationError


def test_facilitator_settings_defaults():
    settings = FacilitatorSettings.from_env(
        {"RELAYER_ACCOUNT_ID": "relayer.testnet", "RELAYER_PRIVATE_KEY": "ed25519:abc"}
    )
    assert settings.network == "testnet"
    assert settings.rpc_url == "https://rpc.testnet.near.org"
    assert settings.port == 4022

    config = settings.relayer_config()
    assert config.account_id == "relayer.testnet"
    assert config.private_key == "ed25519:abc"


def test_missing_variables_are_all_named():
    with pytest.raises(ConfigurationError) as exc_info:
        FacilitatorSettings.from_env({})
    assert "RELAYER_ACCOUNT_ID" in str(exc_info.value)
    assert "RELAYER_PRIVATE_KEY" in str(exc_info.value)
    assert exc_info.value.code == "configuration_error"


def test_custom_rpc_and_network():
    settings = BuyerSettings.from_env(
        {
            "BUYER_ACCOUNT_ID": "buyer.testnet",
            "BUYER_PRIVATE_KEY": "ed25519:abc",
            "NEAR_NETWORK": "mainnet",
            "NEAR_RPC": "http://localhost:3030",
            "SELLER_PORT": "8000",
        }
    )
    assert settings.network == "mainnet"
    assert settings.rpc_url == "http://localhost:3030"
    assert settings.resource_url.startswith("http://localhost:8000/weather")


def test_unknown_network_without_rpc():
    with pytest.raises(ConfigurationError, match="Unsupported NEAR network"):
        BuyerSettings.from_env(
            {
                "BUYER_ACCOUNT_ID": "buyer.testnet",
                "BUYER_PRIVATE_KEY": "ed25519:abc",
                "NEAR_NETWORK": "betanet",
            }
        )


def test_seller_settings():
    settings = SellerSettings.from_env(
        {
            "TOKEN_ACCOUNT_ID": "usdc.fakes.testnet",
            "SELLER_ACCOUNT_ID": "seller.testnet",
            "FACILITATOR_PORT": "5000",
        }
    )
    assert settings.price_atomic == "1000"
    assert settings.port == 4021
    assert settings.facilitator_url == "http://localhost:5000"


@pytest.mark.parametrize(
    "overrides",
    [{"PRICE_ATOMIC": "0.5"}, {"PRICE_ATOMIC": "9" * 40}, {"SELLER_PORT": "http"}],
)
def test_seller_settings_reject_invalid_values(overrides):
    env = {"TOKEN_ACCOUNT_ID": "tok", "SELLER_ACCOUNT_ID": "seller", **overrides}
    with pytest.raises(ConfigurationError):
        SellerSettings.from_env(env)


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("TOKEN_ACCOUNT_ID", "tok")
    monkeypatch.setenv("SELLER_ACCOUNT_ID", "seller")
    monkeypatch.setenv("PRICE_ATOMIC", "2500")
    assert SellerSettings.from_env().price_atomic == "2500"


def test_private_keys_are_redacted():
    settings = FacilitatorSettings.from_env(
        {"RELAYER_ACCOUNT_ID": "relayer.testnet", "RELAYER_PRIVATE_KEY": "ed25519:abc"}
    )
    assert "ed25519:abc" not in repr(settings)
    assert settings.relayer_private_key.get_secret_value() == "ed25519:abc"


def test_empty_values_fall_back_to_defaults():
    settings = FacilitatorSettings.from_env(
        {
            "RELAYER_ACCOUNT_ID": "relayer.testnet",
            "RELAYER_PRIVATE_KEY": "ed25519:abc",
            "FACILITATOR_PORT": "",
            "SETTLE_TIMEOUT_SECONDS": "15",
        }
    )
    assert settings.port == 4022
    assert settings.relayer_config().settle_timeout == 15.0


def test_process_environment_errors_are_configuration_errors(monkeypatch):
    monkeypatch.delenv("BUYER_ACCOUNT_ID", raising=False)
    monkeypatch.setenv("BUYER_PRIVATE_KEY", "ed25519:abc")
    with pytest.raises(ConfigurationError, match="BUYER_ACCOUNT_ID"):
        BuyerSettings.from_env()
