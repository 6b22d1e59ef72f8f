import hashlib
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from stellar_sdk import strkey

from .types import OrderIdScheme, SettlementMode

DEFAULT_CONTRACT_ID = strkey.StrKey.encode_contract(
    hashlib.sha256(b"limit-settlement").digest()
)

class Settings(BaseSettings):
    # Signing domain
    protocol_name: str = Field(
        default="LimitOrderSettlement",
        validation_alias="PROTOCOL_NAME"
    )
    protocol_version: str = Field(
        default="1",
        validation_alias="PROTOCOL_VERSION"
    )
    stellar_network_passphrase: str = Field(
        default="Test SDF Network ; September 2015",
        validation_alias="STELLAR_NETWORK_PASSPHRASE"
    )
    settlement_contract_id: str = Field(
        default=DEFAULT_CONTRACT_ID,
        validation_alias="SETTLEMENT_CONTRACT_ID"
    )

    # Engine Configuration
    controller_address: Optional[str] = Field(
        default=None,
        validation_alias="CONTROLLER_ADDRESS"
    )
    platform_fee: int = Field(
        default=1_000_000,
        ge=0,
        validation_alias="PLATFORM_FEE"
    )
    execution_fee: int = Field(
        default=2_000_000,
        ge=0,
        validation_alias="EXECUTION_FEE"
    )
    settlement_mode: SettlementMode = Field(
        default=SettlementMode.Direct,
        validation_alias="SETTLEMENT_MODE"
    )
    order_id_scheme: OrderIdScheme = Field(
        default=OrderIdScheme.Nonce,
        validation_alias="ORDER_ID_SCHEME"
    )

    # Server Configuration
    rest_port: int = Field(
        default=8080,
        validation_alias="REST_PORT"
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL"
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

settings = Settings()
