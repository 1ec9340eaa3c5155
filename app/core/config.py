from decimal import Decimal
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")
    auto_create_tables: bool = Field(False, alias="AUTO_CREATE_TABLES")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Tokens are issued by the external auth service; this service only verifies them.
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")

    currency: str = Field("NGN", alias="CURRENCY")
    allowed_payment_percents: List[int] = Field(default_factory=lambda: [50, 100], alias="ALLOWED_PAYMENT_PERCENTS")
    # Payable amounts are rounded half-up to this quantum (whole naira by default).
    amount_quantum: Decimal = Field(Decimal("1"), alias="AMOUNT_QUANTUM")
    transaction_reference_prefix: str = Field("UNI", alias="TRANSACTION_REFERENCE_PREFIX")
    gateway_timeout_seconds: float = Field(30.0, alias="GATEWAY_TIMEOUT_SECONDS")
    payment_callback_url: str = Field("http://localhost:3000/payment/callback", alias="PAYMENT_CALLBACK_URL")

    paystack_secret_key: Optional[str] = Field(None, alias="PAYSTACK_SECRET_KEY")
    paystack_base_url: str = Field("https://api.paystack.co", alias="PAYSTACK_BASE_URL")

    flutterwave_secret_key: Optional[str] = Field(None, alias="FLUTTERWAVE_SECRET_KEY")
    flutterwave_webhook_hash: Optional[str] = Field(None, alias="FLUTTERWAVE_WEBHOOK_HASH")
    flutterwave_base_url: str = Field("https://api.flutterwave.com", alias="FLUTTERWAVE_BASE_URL")

    globalpay_api_key: Optional[str] = Field(None, alias="GLOBALPAY_API_KEY")
    globalpay_base_url: str = Field("https://paygw.globalpay.com.ng/globalpay-paymentgateway", alias="GLOBALPAY_BASE_URL")

    sandbox_gateway_enabled: bool = Field(False, alias="SANDBOX_GATEWAY_ENABLED")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
