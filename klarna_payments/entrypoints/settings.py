from pydantic_settings import BaseSettings, SettingsConfigDict

from klarna_payments.domain.gateway import GatewayConfig, Mode


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    KLARNA_USERNAME: str = ""
    KLARNA_PASSWORD: str = ""
    KLARNA_REGION: str = "eu"  # eu, na or oc
    KLARNA_MODE: Mode = Mode.test
    KLARNA_GATEWAY_ID: str = "klarna_payments"
    KLARNA_RETURN_BASE_URL: str = "http://localhost"
    KLARNA_CANCEL_FRAUDULENT_ORDERS: bool = False
    KLARNA_OPTIONS: dict[str, str] = {}  # JSON, e.g. {"color_button": "#FF9900"}
    KLARNA_HTTP_TIMEOUT: float = 30.0
    KLARNA_LANGUAGE: str = "en"

    def gateway_config(self) -> GatewayConfig:
        return GatewayConfig(
            gateway_id=self.KLARNA_GATEWAY_ID,
            mode=self.KLARNA_MODE,
            username=self.KLARNA_USERNAME,
            password=self.KLARNA_PASSWORD,
            region=self.KLARNA_REGION,
            cancel_fraudulent_orders=self.KLARNA_CANCEL_FRAUDULENT_ORDERS,
            options=dict(self.KLARNA_OPTIONS),
            return_base_url=self.KLARNA_RETURN_BASE_URL,
        )


config = Config()
