from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings


class Config(BaseSettings):
    db_url: str
    env: Literal["prod", "dev"] = "prod"
    host: str = "127.0.0.1"
    port: int = 3011

    # Session tokens are issued by the external login service, which shares this secret
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    jwt_leeway_seconds: int = 10

    # Transactions
    transaction_acquire_timeout: float = 5.0
    """Seconds to wait for a pooled connection before giving up."""
    transaction_timeout: float = 60.0
    """Upper bound for a single state-mutating transaction, long enough for a full simulation."""

    # Battle simulation bots
    bot_default_coins: int = 1_000_000
    bot_name_prefix: str = "Test Bot"

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"


load_dotenv()
settings = Config()  # pyright: ignore[reportCallIssue]
