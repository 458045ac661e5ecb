from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite:///local.db", description="SQLAlchemy database URL")
    api_title: str = Field("Points Ledger API")
    jwt_secret: str = Field("secret")
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(60)
    admin_username: str = Field("admin", description="Username of the seeded admin account")
    admin_password: str = Field("admin", description="Initial password of the seeded admin account")
    password_hash_iterations: int = Field(210_000, gt=0)
    log_level: str = Field("INFO")


settings = Settings()
