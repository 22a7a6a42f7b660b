from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    env: str = "dev"
    log_level: str = "INFO"
    secret_key: str = "change_me_super_secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 12
    bcrypt_rounds: int = 12

    database_url: str = "postgresql+psycopg2://inventario:inventario@db:5432/inventario"
    # Pool bounds for the store client
    db_pool_size: int = 5
    db_max_overflow: int = 5
    db_pool_timeout: int = 30
    db_pool_recycle: int = 300
    db_connect_timeout: int = 10
    # PostgreSQL only; 0 disables
    db_lock_timeout_ms: int = 5000
    db_statement_timeout_ms: int = 30000

    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_folder: str = "productos"
    max_image_bytes: int = 7 * 1024 * 1024

    backend_cors_origins: str = "http://localhost:5173"
    seed_demo: bool = False

    # Hosting platforms pass the listen port as PORT
    port: int = int(os.getenv("PORT", "3000"))

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = self.backend_cors_origins
        return [origin.strip() for origin in origins.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
