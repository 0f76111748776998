from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    app_name: str = "hrsign"
    app_version: str = "1.0.0"
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://hrsign:hrsign@db:5432/hrsign"

    # Auth
    secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 15

    # MinIO
    minio_endpoint: str = "minio:9000"
    minio_root_user: str = "hrsign"
    minio_root_password: str = "CHANGE_ME"
    minio_bucket: str = "hrsign-documents"
    minio_use_ssl: bool = False
    storage_timeout_seconds: float = 30.0
    presigned_url_expire_hours: int = 1

    # E-signature
    signed_artifact_prefix: str = "esign/signed"
    stamping_timeout_seconds: float = 60.0

    # CORS
    backend_cors_origins: list[str] = ["http://localhost", "http://localhost:5173"]

    model_config = {"env_file": ".env", "case_sensitive": False}


settings = Settings()
