from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Medical Records"
    env: str = "dev"
    api_prefix: str = "/api"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./medical_records.db"

    frontend_origin: str = "http://localhost:3000"

    # Password hashing: "pbkdf2_sha256" (passlib) or "salted_sha256" (legacy salt:digest rows).
    password_scheme: str = "pbkdf2_sha256"

    session_lifetime_days: int = 7
    session_cookie_name: str = "session_token"
    session_cookie_secure: bool = False
    session_cookie_samesite: str = "lax"  # "strict" | "lax" | "none" (none requires secure)

    storage_base_path: str = "uploads"
    max_file_size: int = 10 * 1024 * 1024
    max_profile_picture_size: int = 5 * 1024 * 1024
    allowed_extensions: list[str] = [".pdf", ".jpg", ".jpeg", ".png", ".gif", ".doc", ".docx"]
    allowed_content_types: list[str] = [
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/pjpeg",
        "image/png",
        "image/x-png",
        "image/gif",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        # Some browsers mis-sniff uploads; the extension check still applies.
        "application/octet-stream",
    ]
    allowed_picture_content_types: list[str] = ["image/jpeg", "image/jpg", "image/png", "image/gif"]


settings = Settings()
