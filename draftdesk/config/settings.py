from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "ckcarbon"
    db_username: str = "postgres"
    db_password: str = "secret"

    max_image_size_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    accepted_media_types: list[str] = ["image/*"]

    max_local_drafts: int = Field(default=10, gt=0)
    autosave_interval_seconds: float = Field(default=30.0, gt=0)
    upload_concurrency: int = Field(default=4, gt=0)
    drafts_dir: str = ".drafts"
    drafts_storage_key: str = "ckcarbon_blog_drafts"

    object_store_engine: str = "supabase"
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_bucket: str = "blog"
    supabase_timeout_seconds: int = 30
    local_object_store_dir: str = ".uploads"
    local_object_store_base_url: str = ""
