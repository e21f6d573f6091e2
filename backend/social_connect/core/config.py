from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Social Connect"
    app_env: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "social_connect"
    postgres_user: str = "social_connect"
    postgres_password: str = "social_connect"

    redis_host: str = "localhost"
    redis_port: int = 6379

    database_url: str | None = None
    redis_url: str | None = None
    frontend_origin: str = "http://localhost:3000"
    additional_frontend_origins: str = ""
    worker_heartbeat_key: str = "worker:heartbeat"
    worker_heartbeat_ttl_seconds: int = 45

    jwt_secret_key: str = "change_this_in_production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60
    token_encryption_key: str | None = None

    public_api_url: str = "http://localhost:8000"
    public_app_url: str = "http://localhost:3000"
    connect_page_path: str = "/connect"

    oauth_state_ttl_seconds: int = 600
    completion_token_ttl_seconds: int = 600
    provider_http_timeout_seconds: float = 20.0
    token_refresh_skew_seconds: int = 60
    proactive_refresh_window_seconds: int = 3600

    twitter_client_id: str | None = None
    twitter_client_secret: str | None = None
    twitter_callback_url: str | None = None

    facebook_app_id: str | None = None
    facebook_app_secret: str | None = None
    facebook_callback_url: str | None = None
    facebook_oauth_scope: str = "pages_show_list,pages_read_engagement,pages_manage_posts,public_profile"

    instagram_app_id: str | None = None
    instagram_app_secret: str | None = None
    instagram_callback_url: str | None = None
    instagram_oauth_scope: str = (
        "pages_show_list,pages_read_engagement,pages_manage_posts,public_profile,"
        "instagram_basic,instagram_content_publish,instagram_manage_insights"
    )

    meta_graph_api_base_url: str = "https://graph.facebook.com/v18.0"
    meta_dialog_url: str = "https://www.facebook.com/v18.0/dialog/oauth"

    linkedin_client_id: str | None = None
    linkedin_client_secret: str | None = None
    linkedin_callback_url: str | None = None
    linkedin_oauth_scope: str = "openid profile w_member_social"

    snapchat_client_id: str | None = None
    snapchat_client_secret: str | None = None
    snapchat_callback_url: str | None = None
    snapchat_oauth_scope: str = "snapchat.marketing.snapshots"

    tiktok_client_key: str | None = None
    tiktok_client_secret: str | None = None
    tiktok_callback_url: str | None = None
    tiktok_oauth_scope: str = "user.info.basic,user.info.stats,video.list,video.publish"

    youtube_client_id: str | None = None
    youtube_client_secret: str | None = None
    youtube_callback_url: str | None = None
    youtube_oauth_scope: str = (
        "https://www.googleapis.com/auth/youtube "
        "https://www.googleapis.com/auth/youtube.upload "
        "https://www.googleapis.com/auth/youtube.readonly"
    )

    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_callback_url: str | None = None
    google_oauth_scope: str = "openid email profile"

    @property
    def cors_allowed_origins(self) -> list[str]:
        origins = [self.frontend_origin.strip(), self.public_app_url.strip()]
        if self.additional_frontend_origins.strip():
            origins.extend(
                [value.strip() for value in self.additional_frontend_origins.split(",") if value.strip()]
            )
        unique: list[str] = []
        for origin in origins:
            if origin and origin not in unique:
                unique.append(origin)
        return unique

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def cache_redis_url(self) -> str:
        if self.redis_url:
            return self.redis_url
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    @property
    def connect_page_url(self) -> str:
        return f"{self.public_app_url.rstrip('/')}{self.connect_page_path}"


settings = Settings()
