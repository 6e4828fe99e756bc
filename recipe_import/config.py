from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Apify (scraping jobs)
    apify_api_token: str = ""
    apify_base_url: str = "https://api.apify.com/v2"
    apify_instagram_actor: str = "apify~instagram-scraper"
    apify_facebook_post_actor: str = "apify~facebook-posts-scraper"
    apify_facebook_reel_actor: str = "apify~facebook-reels-scraper"
    apify_poll_interval_s: float = 2.0
    apify_poll_max_attempts: int = 30
    apify_poll_error_retries: int = 2
    apify_job_timeout_s: int = 60
    apify_job_memory_mb: int = 256
    apify_request_timeout_s: float = 30.0

    # OpenRouter (caption tier, image tier, paid video fallback, nutrition)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    caption_model: str = "google/gemini-2.0-flash-exp:free"
    image_model: str = "google/gemini-2.0-flash-exp:free"
    video_fallback_model: str = "google/gemini-2.0-flash-lite-001"
    nutrition_model: str = "google/gemini-2.0-flash-001"
    nutrition_max_tokens: int = 500
    llm_temperature: float = 0.3
    llm_max_tokens: int = 2000

    # Gemini (primary video tier)
    gemini_api_key: str = ""
    video_primary_model: str = "gemini-2.0-flash"

    # Supabase (cache, usage counter, image storage)
    supabase_url: str = ""
    supabase_service_key: str = ""
    cache_table: str = "import_cache"
    usage_table: str = "import_usage"
    usage_increment_rpc: str = "increment_import_usage"
    storage_bucket: str = "recipe-images"

    # Usage gate
    import_monthly_limit: int = 50

    # Cache
    cache_enabled: bool = True
    evidence_cache_ttl_hours: int = 24
    result_cache_ttl_hours: int = 24

    # Extraction tiers
    caption_min_length: int = 40
    video_max_bytes: int = 1024 * 1024 * 1024
    video_download_timeout_s: float = 120.0
    video_url_ttl_minutes: int = 60
    image_max_bytes: int = 10 * 1024 * 1024
    image_tier_max_images: int = 3
    model_call_timeout_s: float = 90.0
    pipeline_timeout_s: float = 240.0
    placeholder_image_url: str = "https://images.unsplash.com/photo-1546069901-ba9599a7e63c"

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
