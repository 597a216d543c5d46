from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Search provider (XMLStock)
    xmlstock_user: str = ""
    xmlstock_key: str = ""
    xmlstock_base_url: str = "https://xmlstock.com/google/json/"
    search_timeout_seconds: float = 30.0
    search_max_results: int = 10
    search_fixture_fallback: bool = False  # serve built-in results when the provider is overloaded

    # Entity provider (Google Cloud Natural Language REST)
    google_nl_api_key: str = ""
    google_nl_base_url: str = "https://language.googleapis.com/v1"
    entity_timeout_seconds: float = 30.0
    entity_salience_floor: float = 0.001

    # OpenRouter summarizer
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "anthropic/claude-3.5-sonnet"
    summary_max_tokens: int = 8000
    summary_temperature: float = 0.7
    summary_timeout_seconds: float = 120.0

    # Page fetching
    fetch_max_attempts: int = 3
    fetch_backoff_base: float = 2.0
    fetch_timeout_seconds: float = 15.0
    fetch_min_html_bytes: int = 500
    fetch_user_agent: str = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"

    # Content extraction
    extractor_primary: str = "readability"  # readability | trafilatura
    extractor_min_article_chars: int = 500
    extractor_max_elements: int = 2000
    extractor_min_primary_chars: int = 200
    extractor_min_success_chars: int = 100
    extractor_max_page_chars: int = 150000
    extract_in_thread: bool = True

    # Pipeline
    pipeline_batch_size: int = 3
    min_document_chars: int = 10
    aggregate_limit: int = 50
    comparison_top_entities: int = 20
    comparison_gap_limit: int = 10
    aggregate_degraded_documents: bool = False
    default_country: str = "us"
    default_lang: str = "en"
    default_device: str = "desktop"

    # Cache
    cache_backend: str = "file"  # file | redis | none
    cache_dir: str = ".cache/analysis"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_seconds: int = 24 * 60 * 60
    cache_memory_max_entries: int = 100

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
