from pydantic_settings import BaseSettings

OLLAMA_BASE_URL = "http://localhost:11434"


class Settings(BaseSettings):
    # Text generation (OpenAI-compatible)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    inference_model: str = "gpt-4o-mini"
    use_ollama_inference: bool = False
    llm_max_tokens: int = 4096

    # Embeddings
    embedding_backend: str = "openai"  # openai | local
    embeddings_model: str = "text-embedding-3-small"
    use_ollama_embeddings: bool = False
    local_embed_model: str = "bge-small-en-v1.5"
    local_embed_batch_size: int = 32

    # Search providers
    brave_api_key: str = ""
    serper_api_key: str = ""
    provider_timeout_seconds: float = 10.0
    search_include_media_type: bool = False

    # Retrieval / content fetch
    number_of_pages_to_scan: int = 10
    fetch_timeout_seconds: float = 1.0
    media_validation_timeout_seconds: float = 3.0
    max_media_results: int = 9
    fetch_max_page_chars: int = 120000
    extractor_mode: str = "soup"  # soup | trafilatura
    extract_in_thread: bool = True
    fetch_user_agent: str = "Mozilla/5.0 (compatible; SourceRank/0.1; +https://example.invalid/bot)"

    # Similarity index
    text_chunk_size: int = 800
    text_chunk_overlap: int = 200
    number_of_similarity_results: int = 4
    index_scope: str = "first"  # first | all

    # Intent
    desired_count_min: int = 1
    desired_count_max: int = 9
    clamp_desired_count: bool = True

    # Ranking
    max_ranked_sources: int = 9

    # Retry
    retry_max_attempts: int = 3
    retry_initial_wait_seconds: float = 0.5
    retry_max_wait_seconds: float = 4.0

    # App
    request_timeout_seconds: float = 120.0
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = ""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def inference_base_url(self) -> str:
        if self.use_ollama_inference:
            return f"{OLLAMA_BASE_URL}/v1"
        return self.openai_base_url.strip() or "https://api.openai.com/v1"

    @property
    def inference_api_key(self) -> str:
        if self.use_ollama_inference:
            return "ollama"
        return self.openai_api_key


settings = Settings()
