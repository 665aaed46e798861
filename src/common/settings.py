"""Settings shared by *extraction*, *classification* and *storage*.

All values are sourced from environment variables (or a ``.env`` file loaded at
import time).  Components take a :class:`Settings` instance explicitly and fall
back to the module-level ``settings`` object.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv(override=True)


class Settings(BaseSettings):
    """Reference pipeline configuration.

    Fields
    ------
    es_host
        Elasticsearch HTTP endpoint (single-node setup assumed).
    index_name
        Name of the Elasticsearch index holding reference records.
    use_elasticsearch
        If *false*, skip the connectivity probe and use the in-memory store.
    es_connect_attempts
        Number of pings before falling back to the in-memory store.
    es_retry_delay
        Seconds between connectivity pings.
    http_timeout
        Deadline (seconds) for a static page fetch.
    render_timeout
        Deadline (seconds) for a whole render-based extraction.
    pdf_timeout
        Deadline (seconds) for downloading and parsing one PDF.
    download_retries
        Attempts for transient HTTP failures (transport errors, 5xx).
    http_concurrency
        Connection pool size of the shared HTTP client.
    max_render_sessions
        Maximum number of concurrent headless-browser contexts.
    render_queue_timeout
        Seconds a request may wait for a free browser context.
    render_settle_ms
        Bounded wait for dynamic content after network idle.
    headless
        Run Chromium without a window.
    max_pdf_bytes
        Upper bound for downloaded or uploaded PDFs.
    static_text_limit
        Characters of body text kept when no main-content element matches.
    upload_dir
        Directory where uploaded PDFs are stored.
    selector_profiles_file
        Optional JSON file overriding per-site selector lists.
    log_level
        Root log level used by the CLI.
    """

    es_host: str = Field("http://localhost:9200", env="ES_HOST")
    index_name: str = Field("references", env="INDEX_NAME")
    use_elasticsearch: bool = Field(True, env="USE_ELASTICSEARCH")
    es_connect_attempts: int = Field(3, env="ES_CONNECT_ATTEMPTS")
    es_retry_delay: float = Field(2.0, env="ES_RETRY_DELAY")

    http_timeout: float = Field(30.0, env="HTTP_TIMEOUT")
    render_timeout: float = Field(60.0, env="RENDER_TIMEOUT")
    pdf_timeout: float = Field(45.0, env="PDF_TIMEOUT")
    download_retries: int = Field(3, env="DOWNLOAD_RETRIES")
    http_concurrency: int = Field(10, env="HTTP_CONCURRENCY")

    max_render_sessions: int = Field(2, env="MAX_RENDER_SESSIONS")
    render_queue_timeout: float = Field(30.0, env="RENDER_QUEUE_TIMEOUT")
    render_settle_ms: int = Field(2000, env="RENDER_SETTLE_MS")
    headless: bool = Field(True, env="HEADLESS")

    max_pdf_bytes: int = Field(50 * 1024 * 1024, env="MAX_PDF_BYTES")
    static_text_limit: int = Field(5000, env="STATIC_TEXT_LIMIT")

    upload_dir: Path = Field(Path("uploads"), env="UPLOAD_DIR")
    selector_profiles_file: Optional[Path] = Field(None, env="SELECTOR_PROFILES_FILE")

    log_level: str = Field("INFO", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
