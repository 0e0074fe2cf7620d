"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────────
    use_s3: bool = Field(default=False, alias="FF_USE_S3")
    # ON  → Original uploads go to AWS S3. Needs AWS creds + S3_BUCKET_NAME.
    # OFF → Saved under LOCAL_STORAGE_PATH/documents/. Returns local paths.

    # ── Realtime ─────────────────────────────────────────────────────
    use_redis: bool = Field(default=True, alias="FF_USE_REDIS")
    # ON  → Document status events over Redis pub/sub. Needs REDIS_URL.
    # OFF → Notifications silently skipped. Nothing breaks.

    # ── LLM Provider ─────────────────────────────────────────────────
    llm_provider: str = Field(default="openai", alias="FF_LLM_PROVIDER")
    # "openai" → OpenAI (default). Needs OPENAI_API_KEY.
    # "gemini" → Google Gemini via its OpenAI-compatible endpoint. Needs GEMINI_API_KEY.
    # Embeddings always use the OpenAI-compatible endpoint of the active provider.

    use_llm_answers: bool = Field(default=True, alias="FF_USE_LLM_ANSWERS")
    # ON  → Chat answers composed by the LLM from retrieved chunks.
    # OFF → Extractive answer built from the best chunks. isLLMGenerated=false.

    # ── Extraction ───────────────────────────────────────────────────
    use_pdf_extraction: bool = Field(default=True, alias="FF_USE_PDF_EXTRACTION")
    # ON  → pdfplumber extracts PDF text.
    # OFF → PDFs stored with a metadata placeholder (extraction_status=placeholder).


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
