"""
Validated configuration models.

Pydantic models for the dynamic per-type preprocessing override document
and for process settings read from the environment.
"""

from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .preprocessing_models import ChunkingStrategy, ConfigOverride


class _OverrideModel(BaseModel):
    """Accepts snake_case or camelCase keys; unknown keys are rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='forbid')

    def as_override_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ChunkingOverrideModel(_OverrideModel):
    """Partial chunking override with admin-editable bounds."""

    target_size: Optional[int] = Field(default=None, ge=50, le=2000)
    overlap: Optional[int] = Field(default=None, ge=0, le=500)
    min_size: Optional[int] = Field(default=None, ge=1, le=1000)
    max_size: Optional[int] = Field(default=None, ge=100, le=5000)
    strategy: Optional[ChunkingStrategy] = Field(
        default=None,
        validation_alias=AliasChoices('strategy', 'splitBy', 'split_by'),
    )
    use_headings_as_boundary: Optional[bool] = None


class QualityOverrideModel(_OverrideModel):
    """Partial quality gate override with admin-editable bounds."""

    min_length: Optional[int] = Field(default=None, ge=1, le=1000)
    max_length: Optional[int] = Field(default=None, ge=100, le=10000)
    min_quality_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_noise_ratio: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class TypeOverrideModel(BaseModel):
    """Override section for one target type."""

    model_config = ConfigDict(extra='forbid')

    chunking: Optional[ChunkingOverrideModel] = None
    quality: Optional[QualityOverrideModel] = None

    def to_override(self) -> ConfigOverride:
        return ConfigOverride(
            chunking=self.chunking.as_override_dict() if self.chunking else {},
            quality=self.quality.as_override_dict() if self.quality else {},
        )


class EmbedPrepSettings(BaseModel):
    """Process settings, populated from EMBEDPREP_* environment variables."""

    embedding_api_url: str = Field(default="https://api.openai.com/v1", description="Embedding API base URL")
    embedding_api_key: Optional[str] = Field(default=None, description="Embedding API key")
    embedding_model: str = Field(default="text-embedding-ada-002", description="Embedding model")
    embedding_dimensions: int = Field(default=1536, ge=1, description="Expected vector dimensions")
    embedding_concurrency: int = Field(default=2, ge=1, le=16, description="Max in-flight embedding calls per item")

    judge_url: Optional[str] = Field(default=None, description="LLM judge endpoint URL")
    judge_api_key: Optional[str] = Field(default=None, description="LLM judge bearer token")
    judge_enabled: bool = Field(default=False, description="Run the LLM judge after embedding")
    judge_sample_rate: float = Field(default=0.2, ge=0.0, le=1.0, description="Per-item judge sample rate")
    judge_min_population: int = Field(default=50, ge=0, description="Judge everything below this population")

    http_timeout: float = Field(default=30.0, ge=1.0, le=300.0, description="HTTP timeout in seconds")
    http_max_retries: int = Field(default=2, ge=0, le=10, description="Transient HTTP retry attempts")

    config_cache_ttl: float = Field(default=60.0, ge=0.0, description="Override cache TTL in seconds")
    config_path: Optional[str] = Field(default=None, description="YAML override document path")
    database_path: Optional[str] = Field(default=None, description="SQLite store path")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator('embedding_api_url', 'judge_url')
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip('/') if v else v
