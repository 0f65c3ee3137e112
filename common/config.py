from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "config.yaml"


class AppConfig(BaseModel):
    data_dir: Path = Path("data")
    cache_dir: Path = Path("data/cache")
    scan_roots: List[Path] = Field(default_factory=lambda: [Path("source-code")])
    extensions: List[str] = Field(default_factory=lambda: ["js", "txt", "md"])


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///./data/documents.db"
    echo: bool = False


class VectorStoreConfig(BaseModel):
    persist_dir: Path = Path("data/chroma")
    collection: str = "documents"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"


class ChunkingConfig(BaseModel):
    chunk_size: int = Field(default=2000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)


class PipelineConfig(BaseModel):
    stages: List[str] = Field(
        default_factory=lambda: [
            "chunk_content",
            "summarize_content",
            "store_in_vector_db",
        ]
    )
    max_errors: int = 3


class RetrievalConfig(BaseModel):
    k: int = Field(default=5, gt=0)
    refine_query: bool = False
    model: Optional[str] = None  # None = llm.default_model


class LLMConfig(BaseModel):
    provider: str = "ollama"
    base_url: str = "http://localhost:11434"
    default_model: str = "mistral"
    refine_model: str = "qwen3:4b"
    temperature: float = 0.2


class GlobalYAMLConfig(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    vectorstore: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)


class EnvSettings(BaseSettings):
    """Values that differ per machine and are read from the environment / .env."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="RAG_", extra="ignore")

    config: Optional[Path] = None
    database_url: Optional[str] = None
    ollama_base_url: Optional[str] = None


def load_yaml_config(
    path: Path | None = None, env: EnvSettings | None = None
) -> GlobalYAMLConfig:
    env = env or EnvSettings()
    path = Path(path or env.config or DEFAULT_CONFIG_PATH)
    raw = {}
    if path.exists():
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
    cfg = GlobalYAMLConfig(**raw)

    # environment wins over the yaml file
    if env.database_url:
        cfg.database.url = env.database_url
    if env.ollama_base_url:
        cfg.llm.base_url = env.ollama_base_url
    return cfg


env_settings = EnvSettings()
yaml_config = load_yaml_config(env=env_settings)
