"""Configuration settings for BiasBrief."""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Firestore
    google_cloud_project: str = os.getenv("GOOGLE_CLOUD_PROJECT", "")
    firebase_project_id: str = os.getenv("FIREBASE_PROJECT_ID", "")
    articles_collection: str = "articles"
    sections_collection: str = "sections"
    sections_document: str = "0"
    front_page_collection: str = "front-page-articles"
    profiles_collection: str = "biasbrief_profiles"

    # Article backend for the web API: "firestore" or "file"
    article_backend: str = "file"

    # Client side endpoints
    api_base_url: str = "http://localhost:8000"
    unbias_title_webhook_url: str = ""
    summarize_webhook_url: str = ""
    request_timeout: float = 15.0

    # Feed defaults
    default_articles_per_page: int = 9
    article_cache_capacity: int = 128  # 0 = unbounded
    article_cache_max_age: int = 15 * 60  # seconds
    categories_cache_ttl: int = 24 * 60 * 60  # seconds
    preference_poll_interval: float = 1.0  # seconds

    # Paths
    project_root: Path = Path(__file__).parent.parent.parent
    config_dir: Path = Path(__file__).parent
    data_dir: Path = project_root / "data"
    articles_file: Path = data_dir / "articles.json"
    sections_file: Path = config_dir / "sections.yaml"
    preferences_file: Path = Path.home() / ".biasbrief" / "preferences.json"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def firestore_project(self) -> str:
        """Project used for Firestore clients (GCP project wins)."""
        return self.google_cloud_project or self.firebase_project_id


def load_section_map(path: Path | None = None) -> dict[str, str]:
    """Load the front-page section name -> section id map."""
    path = path or settings.sections_file
    with open(path) as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}
    return {str(name): str(section_id) for name, section_id in data.get("sections", {}).items()}


# Global settings instance
settings = Settings()
