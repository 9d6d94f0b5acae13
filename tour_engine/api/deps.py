import os
from functools import lru_cache
from pathlib import Path

from fastapi import Depends

from tour_engine.adapters.clock import SystemClock
from tour_engine.adapters.meta_conversions import MetaConversionsAdapter
from tour_engine.adapters.sqlite_db import SQLiteTourSessionRepo
from tour_engine.components.completion import TourCompletionService
from tour_engine.core.ports import AttributionPort
from tour_engine.rules.loader import load_rules
from tour_engine.rules.models import Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("TOUR_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "tours.db")
        self.migrations_dir = self.base_dir / "migrations"
        self.rules_path = Path(os.environ.get("TOUR_RULES_PATH", str(self.base_dir / "rules.yaml")))
        self.meta_pixel_id = os.environ.get("META_PIXEL_ID", "")
        self.meta_access_token = os.environ.get("META_ACCESS_TOKEN", "")
        self.meta_test_event_code = os.environ.get("META_TEST_EVENT_CODE") or None
        self.meta_event_source_url = os.environ.get("META_EVENT_SOURCE_URL") or None


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


# --- Repos ---
def get_tour_repo(settings: Settings = Depends(get_settings)) -> SQLiteTourSessionRepo:
    return SQLiteTourSessionRepo(settings.db_path)


# --- Adapters ---
def build_attribution(settings: Settings, rules: Rules) -> AttributionPort:
    """
    Meta Conversions adapter for the configured pixel.

    Without a pixel id or token every send fails with not_configured, so
    finalized sessions stay pending until retry-dispatch runs with
    credentials in place.
    """
    return MetaConversionsAdapter(
        pixel_id=settings.meta_pixel_id,
        access_token=settings.meta_access_token,
        test_event_code=settings.meta_test_event_code,
        event_source_url=settings.meta_event_source_url,
        timeout=rules.attribution.timeout_seconds,
        api_version=rules.attribution.api_version,
        partner_agent=rules.attribution.partner_agent,
    )


@lru_cache
def get_attribution(settings: Settings = Depends(get_settings)) -> AttributionPort:
    # One adapter per process
    return build_attribution(settings, get_rules(settings))


# --- Component Services ---
def get_completion_service(
    repo: SQLiteTourSessionRepo = Depends(get_tour_repo),
    attribution: AttributionPort = Depends(get_attribution),
    rules: Rules = Depends(get_rules),
) -> TourCompletionService:
    """Get the tour completion service."""
    return TourCompletionService(
        repo=repo,
        attribution=attribution,
        clock=SystemClock(),
        rules=rules,
    )
