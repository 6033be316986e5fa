"""
Store Factory
Centralizes the logic for selecting card and quota store adapters.
"""

from flashdeck.application.config import AppConfig
from flashdeck.application.session.manager import ReviewSession
from flashdeck.domain.review.ports import CardStore, Clock, QuotaStore
from flashdeck.infrastructure.adapters.file_store import FileCardStore
from flashdeck.infrastructure.adapters.http_store import HttpCardStore
from flashdeck.infrastructure.adapters.json_quota_store import JsonQuotaStore
from flashdeck.infrastructure.clock import SystemClock


def get_card_store(config: AppConfig, clock: Clock | None = None) -> CardStore:
    """
    Returns the CardStore implementation selected by `config.backend`.
    """
    if config.backend == "http":
        return HttpCardStore(
            url=config.api_url,
            token=config.api_token,
            timeout=config.request_timeout,
        )

    return FileCardStore(
        config.data_dir,
        clock=clock,
        default_review_cap=config.default_review_cap,
        default_learn_cap=config.default_learn_cap,
    )


def get_quota_store(config: AppConfig) -> QuotaStore:
    # Quota counters always live on the local machine, whichever card backend is used
    return JsonQuotaStore(config.data_dir / "quota.json")


def create_session(
    config: AppConfig,
    deck_id: str,
    ahead_days: int = 0,
    clock: Clock | None = None,
) -> ReviewSession:
    """Wire a ReviewSession to the configured adapters."""
    clock = clock or SystemClock()
    return ReviewSession(
        deck_id,
        card_store=get_card_store(config, clock),
        quota_store=get_quota_store(config),
        clock=clock,
        ahead_days=ahead_days,
    )
