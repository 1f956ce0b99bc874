"""CLI entrypoint for the ledger service."""
from __future__ import annotations

import logging
import sys

from .api import create_app, run_api
from .config import LedgerSettings, settings
from .ledger import Ledger


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s:%(lineno)d | %(message)s",
        stream=sys.stdout,
    )


def build_ledger(config: LedgerSettings) -> Ledger:
    return Ledger(
        config.data_path,
        journal_path=config.journal_path,
        starting_balance=config.starting_balance,
        corruption_policy=config.corruption_policy,
    )


def main() -> None:
    configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting ledger service")
    ledger = build_ledger(settings)
    logger.info(
        "Using ledger file %s (journal=%s, corruption_policy=%s)",
        ledger.path,
        ledger.journal_path,
        ledger.corruption_policy.value,
    )
    if settings.api_admin_token:
        logger.info("Admin endpoints require X-Admin-Token")
    else:
        logger.warning("Admin endpoints are unauthenticated; set CASINO_API_ADMIN_TOKEN to protect them")

    app = create_app(ledger, settings)
    logger.info("HTTP API available at http://%s:%s", settings.api_host, settings.api_port)
    run_api(app, settings)


if __name__ == "__main__":
    main()
