"""One-time move of [RESUBMISSIONS: n] / [SUGGESTION_ROUND: n] note markers into columns."""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from app.core.logging_config import configure_logging
from app.services.group_sync_service import GroupSyncService


def main() -> int:
    configure_logging()
    with GroupSyncService() as service:
        results = service.migrate_all_note_counters()
    for result in results:
        print(
            f"order {result['orderId']}: resubmissions={result['resubmissionCount']} "
            f"suggestion_round={result['suggestionRound']}"
        )
    print(f"Migrated {len(results)} orders.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
