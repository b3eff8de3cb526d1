import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy import text
from app.core.config import get_config
from app.database.db import engine

LOG_PATH = Path(get_config().LOG_FILE or "orders.log")
TAIL_LINES = 5000

DB_ERR_THRESHOLD = 3
BENCHMARK_ERR_THRESHOLD = 5
PRICING_DEGRADED_THRESHOLD = 10
OUTBOX_FAILED_THRESHOLD = 1

tail = []
if LOG_PATH.exists():
    tail = LOG_PATH.read_text(encoding="utf-8", errors="ignore").splitlines()[-TAIL_LINES:]

db_err = sum('"event": "database.connection_failed"' in line for line in tail)
benchmark_err = sum('"event": "benchmark.capture.failed"' in line for line in tail)
pricing_degraded = sum('"event": "pricing.resolver.degraded"' in line for line in tail)

with engine.connect() as conn:
    failed = conn.execute(text("SELECT COUNT(*) FROM outbox_events WHERE status = 'failed'")).scalar_one()

alerts = []
if db_err >= DB_ERR_THRESHOLD:
    alerts.append(f"database.connection_failed count={db_err}")
if benchmark_err >= BENCHMARK_ERR_THRESHOLD:
    alerts.append(f"benchmark.capture.failed count={benchmark_err}")
if pricing_degraded >= PRICING_DEGRADED_THRESHOLD:
    alerts.append(f"pricing.resolver.degraded count={pricing_degraded}")
if int(failed) >= OUTBOX_FAILED_THRESHOLD:
    alerts.append(f"outbox_failed={failed}")

if alerts:
    print("ALERT:", " | ".join(alerts))
    raise SystemExit(2)

print(f"OK: db_err={db_err}, benchmark_err={benchmark_err}, pricing_degraded={pricing_degraded}, outbox_failed={failed}")
