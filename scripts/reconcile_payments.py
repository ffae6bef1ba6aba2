#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from roomservice.core.database import SessionLocal  # noqa: E402
from roomservice.core.logging_setup import configure_logging  # noqa: E402
from roomservice.gateway.service import build_gateway  # noqa: E402
from roomservice.services.reconciliation import (  # noqa: E402
    reconcile_pending_payments,
    resolve_reconciliation_issues,
)

logger = logging.getLogger("reconcile_payments")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sincroniza pagamentos pendentes com o gateway.")
    parser.add_argument("--limit", type=int, default=100, help="Máximo de pedidos consultados")
    parser.add_argument(
        "--issues-only",
        action="store_true",
        help="Só reaplica vínculos de fatura registrados para reconciliação",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    configure_logging()

    db = SessionLocal()
    try:
        resolved = resolve_reconciliation_issues(db)
        print(f"Reconciliation issues resolved: {resolved}")
        if args.issues_only:
            return 0

        # Sem listeners em tempo real neste processo; o polling do hóspede cobre.
        results = reconcile_pending_payments(db, build_gateway(), notifier=None, limit=args.limit)
    except RuntimeError as exc:
        logger.error("Reconciliation aborted: %s", exc)
        return 1
    finally:
        db.close()

    changed = [result for result in results if result.changed]
    print(f"Payments settled at gateway: {len(results)} changed: {len(changed)}")
    for result in changed:
        print(f"  {result.external_id}: {result.previous_status} -> {result.payment_status}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
