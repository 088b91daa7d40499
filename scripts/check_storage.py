"""
Print the storage setup report: bucket, site gallery table, test upload.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bambiland.dependencies import get_db_client, get_storage_client
from bambiland.diagnostics import check_storage


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    report = check_storage(get_db_client(), get_storage_client())
    print(json.dumps(report, indent=2))
    ok = (
        report["bucket"]["exists"]
        and report["table"]["exists"]
        and report["upload"]["success"]
    )
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
