import argparse
import asyncio
import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from nurture.core.startup import bootstrap
from nurture.orchestration.scheduler import NurtureScheduler


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one nurture cycle in the foreground.")
    parser.add_argument("--lead-id", type=int, help="Process a single lead through the reactive path.")
    args = parser.parse_args()

    bootstrap()
    scheduler = NurtureScheduler()
    if args.lead_id is not None:
        result = asyncio.run(scheduler.process_lead(args.lead_id, trigger="manual"))
        print(json.dumps(result.as_dict(), indent=2))
        return 0

    report = asyncio.run(scheduler.run_cycle(trigger="manual"))
    print(json.dumps(report.as_dict(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
