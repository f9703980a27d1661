# main.py
# Purpose: Cloud Run entrypoint (HTTP or console). One route per job.
#   HTTP:    POST /jobs/<job>
#   Console: python gcp/function_update/main.py <job>

import json
import os
import sys

from market_pipeline.functions import JOBS, configure_logging, create_app, execute

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
app = create_app()


def run_once(job: str) -> int:
    """CLI entry; prints the JSON response to stdout, exit code 0 on success."""
    body, status = execute(job, api_key=os.getenv("STORE_KEY"))
    print(json.dumps(body, default=str))
    return 0 if status == 200 else 1


if __name__ == "__main__":
    if len(sys.argv) != 2 or sys.argv[1] not in JOBS:
        print(f"usage: main.py <{'|'.join(sorted(JOBS))}>", file=sys.stderr)
        sys.exit(2)
    sys.exit(run_once(sys.argv[1]))
