# =============================================
# File: app/cli/experiment_results.py
# Purpose: CLI entrypoint to print an experiment's results (lift, p-value, intervals) as JSON.
# Usage:
#   python -m app.cli.experiment_results --tenant <tenant_id> --experiment <experiment_id>
# =============================================
from __future__ import annotations
import argparse
import json
import sys

from sqlmodel import Session

from app.db.repo import engine
from app.services.experiments import build_results
from app.services.stores import ExperimentStore

def main(argv=None):
    ap = argparse.ArgumentParser(description="Print experiment results from the aggregated counters.")
    ap.add_argument("--tenant", required=True, help="Tenant id owning the experiment")
    ap.add_argument("--experiment", required=True, help="Experiment id")
    ap.add_argument("--compact", action="store_true", help="Single-line JSON output")
    args = ap.parse_args(argv)

    with Session(engine) as session:
        store = ExperimentStore(session)
        exp = store.get(args.tenant, args.experiment)
        if exp is None:
            print(f"[WARN] Experiment '{args.experiment}' not found for tenant '{args.tenant}'.", file=sys.stderr)
            sys.exit(1)
        results = build_results(store, exp)

    print(json.dumps(results, indent=None if args.compact else 2))

if __name__ == "__main__":
    main()
