from __future__ import annotations

import argparse
from pathlib import Path

from rest_provisioner.config import apply, load, plan, plan_and_apply


def _progress(change: object, event: str) -> None:
    address = getattr(change, "address", "unknown")
    if event == "start":
        print(f"[apply:start] {address}")
    else:
        print(f"[apply:done]  {address}")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Plan/apply rest-provisioner config via Python API"
    )
    parser.add_argument("--config", default="rest-provisioner.yaml", help="Path to config file")
    parser.add_argument("--apply", action="store_true", help="Apply the generated plan")
    parser.add_argument(
        "--unattended",
        action="store_true",
        help="Plan and apply in one step without printing the plan",
    )
    parser.add_argument("--destroy", action="store_true", help="Plan teardown of everything")
    parser.add_argument(
        "--no-refresh",
        action="store_true",
        help="Skip describing tracked resources during plan",
    )
    args = parser.parse_args()

    config = load(Path(args.config))

    if args.unattended:
        result = plan_and_apply(config, destroy=args.destroy, refresh=not args.no_refresh)
        print("Apply summary:", result.summary())
        return

    plan_obj = plan(config, destroy=args.destroy, refresh=not args.no_refresh)
    for drift in plan_obj.drift:
        print(f"! drift {drift.address}: {drift.reason}")
    print("Plan summary:", plan_obj.summary())
    for change in plan_obj.changes:
        print(f"- {change.action.value:16} {change.address}")

    if args.apply:
        result = apply(plan_obj, config, progress=_progress)
        print("Apply summary:", result.summary())


if __name__ == "__main__":
    main()
