#!/usr/bin/env python3
"""Model governance from the command line.

Usage:
    python scripts/governance.py compare churn exp-002 --baseline exp-001
    python scripts/governance.py best churn --metric accuracy
    python scripts/governance.py evaluate churn exp-002 --min-improvement 1.0
    python scripts/governance.py promote churn exp-002
    python scripts/governance.py rollback churn
    python scripts/governance.py history churn --limit 5
    python scripts/governance.py trigger churn --days 14
    python scripts/governance.py sweep --auto-promote
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pipelines.promotion import (  # noqa: E402
    ComparisonCriteria,
    MetricComparator,
    PromotionManager,
    PromotionPolicy,
)
from pipelines.retrain.flows import sweep_model  # noqa: E402
from pipelines.retrain.trigger import ConditionType, RetrainingCondition, TimeBasedTrigger  # noqa: E402
from shared.config import get_settings  # noqa: E402
from shared.storage import GovernanceError, MetricStore  # noqa: E402


def _store(args: argparse.Namespace) -> MetricStore:
    if args.project_root:
        return MetricStore.for_project(args.project_root, get_settings().models_dir)
    return MetricStore()


def _header(title: str) -> None:
    print("=" * 60)
    print(title)
    print("=" * 60)


def cmd_compare(args: argparse.Namespace) -> int:
    comparator = MetricComparator(_store(args))
    if args.baseline:
        result = comparator.compare(args.model, args.candidate, args.baseline)
    else:
        result = comparator.compare_with_production(args.model, args.candidate)

    _header(f"Compare {result.candidate_experiment_id} vs {result.baseline_experiment_id}")
    for detail in result.metric_details.values():
        marker = "+" if detail.is_better else " "
        print(
            f" {marker} {detail.metric_name:<24} "
            f"{detail.candidate_value:>10.4f} {detail.baseline_value:>10.4f} "
            f"{detail.difference:>+10.4f}"
        )
    print("-" * 60)
    print(f"Candidate better: {result.candidate_is_better}")
    print(f"Improvement: {result.improvement:.2f}%")
    print(f"Recommendation: {result.recommendation}")
    return 0


def cmd_best(args: argparse.Namespace) -> int:
    criteria = ComparisonCriteria(
        primary_metric=args.metric, minimum_improvement=args.min_improvement
    )
    best = MetricComparator(_store(args)).find_best_experiment(args.model, criteria)
    if best is None:
        print(f"No experiment of '{args.model}' qualifies on '{args.metric}'")
        return 1
    print(best)
    return 0


def cmd_evaluate(args: argparse.Namespace) -> int:
    policy = PromotionPolicy(
        minimum_improvement=args.min_improvement,
        require_comparison_with_production=not args.skip_production,
        required_metrics=tuple(args.require or ()),
    )
    decision = PromotionManager(_store(args)).evaluate_promotion(args.model, args.candidate, policy)

    _header(f"Promotion policy: {args.model}/{args.candidate}")
    for check in decision.checks_passed:
        print(f"  PASS  {check}")
    for check in decision.checks_failed:
        print(f"  FAIL  {check}")
    print("-" * 60)
    print(f"{'APPROVED' if decision.approved else 'REJECTED'}: {decision.reason}")
    return 0 if decision.approved else 1


def cmd_promote(args: argparse.Namespace) -> int:
    outcome = PromotionManager(_store(args)).promote(
        args.model, args.experiment, create_backup=not args.no_backup
    )
    if not outcome.success:
        print(f"Promotion failed ({outcome.error.value}): {outcome.message}")
        return 1

    print(f"Promoted {outcome.experiment_id} (previous: {outcome.previous_experiment_id or 'none'})")
    if outcome.backup_path:
        print(f"Backup: {outcome.backup_path}")
    return 0


def cmd_rollback(args: argparse.Namespace) -> int:
    outcome = PromotionManager(_store(args)).rollback(args.model, args.target)
    if not outcome.success:
        print(f"Rollback failed ({outcome.error.value}): {outcome.message}")
        return 1
    print(f"Rolled back from {outcome.from_experiment_id} to {outcome.to_experiment_id}")
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    records = PromotionManager(_store(args)).get_history(args.model, limit=args.limit)
    if not records:
        print("No promotion history recorded yet.")
        return 0

    _header(f"Promotion history: {args.model}")
    for record in records:
        print(f"\n{record.timestamp.isoformat()[:19]}")
        print(f"  Action: {record.action}")
        print(f"  Experiment: {record.experiment_id}")
        print(f"  Previous: {record.previous_experiment_id or 'none'}")
        print(f"  Reason: {record.reason or ''}")
    return 0


def cmd_trigger(args: argparse.Namespace) -> int:
    trigger = TimeBasedTrigger(_store(args))
    conditions = None
    if args.days is not None:
        conditions = [
            RetrainingCondition(
                type=ConditionType.TIME_BASED,
                name="Scheduled Retraining",
                threshold=args.days,
            )
        ]
    evaluation = trigger.evaluate(args.model, conditions)

    for result in evaluation.condition_results:
        print(f"[{'MET' if result.is_met else 'ok '}] {result.condition.name}: {result.details}")
    if evaluation.recommended_action:
        print(evaluation.recommended_action)
    return 0


def cmd_sweep(args: argparse.Namespace) -> int:
    store = _store(args)
    metric = args.metric or get_settings().default_primary_metric
    names = args.models or store.layout.list_models()

    summaries = {}
    warnings = []
    for name in names:
        try:
            summaries[name] = sweep_model(store, name, metric, auto_promote=args.auto_promote)
        except (GovernanceError, OSError) as e:
            warnings.append(f"{name}: {e}")

    print(json.dumps({"models": summaries, "warnings": warnings}, indent=2, default=str))
    return 1 if warnings else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compare, promote and roll back governed models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--project-root",
        type=str,
        default=None,
        help="Project root containing models/ (default: MODELGATE_PROJECT_ROOT)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("compare", help="Compare a candidate with a baseline or production")
    p.add_argument("model")
    p.add_argument("candidate")
    p.add_argument("--baseline", default=None, help="Baseline experiment (default: production)")
    p.set_defaults(func=cmd_compare)

    p = sub.add_parser("best", help="Find the experiment with the highest primary metric")
    p.add_argument("model")
    p.add_argument("--metric", required=True)
    p.add_argument(
        "--min-improvement",
        type=float,
        default=0.0,
        help="Required gain over production as a fraction (0.05 = 5%%)",
    )
    p.set_defaults(func=cmd_best)

    p = sub.add_parser("evaluate", help="Evaluate a promotion policy")
    p.add_argument("model")
    p.add_argument("candidate")
    p.add_argument("--min-improvement", type=float, default=0.0, help="Percent")
    p.add_argument("--require", action="append", help="Required metric (repeatable)")
    p.add_argument(
        "--skip-production", action="store_true", help="Do not compare with production"
    )
    p.set_defaults(func=cmd_evaluate)

    p = sub.add_parser("promote", help="Promote an experiment to production")
    p.add_argument("model")
    p.add_argument("experiment")
    p.add_argument("--no-backup", action="store_true", help="Skip backing up production")
    p.set_defaults(func=cmd_promote)

    p = sub.add_parser("rollback", help="Restore a previous production experiment")
    p.add_argument("model")
    p.add_argument("--target", default=None, help="Experiment to restore")
    p.set_defaults(func=cmd_rollback)

    p = sub.add_parser("history", help="Show promotion history")
    p.add_argument("model")
    p.add_argument("--limit", type=int, default=10)
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("trigger", help="Evaluate retraining conditions")
    p.add_argument("model")
    p.add_argument("--days", type=float, default=None, help="Retraining interval in days")
    p.set_defaults(func=cmd_trigger)

    p = sub.add_parser("sweep", help="Review all models")
    p.add_argument("models", nargs="*")
    p.add_argument("--metric", default=None)
    p.add_argument("--auto-promote", action="store_true")
    p.set_defaults(func=cmd_sweep)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except FileNotFoundError as e:
        print(f"Not found: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
