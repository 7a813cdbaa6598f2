import argparse
import json
import sys

from accessgate import __version__, config
from accessgate.errors import ConfigurationError
from accessgate.observability.log_config import configure_logging


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="accessgate")
    p.add_argument("--log-level", default=None, help="Override ACCESSGATE_LOG_LEVEL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sim_p = sub.add_parser("simulate", help="Dry-run one subject against a rule set.")
    sim_p.add_argument("--rules", required=True, help="Path to rule set YAML")
    sim_p.add_argument("--subject", required=True, help="Path to subject YAML/JSON")
    sim_p.add_argument("--event", choices=["joiner", "mover", "leaver", "default"])
    sim_p.add_argument("--as-of", help="Evaluation date (YYYY-MM-DD), default today UTC")
    sim_p.add_argument("--format", default="json", choices=["json", "text"])

    batch_p = sub.add_parser("batch", help="Dry-run a population of subjects against a rule set.")
    batch_p.add_argument("--rules", required=True)
    batch_p.add_argument("--subjects", required=True, help="Path to YAML/JSON list of subjects")
    batch_p.add_argument("--event", choices=["joiner", "mover", "leaver", "default"])
    batch_p.add_argument("--summary-only", action="store_true", help="Print counts without per-subject results")

    stress_p = sub.add_parser("stress", help="Repeat one simulation and report latency and determinism.")
    stress_p.add_argument("--rules", required=True)
    stress_p.add_argument("--subject", required=True)
    stress_p.add_argument("--iterations", type=int, default=100)

    lint_p = sub.add_parser("lint", help="Statically check a rule set.")
    lint_p.add_argument("--rules", required=True)
    lint_p.add_argument("--strict", action="store_true", help="Fail on warnings as well as errors")

    sub.add_parser("version", help="Print version.")
    return p


def _parse_date(raw):
    from datetime import date

    return date.fromisoformat(raw) if raw else None


def _single_subject(path):
    from accessgate.rules.loader import load_subjects

    subjects = load_subjects(path)
    if len(subjects) != 1:
        print(f"Error: expected exactly one subject in {path}, found {len(subjects)}", file=sys.stderr)
        return None
    return subjects[0]


def _print_text(result) -> None:
    print(f"Subject:       {result.subject_id}")
    print(f"Matched rules: {', '.join(result.matched_rules) or '-'}")
    print(f"Fired rule:    {result.fired_rule or '-'}")
    if result.effective_at:
        print(f"Effective at:  {result.effective_at.isoformat()}")
    print(f"Status:        {result.overall_status} ({result.total_duration_ms} ms)")
    for outcome in result.action_outcomes:
        line = f"  - {outcome.action_id} [{outcome.action_type.value}] {outcome.status.value} attempts={outcome.attempts}"
        if outcome.error:
            line += f" error={outcome.error}"
        print(line)
    print(f"Risk:          {result.risk_score} ({result.risk_band.value})")
    for recommendation in result.recommendations:
        print(f"  * {recommendation}")
    if result.compliance_issues:
        print("Compliance issues:")
        for issue in result.compliance_issues:
            print(f"  ! {issue}")


def main() -> int:
    # If no arguments provided, show help
    if len(sys.argv) == 1:
        sys.argv.append("--help")

    p = build_parser()
    args = p.parse_args()
    configure_logging(level=args.log_level)

    if args.cmd == "version":
        print(f"accessgate {__version__}")
        return 0

    if args.cmd == "lint":
        from accessgate.rules.lint import lint_rule_file

        report = lint_rule_file(args.rules)
        print(json.dumps(report, indent=2))
        if not report["ok"]:
            return 1
        if (args.strict or config.is_strict_lint()) and report["warning_count"]:
            return 1
        return 0

    from accessgate.rules.loader import load_rule_set, load_subjects
    from accessgate.rules.types import LifecycleEvent
    from accessgate.simulation.harness import SimulationHarness

    try:
        rule_set = load_rule_set(args.rules)
        harness = SimulationHarness()
        event = LifecycleEvent(args.event) if getattr(args, "event", None) else None

        if args.cmd == "simulate":
            subject = _single_subject(args.subject)
            if subject is None:
                return 1
            result = harness.simulate(subject, rule_set, event=event, as_of=_parse_date(args.as_of))
            if args.format == "json":
                print(json.dumps(result.model_dump(mode="json"), indent=2))
            else:
                _print_text(result)
            return 0

        if args.cmd == "batch":
            report = harness.simulate_batch(load_subjects(args.subjects), rule_set, event=event)
            output = {"summary": report.summary()}
            if not args.summary_only:
                output["results"] = {
                    subject_id: result.model_dump(mode="json") for subject_id, result in report.results.items()
                }
            print(json.dumps(output, indent=2))
            return 0

        if args.cmd == "stress":
            subject = _single_subject(args.subject)
            if subject is None:
                return 1
            report = harness.stress_test(subject, rule_set, args.iterations)
            print(json.dumps(report.model_dump(mode="json"), indent=2))
            return 0 if report.deterministic else 1
    except ConfigurationError as exc:
        print(json.dumps({"error": exc.to_dict()}, indent=2), file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
