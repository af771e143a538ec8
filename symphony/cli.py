"""CLI entry point: one subcommand per orchestration operation.

A successful command prints one JSON value to stdout and exits 0. Any
failure prints ``Error: ...`` to stderr and exits 1, argument errors
included.
"""

import argparse
import json
import sys
from typing import Any, List, Optional

from symphony.config import STATE_FILE_NAME
from symphony.classifier import classify_error
from symphony.errors import SymphonyError
from symphony.models import BackoffStrategy, DecisionOption, RetryPolicy
from symphony.notifier import DecisionNotifier
from symphony.orchestrator import (
    Orchestrator, parse_artifacts, plan_execution_order,
)
from symphony.plan import find_latest_plan, load_plan
from symphony.statusline import render_statusline


class _ArgumentParser(argparse.ArgumentParser):
    """argparse exits 2 on bad arguments; every failure here exits 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        print(f"Error: {message}", file=sys.stderr)
        sys.exit(1)


def _emit(value: Any):
    print(json.dumps(value, indent=2))


def _orchestrator(args) -> Orchestrator:
    return Orchestrator(args.state,
                        notifier=DecisionNotifier.from_config(args.debug),
                        debug=args.debug)


# -- commands -----------------------------------------------------------------

def cmd_init(args):
    policy = None
    if args.max_retries is not None or args.backoff_strategy is not None:
        policy = RetryPolicy.default()
        if args.max_retries is not None:
            policy.max_retries = args.max_retries
        if args.backoff_strategy is not None:
            policy.backoff_strategy = BackoffStrategy(args.backoff_strategy)
    orch = Orchestrator(args.output, debug=args.debug)
    _emit(orch.init(args.plan, force=args.force, retry_policy=policy))


def cmd_parse_plan(args):
    _emit([phase.to_dict() for phase in load_plan(args.plan)])


def cmd_order(args):
    if args.plan:
        _emit(plan_execution_order(load_plan(args.plan)))
    else:
        _emit(_orchestrator(args).execution_order())


def cmd_ready(args):
    _emit(_orchestrator(args).get_ready())


def cmd_start(args):
    _emit(_orchestrator(args).mark_running(args.phase_id))


def cmd_complete(args):
    artifacts = parse_artifacts(args.artifacts)
    _emit(_orchestrator(args).mark_complete(args.phase_id, artifacts))


def cmd_retry(args):
    _emit(_orchestrator(args).record_failure(
        args.phase_id, args.error, force=args.force, no_retry=args.no_retry))


def cmd_fail(args):
    _emit(_orchestrator(args).record_failure(
        args.phase_id, args.error, bypass=True))


def cmd_decide(args):
    _emit(_orchestrator(args).resolve_decision(args.phase_id, args.decision))


def cmd_classify(args):
    _emit(classify_error(args.error).to_dict())


def cmd_find_plan(args):
    _emit({'path': find_latest_plan(args.directory)})


def cmd_status(args):
    line = render_statusline(args.state)
    if line:
        print(line)


# -- parser -------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog='symphony',
        description='Dependency-ordered orchestration of multi-phase plans')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug output on stderr')
    sub = parser.add_subparsers(dest='command', metavar='COMMAND')
    sub.required = True

    def state_arg(p):
        p.add_argument('-s', '--state', default=STATE_FILE_NAME,
                       help=f'Orchestration document '
                            f'(default: {STATE_FILE_NAME})')

    p = sub.add_parser('init', help='Validate a plan and create a document')
    p.add_argument('plan', help='Markdown plan with a symphony-phases block')
    p.add_argument('-o', '--output', default=STATE_FILE_NAME,
                   help=f'Document path (default: {STATE_FILE_NAME})')
    p.add_argument('--force', action='store_true',
                   help='Overwrite an existing document')
    p.add_argument('--max-retries', type=int, default=None)
    p.add_argument('--backoff-strategy', default=None,
                   choices=[s.value for s in BackoffStrategy])
    p.set_defaults(func=cmd_init)

    p = sub.add_parser('parse-plan', help='Print the validated phases')
    p.add_argument('plan')
    p.set_defaults(func=cmd_parse_plan)

    p = sub.add_parser('order', help='Print parallel waves and topo order')
    state_arg(p)
    p.add_argument('--plan', default=None,
                   help='Read phases from a plan file instead')
    p.set_defaults(func=cmd_order)

    p = sub.add_parser('ready', help='List phases ready to run')
    state_arg(p)
    p.set_defaults(func=cmd_ready)

    p = sub.add_parser('start', help='Mark a phase running')
    state_arg(p)
    p.add_argument('phase_id')
    p.set_defaults(func=cmd_start)

    p = sub.add_parser('complete', help='Mark a phase complete')
    state_arg(p)
    p.add_argument('phase_id')
    p.add_argument('artifacts', nargs='?', default=None,
                   help='JSON array of artifacts')
    p.set_defaults(func=cmd_complete)

    p = sub.add_parser('retry', help='Report a failure through the retry '
                                     'policy')
    state_arg(p)
    p.add_argument('phase_id')
    p.add_argument('error', help='Error message of the failed attempt')
    p.add_argument('--force', action='store_true',
                   help='Treat the error as retryable')
    p.add_argument('--no-retry', action='store_true',
                   help='Ask for a decision without retrying')
    p.set_defaults(func=cmd_retry)

    p = sub.add_parser('fail', help='Fail a phase and block its dependents')
    state_arg(p)
    p.add_argument('phase_id')
    p.add_argument('error')
    p.set_defaults(func=cmd_fail)

    p = sub.add_parser('decide', help='Resolve a pending decision')
    state_arg(p)
    p.add_argument('phase_id')
    p.add_argument('decision', help=', '.join(o.value
                                              for o in DecisionOption))
    p.set_defaults(func=cmd_decide)

    p = sub.add_parser('classify', help='Classify an error message')
    p.add_argument('error')
    p.set_defaults(func=cmd_classify)

    p = sub.add_parser('find-plan', help='Find the newest plan file')
    p.add_argument('directory', nargs='?', default=None)
    p.set_defaults(func=cmd_find_plan)

    p = sub.add_parser('status', help='Render a one-line progress summary')
    state_arg(p)
    p.set_defaults(func=cmd_status)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except SymphonyError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        for line in exc.details():
            print(line, file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
