"""Run a configured flow or agent from the command line.

Usage:
    python -m stepflow CONFIG --flow NAME [--input TEXT]
    python -m stepflow CONFIG --agent NAME --objective TEXT
"""

import argparse
import json
import logging
import sys

from .config import configure
from .errors import StepflowError, TaskExecutionError


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="stepflow", description="Run stepflow flows and agents")
    parser.add_argument("config", help="YAML, JSON or TOML configuration file")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--flow", help="Name of the flow to run")
    target.add_argument("--agent", help="Name of the agent to run")
    parser.add_argument("--input", default="", help="Input text for --flow")
    parser.add_argument("--objective", help="Objective for --agent")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    args = parser.parse_args(argv)

    if args.agent and not args.objective:
        parser.error("--agent requires --objective")

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        registry = configure(args.config)
        if args.flow:
            context = registry.get_flow(args.flow).run_with_input(args.input)
            print(context.text)
        else:
            result = registry.get_agent(args.agent).execute(args.objective)
            print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    except TaskExecutionError as e:
        print(json.dumps(e.task_result.to_dict(), indent=2, ensure_ascii=False))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (StepflowError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
