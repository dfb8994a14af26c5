from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

from probeflow import create_engine
from probeflow.agent import SimulatedAgent
from probeflow.errors import ProbeflowError
from probeflow.storage import ScriptStore

logger = logging.getLogger(__name__)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="probeflow", description="Run one entry node of a script snapshot.")
    parser.add_argument("script", type=Path, help="editor JSON snapshot of the script")
    parser.add_argument("entry", help="id of the entry node to run")
    parser.add_argument("--value", help="JSON value handed to the entry node", default=None)
    parser.add_argument("--simulate", action="store_true", help="attach the in-process simulated agent")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """
    Entry point for the probeflow command line runner.
    """

    args = _parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        script = ScriptStore().load_script(args.script)
        value = json.loads(args.value) if args.value is not None else None
    except (OSError, ValueError, ProbeflowError) as exc:
        logger.error("Could not load %s: %s", args.script, exc)
        sys.exit(2)

    engine = create_engine()
    if args.simulate:
        engine.set_agent(SimulatedAgent())
        engine.set_session("simulated", "simulated")

    try:
        result = engine.run(script, args.entry, value)
    finally:
        engine.bridge.close()
    print(json.dumps(result.to_dict(), indent=2))
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
