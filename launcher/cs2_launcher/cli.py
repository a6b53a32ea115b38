from __future__ import annotations
import argparse
import json
import uvicorn
from .settings import Settings
from .errors import LauncherError
from .logging_setup import get_logger, setup_logging
from .orchestrator import Orchestrator
from .api import create_app

log = get_logger("cs2.launcher.cli")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="cs2-launcher")
    sub = parser.add_subparsers(dest="cmd", required=True)

    run_p = sub.add_parser("run", help="Install/update server + plugins, start server and serve the API")
    run_p.add_argument("--no-start", action="store_true", help="Only install/update; don't start the CS2 process")
    run_p.add_argument("--no-api", action="store_true", help="Don't serve the REST API after startup")

    sub.add_parser("plan", help="Print the plugin install plan as JSON and exit")

    api_p = sub.add_parser("api", help="Run REST API (FastAPI) without the startup sequence")
    api_p.add_argument("--host", default=None)
    api_p.add_argument("--port", type=int, default=None)

    args = parser.parse_args(argv)
    settings = Settings()
    setup_logging(settings)

    try:
        if args.cmd == "plan":
            orch = Orchestrator(settings)
            orch.prepare_environment()
            print(json.dumps(orch.plan(), indent=2, ensure_ascii=False))
            return 0

        if args.cmd == "run":
            orch = Orchestrator(settings)
            orch.prepare_environment()
            orch.run(start=not args.no_start)
            if args.no_api:
                return 0
            app = create_app(settings, orch)
            uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
            return 0

        if args.cmd == "api":
            app = create_app(settings)
            uvicorn.run(
                app,
                host=args.host or settings.api_host,
                port=args.port or settings.api_port,
                log_level=settings.log_level.lower(),
            )
            return 0
    except LauncherError as e:
        log.error("%s", e)
        return 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
