import sys

import uvicorn
from dotenv import load_dotenv
from loguru import logger

from debt_negotiator.app_config import (
    apply_runtime_env,
    load_json_config,
    parse_app_config,
    resolve_runtime_env,
)
from debt_negotiator.bootstrap import bootstrap_runtime
from debt_negotiator.errors import ConfigError

_UVICORN_LEVELS = {
    "TRACE": "trace",
    "DEBUG": "debug",
    "INFO": "info",
    "SUCCESS": "info",
    "WARNING": "warning",
    "ERROR": "error",
    "CRITICAL": "critical",
}


def main() -> None:
    load_dotenv()

    try:
        app = parse_app_config(load_json_config())
    except ConfigError as ex:
        logger.error(f"Invalid config.json: {ex}")
        sys.exit(2)

    env = resolve_runtime_env(app.provider_name)
    apply_runtime_env(app, env)

    if not env.provider_api_key:
        logger.error(f"{env.provider_env_var} environment variable is required.")
        sys.exit(1)

    runtime = bootstrap_runtime(app, env)

    print("debt-negotiator")
    print(f"Provider: {app.provider_name} ({app.model})")
    print(f"Transport: {app.transport} on http://{app.host}:{app.port}")
    print(f"Policies: partial reply={app.partial_reply_policy}, concurrent turns={app.concurrent_turn_policy}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    # log_config=None keeps uvicorn on the loguru bridge set up by setup_logging.
    uvicorn.run(
        runtime.asgi_app,
        host=app.host,
        port=app.port,
        log_level=_UVICORN_LEVELS.get(app.log_level.upper(), "info"),
        log_config=None,
    )


if __name__ == "__main__":
    main()
