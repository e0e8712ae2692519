import uvicorn
from dotenv import load_dotenv
from loguru import logger

from ops_broker.app_config import load_json_config, parse_app_config, resolve_runtime_env
from ops_broker.bootstrap import bootstrap_runtime
from ops_broker.server import create_app


def main() -> None:
    load_dotenv()

    app_config = parse_app_config(load_json_config())
    env = resolve_runtime_env(app_config.provider_name)
    runtime = bootstrap_runtime(app_config, env)

    for description in runtime.log_descriptions:
        logger.info(f"Logging to {description}")
    logger.info(f"Serving on http://{app_config.host}:{app_config.port}")

    try:
        uvicorn.run(create_app(runtime), host=app_config.host, port=app_config.port, log_config=None)
    finally:
        runtime.close()


if __name__ == "__main__":
    main()
