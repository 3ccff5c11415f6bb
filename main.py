"""
Main entrypoint: FastAPI status server with the Octo worker in its lifespan.

The worker (poll listener, push stream, ledger, HP decay) runs as a
background task on the server's event loop; SIGINT/SIGTERM shut down the
server and the lifespan stops the worker.

Env: OCTO_WALLET_ADDRESS, SOLANA_RPC_URL or HELIUS_API_KEY, OCTO_DB_PATH, API_HOST, API_PORT, etc.

Worker only (no API): python main.py --worker-only
"""

import argparse
import os
import sys

# Configure structured JSON logging before other imports that may log
from backend_octo.octo_logging import get_logger

logger = get_logger("main")


def main() -> None:
    parser = argparse.ArgumentParser(description="Octo donation agent")
    parser.add_argument("--worker-only", action="store_true", help="run the worker without the HTTP API")
    args = parser.parse_args()

    from backend_octo.config.env import mask_rpc_url
    from backend_octo.config.settings import get_settings

    try:
        settings = get_settings()
    except ValueError as e:
        logger.error("main_config_error", error=str(e))
        sys.exit(1)

    logger.info(
        "main_settings_loaded",
        wallet_id=settings.wallet_address,
        rpc_url=mask_rpc_url(settings.rpc_url),
        db_path=str(settings.db_path),
        push_enabled=settings.push_enabled,
    )

    if args.worker_only:
        from backend_octo.agent_worker.worker import run_worker

        run_worker(settings)
        return

    api_host = os.getenv("API_HOST", "0.0.0.0").strip()
    api_port = int(os.getenv("API_PORT", "8000").strip() or "8000")

    from backend_octo.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=api_host, port=api_port)
    uvicorn.run(app, host=api_host, port=api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
