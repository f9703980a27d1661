# market_pipeline/functions.py
# Purpose: HTTP side of the jobs. Every entry point runs one job and answers
#          {success, message, details | error, timestamp, executionTime}.

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from flask import Flask, Request, jsonify, request as current_request

from market_pipeline.config import (IN_GAME_FIELDS, MANIPULATOR_FIELDS, REAL_WORLD_FIELDS,
                                    STORE_FIELDS, Settings)
from market_pipeline.document_store import DocumentStore
from market_pipeline.errors import status_for
from market_pipeline.fetch_real_world import update_all
from market_pipeline.in_game_market import run_market_cycle, seed_market, update_market
from market_pipeline.records import now_iso
from market_pipeline.update_manipulator import update_manipulator

logger = logging.getLogger(__name__)

STORE_KEY_HEADER = "x-store-key"


def _required_for_fetch(settings: Settings):
    needed = list(STORE_FIELDS + REAL_WORLD_FIELDS)
    if settings.quote_provider == "alphavantage":
        needed.append("quote_api_key")
    return needed


# job name -> (runner, required settings)
JOBS: Dict[str, Tuple[Callable, Callable]] = {
    "fetch-real-world": (update_all, _required_for_fetch),
    "update-manipulator": (update_manipulator,
                           lambda s: STORE_FIELDS + REAL_WORLD_FIELDS + MANIPULATOR_FIELDS),
    "seed-in-game": (seed_market, lambda s: STORE_FIELDS + IN_GAME_FIELDS),
    "update-in-game": (update_market, lambda s: STORE_FIELDS + IN_GAME_FIELDS + MANIPULATOR_FIELDS),
    "market-cycle": (run_market_cycle,
                     lambda s: STORE_FIELDS + REAL_WORLD_FIELDS + MANIPULATOR_FIELDS + IN_GAME_FIELDS),
}


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                        format="[%(levelname)s] %(name)s: %(message)s")


def execute(job: str, api_key: Optional[str] = None, environ=None,
            store_factory: Optional[Callable] = None) -> Tuple[dict, int]:
    """Run one job start to finish; returns (response body, status code)."""
    if job not in JOBS:
        raise ValueError(f"Unknown job {job!r}; expected one of {', '.join(sorted(JOBS))}")
    runner, required = JOBS[job]
    started = time.monotonic()
    timestamp = now_iso()

    def _elapsed() -> str:
        return f"{int((time.monotonic() - started) * 1000)}ms"

    try:
        settings = Settings.from_env(environ)
        settings.require(*required(settings))
        store = (store_factory or DocumentStore.from_settings)(settings, api_key)
        message, details = runner(settings, store)
    except Exception as e:
        # short-circuit: message only, trace stays in the logs
        logger.exception(f"{job} failed: {e}")
        return {
            "success": False,
            "error": str(e),
            "timestamp": timestamp,
            "executionTime": _elapsed(),
        }, status_for(e)

    logger.info(f"{job}: {message}")
    return {
        "success": True,
        "message": message,
        "details": details,
        "timestamp": timestamp,
        "executionTime": _elapsed(),
    }, 200


def _respond(job: str, request: Request):
    body, status = execute(job, api_key=request.headers.get(STORE_KEY_HEADER))
    return jsonify(body), status


# Cloud Functions entry points (--entry-point <name>)
def run_fetch_real_world(request: Request):
    """Scrape real-world quotes into the real-world collection."""
    return _respond("fetch-real-world", request)


def run_update_manipulator(request: Request):
    """Recompute the manipulator from the real-world collection."""
    return _respond("update-manipulator", request)


def run_seed_in_game_market(request: Request):
    return _respond("seed-in-game", request)


def run_update_in_game_market(request: Request):
    """Apply the stored manipulator to the in-game stocks."""
    return _respond("update-in-game", request)


def run_market_cycle_job(request: Request):
    return _respond("market-cycle", request)


def create_app() -> Flask:
    """One Flask service with a route per job (Cloud Run)."""
    app = Flask(__name__)

    @app.get("/")
    def root():
        return jsonify({"ok": True, "jobs": sorted(JOBS)}), 200

    @app.route("/jobs/<job>", methods=["GET", "POST"])
    def run_job(job: str):
        if job not in JOBS:
            return jsonify({"ok": False, "error": f"Unknown job {job!r}"}), 404
        return _respond(job, current_request)

    return app
