# main.py  (Cloud Functions Gen2 HTTP entry)
# - Exposes one handler per job for --entry-point:
#     run_fetch_real_world, run_update_manipulator, run_seed_in_game_market,
#     run_update_in_game_market, run_market_cycle_job
# - Each takes the Flask request Cloud Functions hands over and returns JSON + status

import os

from market_pipeline.functions import (configure_logging, run_fetch_real_world,  # noqa: F401
                                       run_market_cycle_job, run_seed_in_game_market,
                                       run_update_in_game_market, run_update_manipulator)

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
