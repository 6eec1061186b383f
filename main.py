import argparse
import logging
import random
import sys
import threading
import time
from typing import List

from live_printer import active_progressbars
from models import ConfigError, DisplayConfig, load_config
from multi_printer import MultiPrinter
from progressbar_printer import ProgressbarPrinter

logger = logging.getLogger("main")


def _advance(bar: ProgressbarPrinter, delay: float):
    """Worker target: step a bar until it stops itself. Disabled bars (total 0) are left alone."""
    while bar.is_active and bar.total > 0:
        time.sleep(random.uniform(0, delay))
        bar.increment()


def run_single(config: DisplayConfig, delay: float):
    """Draw the first configured bar straight to stdout."""
    bar = ProgressbarPrinter(config.progressbars[0]).start()
    try:
        _advance(bar, delay)
    finally:
        active_progressbars.stop_all()


def run_multi(config: DisplayConfig, delay: float):
    """Draw every configured bar in one shared terminal area."""
    multi = MultiPrinter(config.multi_printer)
    bars: List[ProgressbarPrinter] = [
        ProgressbarPrinter(bar_config.with_writer(multi.new_writer()))
        for bar_config in config.progressbars
    ]
    for bar in bars:
        multi.add_printer(bar)

    # Starts the sub-printers too.
    multi.start()

    workers = [
        threading.Thread(target=_advance, args=(bar, delay), daemon=True)
        for bar in bars
    ]
    for worker in workers:
        worker.start()
    try:
        for worker in workers:
            worker.join()
    finally:
        multi.stop()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Render several progress bars in one live terminal area.")
    parser.add_argument("--config", default="config.yaml", help="YAML display configuration")
    parser.add_argument("--single", action="store_true", help="only run the first bar, without a multi printer")
    parser.add_argument("--delay", type=float, default=0.1, help="maximum seconds between two increments")
    parser.add_argument("--log-level", default="WARNING", help="logging level for diagnostics on stderr")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("%s", e)
        return 1

    if not config.progressbars:
        logger.error("No progress bars configured in '%s'", args.config)
        return 1

    if args.single:
        run_single(config, args.delay)
    else:
        run_multi(config, args.delay)
    return 0


if __name__ == "__main__":
    sys.exit(main())
