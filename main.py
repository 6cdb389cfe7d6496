# main.py

import argparse
import logging
import signal
import sys
import time
from typing import Any, Callable, Dict, Optional

import ccxt

from bot_engine import ArbitrageBot
from burst_controller import BurstController
from data_models import BurstBudget, EngineState, RotationState
from exchange_manager import ExchangeManager
from logging_config import setup_logging
from poller_rotation import CredentialRotator
from rate_limit_calibrator import Calibration, RateLimitCalibrator
from recovery_handler import RecoveryHandler
from risk_manager import RiskManager
from trade_cycle import TradeCycleEngine
from trade_executor import TradeExecutor
from utils import ConfigError, ExchangeInitError, FatalRecoveryError, load_config

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_STARTUP = 2


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Biscoint BTC/BRL spread arbitrage bot")
    parser.add_argument("--config", default=None, help="path to config.yaml (default: next to main.py)")
    parser.add_argument("--env-file", default=None, help="path to the .env file holding the API keys")
    return parser.parse_args(argv)


def ring_bell(cycle) -> None:
    sys.stdout.write("\a")
    sys.stdout.flush()


def build_bot(
    config: Dict[str, Any],
    exchange_manager: ExchangeManager,
    calibration: Calibration,
    on_trade_executed: Optional[Callable[..., None]] = None,
) -> ArbitrageBot:
    """Wires every scheduling component around one shared EngineState."""
    params = config["trading_parameters"]
    is_quote = params["amount_currency"] == "BRL"

    state = EngineState(
        rotation=RotationState(index=0, size=len(exchange_manager.pollers)),
        burst=BurstBudget(ceiling=calibration.burst_max, remaining=calibration.burst_max),
    )
    rotator = CredentialRotator(exchange_manager.pollers, state.rotation)
    burst = BurstController(state.burst, enabled=params["burst"])
    executor = TradeExecutor(exchange_manager, initial_buy=params["initial_buy"], simulation=params["simulation"])
    recovery = RecoveryHandler(
        exchange_manager,
        amount=params["amount"],
        is_quote=is_quote,
        fix_missed_second_leg=params["fix_missed_second_leg"],
    )

    callbacks = {}
    if on_trade_executed is not None:
        callbacks["on_trade_executed"] = on_trade_executed

    engine = TradeCycleEngine(
        exchange_manager,
        rotator,
        burst,
        executor,
        recovery,
        state,
        amount=params["amount"],
        is_quote=is_quote,
        min_profit_percent=params["min_profit_percent"],
        callbacks=callbacks,
        history_size=params.get("history_size", 500),
    )
    return ArbitrageBot(
        engine,
        burst,
        interval_s=calibration.interval_s,
        poller_count=len(exchange_manager.pollers),
        config=config,
    )


def install_signal_handlers(bot: ArbitrageBot) -> None:
    def _handler(signum, frame):
        logging.info(f"Shutdown signal received ({signal.Signals(signum).name}). Exiting gracefully.")
        bot.stop()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv=None) -> int:
    """
    Entry point. Returns the process exit status:
    0 graceful stop, 1 unrecoverable trade state, 2 startup/configuration error.
    """
    args = parse_args(argv)
    config: Dict[str, Any] = {}
    exchange_manager = None
    try:
        # 1. Load configuration and secrets
        config = load_config(args.config, args.env_file)
        setup_logging(config)
        params = config["trading_parameters"]
        logging.info(f"Simulation mode: {'on' if params['simulation'] else 'OFF'}. "
                     f"Amount: {params['amount']} {params['amount_currency']}. "
                     f"Min profit: {params['min_profit_percent']}%.")

        # 2. Initialize components; balance check is where bad keys surface
        exchange_manager = ExchangeManager.from_config(config)
        RiskManager(config, exchange_manager).check_balances()
        calibration = RateLimitCalibrator().calibrate_from_exchange(exchange_manager, params.get("interval_seconds"))

        bot = build_bot(config, exchange_manager, calibration,
                        on_trade_executed=ring_bell if params["play_sound"] else None)
        install_signal_handlers(bot)

        # 3. Run until stopped
        bot.run()
        return EXIT_OK

    except ConfigError as e:
        logging.error(f"Configuration Error: {e}")
        return EXIT_STARTUP
    except ExchangeInitError as e:
        logging.error(f"Exchange initialization failed: {e}")
        return EXIT_STARTUP
    except ccxt.AuthenticationError as e:
        logging.error(f"Authentication Failed: {e}. Please check your API keys and permissions.")
        return EXIT_STARTUP
    except FatalRecoveryError as e:
        logging.critical(f"FATAL: {e}. Stopping the bot; check your balances on the exchange.")
        time.sleep(float((config.get("logging") or {}).get("fatal_flush_seconds", 1.0)))
        return EXIT_FATAL
    except ccxt.BaseError as e:
        logging.error(f"Exchange error during startup: {e}")
        return EXIT_STARTUP
    finally:
        if exchange_manager:
            exchange_manager.close_all_clients()


if __name__ == "__main__":
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s', stream=sys.stdout)
    status = main()
    logging.shutdown()
    sys.exit(status)
