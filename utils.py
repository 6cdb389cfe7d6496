# utils.py

import os
import time
import functools
from decimal import Decimal, InvalidOperation
from logging import getLogger
from typing import Any, Dict, List, Optional

import ccxt
import yaml
from dotenv import load_dotenv

ALLOWED_AMOUNT_CURRENCIES = ("BRL", "BTC")


# --- Custom Exceptions ---
class ConfigError(Exception):
    """Configuration or startup validation error. The bot must not start."""
    pass

class ExchangeInitError(Exception):
    """Custom exception for errors during exchange client initialization."""
    pass

class FatalRecoveryError(Exception):
    """Raised when a missed second leg can neither be verified nor repaired."""
    pass


# --- Decorator for CCXT Retries ---
def retry_ccxt_call(func=None, *, max_retries: int = 3, delay: float = 1.0):
    """
    Decorator to retry CCXT API calls with exponential backoff.

    Only network-level failures are retried. Exchange errors are raised
    immediately. Never wrap calls that move funds (offer confirmation).
    """
    if func is None:
        return functools.partial(retry_ccxt_call, max_retries=max_retries, delay=delay)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        wait = delay
        for i in range(max_retries):
            try:
                return func(*args, **kwargs)
            except (ccxt.NetworkError, ccxt.ExchangeNotAvailable, ccxt.RequestTimeout) as e:
                getLogger(__name__).warning(f"CCXT call failed (network issue): {e}. Retrying... ({i+1}/{max_retries})")
                if i == max_retries - 1:
                    getLogger(__name__).error(f"CCXT call failed after {max_retries} retries.")
                    raise
                time.sleep(wait)
                wait *= 2
            except ccxt.ExchangeError as e:
                getLogger(__name__).error(f"CCXT call failed (non-recoverable): {e}")
                raise
    return wrapper


# --- Configuration Loading ---
def _as_decimal(value: Any, key: str) -> Decimal:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid '{key}' value {value!r}. Expected a number.")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ConfigError(f"Invalid '{key}' value {value!r}. Expected a number.")


def parse_helper_keys(raw: Optional[str]) -> List[Dict[str, str]]:
    """Parses ``key1:secret1,key2:secret2`` into a list of key pairs."""
    helpers = []
    if not raw:
        return helpers
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        api_key, sep, api_secret = chunk.partition(":")
        if not sep or not api_key.strip() or not api_secret.strip():
            raise ConfigError("BISCOINT_HELPER_KEYS entries must look like 'apiKey:apiSecret'.")
        helpers.append({"api_key": api_key.strip(), "api_secret": api_secret.strip()})
    return helpers


def inject_api_keys(config: Dict[str, Any], env_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads the Biscoint API keys from the .env file and injects them into the
    config dictionary. Keys already present in the YAML are kept unless the
    environment provides a value.
    """
    load_dotenv(env_file)

    credentials = config.setdefault("credentials", {}) or {}
    config["credentials"] = credentials

    api_key = os.getenv("BISCOINT_API_KEY")
    api_secret = os.getenv("BISCOINT_API_SECRET")
    if api_key:
        credentials["api_key"] = api_key
    if api_secret:
        credentials["api_secret"] = api_secret

    helpers = list(credentials.get("helper_keys") or [])
    helpers.extend(parse_helper_keys(os.getenv("BISCOINT_HELPER_KEYS")))
    credentials["helper_keys"] = helpers
    return config


def validate_config(config):
    """Validates the structure of the config and normalises scalar fields in place."""
    if not isinstance(config, dict):
        raise ConfigError("CRITICAL ERROR: config.yaml must contain a mapping.")
    if "trading_parameters" not in config or not isinstance(config["trading_parameters"], dict):
        raise ConfigError("CRITICAL ERROR: Missing or invalid section 'trading_parameters' in config.yaml.")

    params = config["trading_parameters"]
    credentials = config.get("credentials") or {}

    if not credentials.get("api_key"):
        raise ConfigError('You must specify "api_key" (or BISCOINT_API_KEY in .env).')
    if not credentials.get("api_secret"):
        raise ConfigError('You must specify "api_secret" (or BISCOINT_API_SECRET in .env).')

    for i, helper in enumerate(credentials.get("helper_keys") or []):
        if not isinstance(helper, dict) or not helper.get("api_key") or not helper.get("api_secret"):
            raise ConfigError(f"Helper key #{i + 1} must define both 'api_key' and 'api_secret'.")

    if "amount" not in params:
        raise ConfigError("CRITICAL ERROR: Missing required key 'amount' in 'trading_parameters'.")
    amount = _as_decimal(params["amount"], "amount")
    if not amount.is_finite() or amount <= 0:
        raise ConfigError(f'Invalid amount "{params["amount"]}". Please specify a valid amount in config.yaml')
    params["amount"] = amount

    currency = str(params.get("amount_currency", "BRL")).upper()
    if currency not in ALLOWED_AMOUNT_CURRENCIES:
        raise ConfigError('"amount_currency" must be either "BRL" or "BTC". Check your config.yaml file.')
    params["amount_currency"] = currency

    params["min_profit_percent"] = _as_decimal(params.get("min_profit_percent", 0), "min_profit_percent")

    interval = params.get("interval_seconds")
    if interval is not None:
        interval = _as_decimal(interval, "interval_seconds")
        if interval <= 0:
            raise ConfigError(f"Invalid 'interval_seconds' {interval}. Leave it empty to use the exchange minimum.")
        params["interval_seconds"] = interval

    for flag, default in (("initial_buy", True), ("burst", True), ("simulation", True),
                          ("fix_missed_second_leg", False), ("play_sound", False)):
        params[flag] = bool(params.get(flag, default))

    return True


def load_config(filepath: str = None, env_file: str = None):
    """Loads and validates the configuration file."""
    if filepath is None:
        base_dir = os.path.dirname(os.path.abspath(__file__))  # project root
        filepath = os.path.join(base_dir, "config.yaml")
    try:
        with open(filepath, 'r') as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(f"CRITICAL ERROR: Configuration file '{filepath}' not found.")
    except yaml.YAMLError as e:
        raise ConfigError(f"CRITICAL ERROR: Could not decode '{filepath}'. YAML error: {e}")
    if not isinstance(config, dict):
        raise ConfigError(f"CRITICAL ERROR: '{filepath}' must contain a mapping.")
    inject_api_keys(config, env_file)
    validate_config(config)
    return config
