#!/usr/bin/env python3
from typing import Dict, List, Tuple, Union

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- Target Site ---
GMGN_ORIGIN = 'https://gmgn.ai'
GMGN_HOME_URL = f'{GMGN_ORIGIN}/'
GMGN_TOKEN_URL = f'{GMGN_ORIGIN}/token'
RANK_ENDPOINT = (
    'https://gmgn.ai/vas/api/v1/rank/bsc'
    '?device_id=c726abfb-282c-4e13-9989-38e32421c8ff'
    '&fp_did=c353531e72967c0e225fbcfb70630c7c'
    '&client_id=gmgn_web_20251001-4892-0e84618'
    '&from_app=gmgn&app_ver=20251001-4892-0e84618'
    '&tz_name=Asia%2FCalcutta&tz_offset=19800&app_lang=en-US&os=web'
)

# --- Rank Request Body ---
LAUNCHPAD_PLATFORMS: List[str] = ['fourmeme', 'flap']
QUOTE_ADDRESS_TYPES: List[int] = [6, 7, 1, 8, 9, 10, 2]


def _bucket(limit: int) -> Dict[str, Union[list, int, bool]]:
    return {
        'filters': [],
        'launchpad_platform': list(LAUNCHPAD_PLATFORMS),
        'quote_address_type': list(QUOTE_ADDRESS_TYPES),
        'limit': limit,
        'launchpad_platform_v2': True,
    }


RANK_REQUEST_BODY: Dict[str, Dict] = {
    'new_creation': _bucket(80),
    'near_completion': _bucket(80),
    'completed': _bucket(60),
}

# Bucket keys in the response, in lookup order.
NEAR_COMPLETION_KEYS: Tuple[str, ...] = ('near_completion', 'pump', 'aboutToGraduate')
COMPLETED_KEYS: Tuple[str, ...] = ('completed',)

# --- Categories ---
CATEGORY_PUMP = 'pump'
CATEGORY_MIGRATED = 'migrated'
CATEGORIES: Tuple[str, ...] = (CATEGORY_PUMP, CATEGORY_MIGRATED)

# --- Classification Defaults ---
PUMP_MIN_MARKET_CAP = 16900.0
PUMP_MIN_BUYS = 5
PUMP_MIN_SELLS = 5
PUMP_MAX_AGE_MINUTES = 15.0
MIGRATED_MIN_MARKET_CAP = 60000.0
MIGRATED_MIN_HOLDERS_EXCLUSIVE = 69
MIGRATED_MIN_BUYS = 30
MIGRATED_MIN_SELLS = 30

# --- Bot-Challenge Detection ---
CHALLENGE_MARKERS: Tuple[str, ...] = (
    'attention required',
    'you have been blocked',
    'please enable cookies',
    'cloudflare',
)
CHALLENGE_POLL_SECONDS = 2.5
CHALLENGE_DEFAULT_TIMEOUT = 120

# --- Network Timeouts (seconds) ---
PAGE_LOAD_TIMEOUT = 45
SCRIPT_TIMEOUT = 30
PAGE_SETTLE_SECONDS = 0.7
DIRECT_FETCH_TIMEOUT = 20
WEBHOOK_TIMEOUT = 15
WEBHOOK_MAX_CONCURRENCY = 4

# --- Browser / HTTP Identity ---
BROWSER_USER_AGENT = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64)'
ACCEPT_LANGUAGE = 'en-US,en;q=0.9'
BROWSER_WINDOW_SIZE = '1200,800'

# --- Environment Variable Names ---
HEADLESS_ENV_VAR = 'HEADLESS'
POLL_INTERVAL_ENV_VAR = 'POLL_INTERVAL'
DEBUG_ENV_VAR = 'DEBUG'
WEBHOOK_URLS_PUMP_ENV_VAR = 'WEBHOOK_URLS_PUMP'
WEBHOOK_URLS_MIGRATED_ENV_VAR = 'WEBHOOK_URLS_MIGRATED'
WEBHOOK_URLS_TEST_ENV_VAR = 'WEBHOOK_URLS_TEST'
CHROME_EXECUTABLE_PATH_ENV_VAR = 'CHROME_EXECUTABLE_PATH'
WAIT_CF_TIMEOUT_ENV_VAR = 'WAIT_CF_TIMEOUT'
SESSION_DIR_ENV_VAR = 'SESSION_DIR'
OUTPUT_DIR_ENV_VAR = 'OUTPUT_DIR'

# --- Files ---
DEFAULT_POLL_INTERVAL = 12
DEFAULT_SESSION_DIR = './session'
DEFAULT_OUTPUT_DIR = './output'
LAST_FETCH_FILENAME = 'gmgn_tokens_last.json'
NOTIFIED_FILENAME = 'gmgn_notified_pump_completed.json'
