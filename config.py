from datetime import time

#Expected CSV Columns (case-insensitive)
REQUIRED_COLUMNS = ['open', 'high', 'low', 'close']
OPTIONAL_COLUMNS = ['volume']

#Different data vendors name time columns differently.
TIMESTAMP_CANDIDATES = ['datetime', 'date', 'time', 'timestamp', 'ts_event', 'Date', 'Datetime']

#Flag if any single bar moves more than 5% (futures rarely do intraday)
MAX_SINGLE_BAR_MOVE_PCT = 5.0

#Prices below this are invalid
MIN_PRICE = 0.0001

#All session times below are exchange-local wall-clock times
EXCHANGE_TZ = "America/New_York"

#Bar size the evaluator is tuned for. Finer bars are aggregated up to this.
BAR_MINUTES = 5

# Input path
DATA_DIR = "data/"

# ── Session Clock ──────────────────────────────────

TOPEN     = time(9, 30)    # regular session open
TCLOSE    = time(16, 0)    # regular session close (LIS capture)
NT2       = time(23, 55)   # late-night after-hours slice start
NT3       = time(0, 0)     # overnight slice start
NT4       = time(9, 30)    # overnight slice end / pre-market window close
FUT_CLOSE = time(18, 0)    # end of post-close after-hours slice

# Coarser bars never print the 15:55 / 07:25 bars, so cutoffs move earlier.
# (max period in minutes, cutoff): first match wins, None = any period.
CNULL_BY_PERIOD = [
    (5,    time(15, 55)),
    (10,   time(15, 50)),
    (15,   time(15, 45)),
    (30,   time(15, 30)),
    (None, time(15, 0)),
]

PNULL_BY_PERIOD = [
    (5,    time(7, 25)),
    (10,   time(7, 20)),
    (15,   time(7, 15)),
    (None, time(7, 0)),
]

# ── Zone Weights ───────────────────────────────────

PMZ_NEAR_WEIGHT = 0.2   # fraction of the pre-market range, edge nearest the extreme
PMZ_FAR_WEIGHT  = 0.4

# ── Evaluator Defaults ─────────────────────────────

# "PRE" = 07:25-09:30 pre-market only, "ALL" = whole overnight session
PREMARKET_MODES = ("PRE", "ALL")
PREMARKET_MODE  = "PRE"

# Track the 15:55-18:00 after-hours mirror
FUTURES_ENABLED = False
