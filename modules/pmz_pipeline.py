# modules/pmz_pipeline.py

from datetime import date
from typing import Optional

import pandas as pd

from config import PREMARKET_MODE, FUTURES_ENABLED
from modules.data_ingestor import slice_for_target_date, frame_to_candles
from modules.pmz_engine import PmzResult, evaluate
from modules.report import print_report


# ─────────────────────────────────────────────
# MASTER FUNCTION
# ─────────────────────────────────────────────

def compute_pmz(df: pd.DataFrame,
                target_date: Optional[date] = None,
                premarket_mode: str = PREMARKET_MODE,
                futures_enabled: bool = FUTURES_ENABLED,
                period_minutes: Optional[int] = None) -> PmzResult:
    """
    Takes the clean candle DataFrame from ingestion.
    Cuts it down to the target date's span, runs the evaluator,
    prints the report and returns the result.
    target_date defaults to the last date in the data.
    """
    print("[PMZ] ── Starting PMZ Evaluation ──\n")

    if target_date is None:
        target_date = df.index[-1].date()

    sliced  = slice_for_target_date(df, target_date)
    candles = frame_to_candles(sliced)

    result = evaluate(
        candles,
        premarket_mode=premarket_mode,
        futures_enabled=futures_enabled,
        target_date=target_date,
        period_minutes=period_minutes,
    )

    print_report(result)
    print("[PMZ] ── PMZ Evaluation Complete. ──\n")
    return result
