# main.py

import sys

from config import DATA_DIR
from modules.data_ingestor import ingest
from modules.pmz_pipeline import compute_pmz

if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else DATA_DIR + "es_1min.csv"

    df = ingest(path)
    compute_pmz(df)
