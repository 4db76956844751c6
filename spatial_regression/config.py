"""Shared configuration for the spatial regression analyses."""

from pathlib import Path

# ── Paths ──────────────────────────────────────────────────────────
ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = ROOT / "data"
MALARIA_CSV = DATA_DIR / "eth_malaria_2009.csv"
OUTPUT_DIR = Path(__file__).resolve().parent / "output"

# ── Columns ────────────────────────────────────────────────────────
# Binomial outcome: number of positive tests out of number examined
POSITIVE_COL = "pf_pos"
TRIALS_COL = "examined"
LAT_COL = "latitude"
LON_COL = "longitude"

# Candidate covariates for the Ethiopia prevalence exercise
# (elevation + bioclimatic layers extracted at survey locations)
CANDIDATE_COVARIATES = ["alt", "bio1", "bio2", "bio12", "bio15"]

# ── Cross-validation / selection ───────────────────────────────────
N_FOLDS = 5
MIN_COVARIATES = 2
SEED = 42
STRATIFY_BINS = 5

# ── Spatial random effect ──────────────────────────────────────────
# Matérn smoothness; 0.5 = exponential, 1.5 = once-differentiable field
MATERN_NU = 1.5
MATERN_LENGTH_SCALE_KM = 100.0
MATERN_LENGTH_SCALE_BOUNDS_KM = (1.0, 2000.0)
GP_RESTARTS = 0

# ── Residual diagnostics ───────────────────────────────────────────
CORRELOGRAM_BINS = 10
VARIOGRAM_LAGS = 15
ALPHA = 0.05

KM_PER_DEG_LAT = 110.54
KM_PER_DEG_LON = 111.32
EARTH_RADIUS_KM = 6371.0
