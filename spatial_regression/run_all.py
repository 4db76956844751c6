"""
Orchestrator: applied malaria-prevalence exercise.

    1. load and clean survey data
    2. non-spatial binomial GLM + residual Moran's I / correlogram / variogram
    3. geostatistical model (Matérn random effect) + residual correlogram
    4. GLM vs spatial model, k-fold CV on shared folds
    5. backward covariate selection for the spatial model

Usage:
    python -m spatial_regression.run_all --data path/or/url.csv
"""
from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

import pandas as pd

from . import config
from .backward_selection import backward_select
from .cross_validation import compare_models
from .data import add_prevalence, clean_dataset, load_dataset
from .errors import DataError, FitError, PartitionError, SelectionError
from .fitting import BinomialGLMFitter, SpatialBinomialFitter
from .folds import make_folds
from .model_spec import ModelSpec, SpatialTerm
from .semivariogram import fit_residual_variogram
from .spatial_analysis import correlogram, residual_autocorrelation

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Spatial regression of malaria prevalence")
    parser.add_argument("--data", default=str(config.MALARIA_CSV),
                        help="CSV path or URL with survey records")
    parser.add_argument("--covariates", nargs="+", default=config.CANDIDATE_COVARIATES)
    parser.add_argument("--folds", type=int, default=config.N_FOLDS)
    parser.add_argument("--floor", type=int, default=config.MIN_COVARIATES,
                        help="minimum number of covariates kept by backward selection")
    parser.add_argument("--seed", type=int, default=config.SEED)
    parser.add_argument("--nu", type=float, default=config.MATERN_NU, help="Matérn smoothness")
    parser.add_argument("--n-jobs", type=int, default=1)
    parser.add_argument("--timeout", type=float, default=None,
                        help="seconds allowed per fold fit")
    parser.add_argument("--output", type=Path, default=config.OUTPUT_DIR)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def residual_diagnostics(df: pd.DataFrame, model, name: str, output_dir: Path) -> dict:
    """Moran's I, correlogram and variogram of a fitted model's residuals."""
    resid = model.residuals("pearson")
    coords = df[[config.LAT_COL, config.LON_COL]].to_numpy(dtype=float)
    moran = residual_autocorrelation(df, resid)
    corr = correlogram(coords, resid.to_numpy())
    corr.to_csv(output_dir / f"{name}_correlogram.csv", index=False)
    variogram = fit_residual_variogram(
        df[config.LAT_COL], df[config.LON_COL], resid, name=name, output_dir=output_dir,
    )
    return {"moran": moran, "correlogram": corr, "variogram": variogram}


def generate_text_report(results: dict) -> str:
    lines = [
        "=" * 72,
        "SPATIAL REGRESSION REPORT: MALARIA PREVALENCE",
        "=" * 72,
        "",
        f"Records: {results['n_records']}   Folds: {results['n_folds']}",
        "",
    ]

    for name in ("glm", "spatial"):
        diag = results.get(f"{name}_diagnostics")
        if not diag:
            continue
        moran = diag["moran"]
        lines.append(f"{name.upper()} RESIDUALS")
        lines.append("-" * 60)
        lines.append(f"  Moran's I = {moran['I']:.4f} (z = {moran['z_score']:.2f}, "
                     f"p = {moran['p_value']:.3g}) -> {moran['autocorrelation']}")
        if diag["variogram"]:
            v = diag["variogram"]
            lines.append(f"  Variogram range = {v['range_km']:.1f} km, sill = {v['sill']:.3g}, "
                         f"nugget = {v['nugget']:.3g}")
        lines.append("  Correlogram:")
        lines.append(diag["correlogram"].to_string(index=False))
        lines.append("")

    lines.append("MODEL COMPARISON (k-fold CV, MSE of expected positives)")
    lines.append("-" * 60)
    lines.append(results["comparison"].to_string(index=False))
    lines.append("")

    lines.append("BACKWARD SELECTION SCORE BOARD")
    lines.append("-" * 60)
    lines.append(results["board"].to_frame().to_string(index=False))
    lines.append("")
    lines.append(f"Selected covariates: {list(results['board'].selected)}")
    return "\n".join(lines)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    t0 = time.time()
    args.output.mkdir(parents=True, exist_ok=True)

    print("=" * 60)
    print("Spatial regression: malaria prevalence")
    print("=" * 60)

    try:
        df = clean_dataset(load_dataset(args.data), args.covariates)
    except (FileNotFoundError, DataError) as e:
        print(f"  ✗ {e}")
        return 1
    df = add_prevalence(df)
    print(f"  Records: {len(df)}   Covariates: {args.covariates}")

    spatial_term = SpatialTerm(nu=args.nu)
    full_spec = ModelSpec(covariates=tuple(args.covariates), spatial=spatial_term)

    print("\n--- Fitting non-spatial GLM ---")
    try:
        glm = BinomialGLMFitter().fit(full_spec.without_spatial(), df)
    except FitError as e:
        print(f"  ✗ {e}")
        return 1
    glm_diag = residual_diagnostics(df, glm, "glm", args.output)
    print(f"  Residual Moran's I: {glm_diag['moran']['I']:.4f} ({glm_diag['moran']['autocorrelation']})")

    print("--- Fitting geostatistical model ---")
    fitter = SpatialBinomialFitter(nu=args.nu, seed=args.seed)
    try:
        spatial = fitter.fit(full_spec, df)
    except FitError as e:
        print(f"  ✗ {e}")
        return 1
    spatial_diag = residual_diagnostics(df, spatial, "spatial", args.output)
    print(f"  Matérn parameters: {spatial.covariance_params()}")
    print(f"  Residual Moran's I: {spatial_diag['moran']['I']:.4f} ({spatial_diag['moran']['autocorrelation']})")

    try:
        folds = make_folds(len(df), k=args.folds, seed=args.seed, strata=df["prevalence"].to_numpy())
    except PartitionError as e:
        print(f"  ✗ {e}")
        return 1

    print("--- Cross-validating GLM vs spatial model ---")
    try:
        comparison = compare_models(
            df,
            [
                ("glm", full_spec.without_spatial(), BinomialGLMFitter()),
                ("spatial", full_spec, fitter),
            ],
            folds,
            n_jobs=args.n_jobs,
            timeout=args.timeout,
        )
    except FitError as e:
        print(f"  ✗ {e}")
        return 1
    print(comparison.to_string(index=False))

    print("--- Backward covariate selection ---")
    try:
        board = backward_select(
            df,
            covariates=args.covariates,
            base_spec=ModelSpec(spatial=spatial_term),
            folds=folds,
            fitter=fitter,
            min_covariates=args.floor,
            n_jobs=args.n_jobs,
            timeout=args.timeout,
            progress=True,
        )
    except SelectionError as e:
        print(f"  ✗ Selection aborted: {e}")
        if e.board is not None and len(e.board):
            print(e.board.to_frame().to_string(index=False))
        return 1

    board.to_frame().to_csv(args.output / "score_board.csv", index=False)
    print(board.to_frame().to_string(index=False))

    results = {
        "n_records": len(df),
        "n_folds": len(folds),
        "glm_diagnostics": glm_diag,
        "spatial_diagnostics": spatial_diag,
        "comparison": comparison,
        "board": board,
    }
    report = generate_text_report(results)
    report_path = args.output / "spatial_regression_report.txt"
    report_path.write_text(report, encoding="utf-8")

    print(f"\nReport saved to: {report_path}")
    print(f"All analyses completed in {time.time() - t0:.1f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
