#!/usr/bin/env python3
"""
CLI entry point for the tract income pipeline.

Runs the complete pipeline:
1. Load and validate the tract table
2. Normalize counts to population proportions
3. Derive log and composite columns
4. Screen correlations
5. Run stepwise model selection
6. Print coefficient table, diagnostics and selection trace

Usage:
    python -m tract_income.run DATA [--response COL] [--tau T] [--rho R]
"""

import argparse
import logging
import sys
from dataclasses import replace

from .config import get_config
from .errors import PipelineError
from .pipeline import DEFAULT_PREDICTORS, run_selection_pipeline


def setup_logging(verbose: bool = True):
    """Set up logging configuration."""
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Census tract median income regression with stepwise selection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tract_income.run data/tracts.csv
  python -m tract_income.run data/tracts.pkl --tau 0.01 --rho 0.7
  python -m tract_income.run data/tracts.csv --predictors bachelors graduate poc
        """
    )
    parser.add_argument("data", nargs="?", help="Tract table (.csv or .pkl); defaults to TRACT_DATA_PATH")
    parser.add_argument("--response", default=None, help="Response column (default: log of RESPONSE_COL)")
    parser.add_argument("--predictors", nargs="+", help="Initial candidate predictors")
    parser.add_argument("--tau", type=float, help="Significance threshold for dropping predictors")
    parser.add_argument("--rho", type=float, help="Correlation threshold for merging predictors")
    parser.add_argument("--no-transforms", action="store_true", help="Never log-transform predictors")
    parser.add_argument("--allow-extra", action="store_true", help="Accept columns outside the tract schema")
    parser.add_argument("--quiet", action="store_true", help="Reduce logging verbosity")
    return parser


def main(argv=None):
    """Main entry point for the pipeline."""
    args = build_parser().parse_args(argv)

    config = get_config()
    overrides = {}
    if args.tau is not None:
        overrides["significance_threshold"] = args.tau
    if args.rho is not None:
        overrides["correlation_threshold"] = args.rho
    if args.no_transforms:
        overrides["allow_transforms"] = False
    config = replace(config, **overrides)

    setup_logging(verbose=config.verbose and not args.quiet)
    logger = logging.getLogger(__name__)

    data = args.data or config.data_path
    if not data:
        logger.error("❌ No input table given and TRACT_DATA_PATH is not set")
        return 1

    logger.info("Significance threshold (tau): %s", config.significance_threshold)
    logger.info("Correlation threshold (rho): %s", config.correlation_threshold)

    try:
        results = run_selection_pipeline(
            data,
            predictors=args.predictors or DEFAULT_PREDICTORS,
            response_col=args.response,
            config=config,
            allow_extra=args.allow_extra,
        )
    except PipelineError as e:
        logger.error("❌ Pipeline failed: %s", e)
        trace = getattr(e, "trace", None)
        if trace is not None and len(trace):
            print(trace.to_frame().to_string(index=False))
        return 1

    model = results["model"]
    print("\n" + "=" * 80)
    print(f"FINAL MODEL: {model.response} ~ {' + '.join(model.predictors)}")
    print("=" * 80)
    print(f"n = {model.nobs} (excluded {model.n_excluded})   "
          f"R² = {model.rsquared:.4f}   adj. R² = {model.rsquared_adj:.4f}")
    print()
    print(results["coef_table"].drop(columns=["Abs_Coef"]).to_string(index=False))

    diag = results["diagnostics"]
    print("\nDiagnostics:")
    print(f"  Breusch-Pagan  LM={diag['breusch_pagan'][0]:.3f}  p={diag['breusch_pagan'][1]:.4f}")
    print(f"  Jarque-Bera    JB={diag['jarque_bera'][0]:.3f}  p={diag['jarque_bera'][1]:.4f}")
    print(f"  RESET          F={diag['reset'][0]:.3f}  p={diag['reset'][1]:.4f}")

    print("\nSelection trace:")
    trace = results["trace"]
    print(trace.to_string(index=False) if not trace.empty else "  (no transitions)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
