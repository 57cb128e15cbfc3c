"""RisqLab – Batch pipelines chaining the index and volatility engines."""

from risqlab.pipeline.tasks import (
    PipelineSummary,
    build_index_engine,
    run_asset_volatility,
    run_beta_stats,
    run_distribution_stats,
    run_index,
    run_log_returns,
    run_portfolio_volatility,
    run_sml_stats,
    run_update_all,
    run_update_volatility,
    run_value_at_risk,
)
