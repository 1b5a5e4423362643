from .concurrency import ConcurrencyLimiter
from .dispatcher import (
    JitoBlockEngineClient,
    JitoBundleSubmitter,
    RpcBroadcastSubmitter,
    SenderRelaySubmitter,
    TransactionDispatcher,
)
from .errors import (
    ConfigurationError,
    DispatchError,
    InvalidQuoteError,
    ProfitModelError,
    TransportError,
)
from .http import HttpTransport
from .jupiter import JupiterClient, resolve_jupiter_base_url
from .pipeline import AssetPipeline
from .profit import FeeModel, PriorityCostModel, ProfitModel
from .signer import load_signer, sign_transaction
from .stats import StatsAggregator, StatsSnapshot, run_stats_reporter
from .types import (
    USDC_MINT,
    DispatchResult,
    ExecutionMode,
    Opportunity,
    ProfitEstimate,
    SwapQuote,
)
from .venues import RouteFilterPolicy, normalize_venue, normalize_venues

__all__ = [
    "AssetPipeline",
    "ConcurrencyLimiter",
    "ConfigurationError",
    "DispatchError",
    "DispatchResult",
    "ExecutionMode",
    "FeeModel",
    "HttpTransport",
    "InvalidQuoteError",
    "JitoBlockEngineClient",
    "JitoBundleSubmitter",
    "JupiterClient",
    "Opportunity",
    "PriorityCostModel",
    "ProfitEstimate",
    "ProfitModel",
    "ProfitModelError",
    "RouteFilterPolicy",
    "RpcBroadcastSubmitter",
    "SenderRelaySubmitter",
    "StatsAggregator",
    "StatsSnapshot",
    "SwapQuote",
    "TransactionDispatcher",
    "TransportError",
    "USDC_MINT",
    "load_signer",
    "normalize_venue",
    "normalize_venues",
    "resolve_jupiter_base_url",
    "run_stats_reporter",
    "sign_transaction",
]
