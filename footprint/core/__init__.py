"""Browser-session orchestration and network telemetry for page emissions analysis."""

from footprint.core.analysis_cache import AnalysisCache, NullAnalysisCache, SqliteAnalysisCache, fingerprint
from footprint.core.behavior_simulator import BehaviorSimulator
from footprint.core.config import (
    DEVICE_PROFILES,
    AnalysisOptions,
    DeviceProfile,
    DeviceType,
    EngineSettings,
    InteractionLevel,
    create_analysis_options,
    estimate_duration_ms,
    normalize_url,
    validate_options,
)
from footprint.core.element_discovery import DiscoveryConfig, ElementDiscovery, InteractiveElements
from footprint.core.emissions import GreenHostingClient, bytes_to_co2e
from footprint.core.errors import (
    AnalysisError,
    CacheError,
    FootprintError,
    InteractionFailure,
    LaunchFailure,
    NavigationFailure,
    PageCreationFailure,
    ValidationError,
)
from footprint.core.interaction_engine import InteractionEngine, Strategy, strategy_order
from footprint.core.models import (
    AnalysisResult,
    BehaviorReport,
    ElementDescriptor,
    InteractionOutcome,
    ResourceRecord,
    ResourceState,
    ResourceTally,
    ResourceType,
)
from footprint.core.network_monitor import IdleWaitResult, NetworkActivityMonitor
from footprint.core.page_analyzer import PageAnalyzer
from footprint.core.resource_classifier import classify, classify_resource
from footprint.core.session_manager import Session, SessionManager
from footprint.core.user_simulator import SimulationConfig, SimulationResult, UserSimulator

__all__ = [
    "AnalysisCache",
    "AnalysisError",
    "AnalysisOptions",
    "AnalysisResult",
    "BehaviorReport",
    "BehaviorSimulator",
    "CacheError",
    "DEVICE_PROFILES",
    "DeviceProfile",
    "DeviceType",
    "DiscoveryConfig",
    "ElementDescriptor",
    "ElementDiscovery",
    "EngineSettings",
    "FootprintError",
    "GreenHostingClient",
    "IdleWaitResult",
    "InteractionEngine",
    "InteractionFailure",
    "InteractionLevel",
    "InteractionOutcome",
    "InteractiveElements",
    "LaunchFailure",
    "NavigationFailure",
    "NetworkActivityMonitor",
    "NullAnalysisCache",
    "PageAnalyzer",
    "PageCreationFailure",
    "ResourceRecord",
    "ResourceState",
    "ResourceTally",
    "ResourceType",
    "Session",
    "SessionManager",
    "SimulationConfig",
    "SimulationResult",
    "SqliteAnalysisCache",
    "Strategy",
    "UserSimulator",
    "ValidationError",
    "bytes_to_co2e",
    "classify",
    "classify_resource",
    "create_analysis_options",
    "estimate_duration_ms",
    "fingerprint",
    "normalize_url",
    "strategy_order",
    "validate_options",
]
