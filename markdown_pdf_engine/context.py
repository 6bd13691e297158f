"""
Process-wide conversion context.

Everything that is built once and shared by concurrent conversions lives
here: the template registry, the capability verdicts, the engine pool, the
strategy instances and the logger.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from .config import Config
from .controller import DegradationController, TimeoutPolicy
from .dependencies import EnvironmentCapabilities, detect_capabilities
from .engines import (
    CanvasStrategy,
    ChromiumStrategy,
    RemoteServiceStrategy,
    RenderStrategy,
    StrategyKind,
    WeasyPrintStrategy,
)
from .logger import ConsoleLogger
from .pool import BackpressurePolicy, EnginePool
from .templates import TemplateRegistry


def default_strategies(config: Config, logger: ConsoleLogger) -> Dict[StrategyKind, RenderStrategy]:
    remote_timeout_ms = config.get_remote_timeout_ms()
    return {
        StrategyKind.FULL: ChromiumStrategy(config.get_chromium_executable(), logger=logger),
        StrategyKind.CONSTRAINED: WeasyPrintStrategy(logger=logger),
        StrategyKind.REMOTE: RemoteServiceStrategy(
            config.get_remote_url(),
            max_timeout=remote_timeout_ms / 1000 if remote_timeout_ms else None,
            logger=logger,
        ),
        StrategyKind.MINIMAL: CanvasStrategy(logger=logger),
    }


def pool_limits(config: Config) -> Dict[StrategyKind, Optional[int]]:
    """Engine slots per tier; the canvas renderer holds no external resource."""
    return {
        StrategyKind.FULL: config.get_max_concurrent_engines(),
        StrategyKind.CONSTRAINED: config.get_max_concurrent_engines(),
        StrategyKind.REMOTE: config.get_remote_max_connections(),
        StrategyKind.MINIMAL: None,
    }


@dataclass
class ConversionContext:
    config: Config
    registry: TemplateRegistry
    capabilities: EnvironmentCapabilities
    pool: EnginePool
    strategies: Mapping[StrategyKind, RenderStrategy]
    logger: ConsoleLogger
    controller: DegradationController

    @classmethod
    def create(
        cls,
        config: Optional[Config] = None,
        capabilities: Optional[EnvironmentCapabilities] = None,
        strategies: Optional[Mapping[StrategyKind, RenderStrategy]] = None,
        logger: Optional[ConsoleLogger] = None,
        registry: Optional[TemplateRegistry] = None,
    ) -> "ConversionContext":
        """Build the shared context once per process.

        Capabilities and strategies are probed and constructed from the config
        unless given; tests inject both.
        """
        config = config or Config()
        logger = logger or ConsoleLogger(debug=config.get_debug())
        if capabilities is None:
            capabilities = detect_capabilities(config, logger)
        if strategies is None:
            strategies = default_strategies(config, logger)
        pool = EnginePool(
            pool_limits(config),
            policy=BackpressurePolicy(config.get_backpressure()),
            acquire_timeout=config.get_acquire_timeout_ms() / 1000,
            lease_ttl=config.get_lease_ttl_ms() / 1000,
            logger=logger,
        )
        controller = DegradationController(
            strategies,
            pool,
            capabilities,
            timeout_policy=TimeoutPolicy(config.get_timeout_policy()),
            minimal_reserve=config.get_minimal_reserve_ms() / 1000,
            logger=logger,
        )
        return cls(
            config=config,
            registry=registry or TemplateRegistry.default(),
            capabilities=capabilities,
            pool=pool,
            strategies=dict(strategies),
            logger=logger,
            controller=controller,
        )
