from .settings import (
    Settings,
    EmbeddingCfg,
    ProviderCfg,
    BreakerCfg,
    RetrievalCfg,
    CompressionCfg,
    DistillationCfg,
    GeneratorCfg,
    StoreCfg,
)

__all__ = [
    "Settings",
    "EmbeddingCfg",
    "ProviderCfg",
    "BreakerCfg",
    "RetrievalCfg",
    "CompressionCfg",
    "DistillationCfg",
    "GeneratorCfg",
    "StoreCfg",
]
