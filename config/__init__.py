from .base import MAX_BATCH_SIZE, Config, DevelopmentConfig, ProductionConfig, TestingConfig

__all__ = [
    "Config",
    "DevelopmentConfig",
    "MAX_BATCH_SIZE",
    "ProductionConfig",
    "TestingConfig",
]
