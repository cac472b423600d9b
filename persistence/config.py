"""
Persistence configuration.
"""

from dataclasses import dataclass


@dataclass
class PersistenceConfig:
    """Where and how trained weights are mirrored"""
    enabled: bool = True
    backend: str = "memory"          # memory | file | redis
    path: str = "models"             # file backend directory
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "football_ai"
    queue_size: int = 256            # outbound requests before dropping
    version: int = 1                 # model version saved and loaded
    warm_start: bool = True          # load stored weights at spawn

    # Historical examples: successful (input, target) pairs kept per team/role
    historical_training: bool = True
    history_limit: int = 200         # examples kept and loaded per team/role
    history_batch: int = 20          # newest successful examples sent per save
    min_history_examples: int = 5
