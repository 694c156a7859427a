"""
Configuration Management

Handles loading discovery configuration from environment variables and
config files.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from .backoff import EAGER_INTERVAL, LAZY_INTERVAL
from .domains import DEFAULT_DOMAIN
from .local.multicast import MULTICAST_GROUP, MULTICAST_PORT

DEFAULT_BOOTSTRAP_PORT = 49737
DEFAULT_BOOTSTRAP: List[Tuple[str, int]] = [
    ('bootstrap1.hyperdht.org', DEFAULT_BOOTSTRAP_PORT),
    ('bootstrap2.hyperdht.org', DEFAULT_BOOTSTRAP_PORT),
    ('bootstrap3.hyperdht.org', DEFAULT_BOOTSTRAP_PORT),
]


def parse_node(node: str) -> Tuple[str, int]:
    """Parse 'host:port' (or bare 'host') into a bootstrap address."""
    node = node.strip()
    if ':' not in node:
        return (node, DEFAULT_BOOTSTRAP_PORT)
    host, port = node.rsplit(':', 1)
    return (host, int(port))


@dataclass
class DiscoveryConfig:
    """
    Discovery Session Configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (SWARM_*)
    2. Config file (JSON)
    3. Default values
    """
    # Local channel name suffix
    domain: str = DEFAULT_DOMAIN

    # Global channel
    bootstrap: List[Tuple[str, int]] = field(default_factory=lambda: list(DEFAULT_BOOTSTRAP))
    ephemeral: bool = True

    # Retry intervals (seconds, low/high)
    eager_interval: Tuple[float, float] = EAGER_INTERVAL
    lazy_interval: Tuple[float, float] = LAZY_INTERVAL

    # Multicast
    multicast_group: str = MULTICAST_GROUP
    multicast_port: int = MULTICAST_PORT

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'DiscoveryConfig':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()
        config.domain = os.getenv('SWARM_DOMAIN', config.domain)

        # Set but empty means "no bootstrap nodes"
        bootstrap = os.getenv('SWARM_BOOTSTRAP')
        if bootstrap is not None:
            config.bootstrap = []
            for node in bootstrap.split(','):
                if not node.strip():
                    continue
                try:
                    config.bootstrap.append(parse_node(node))
                except ValueError:
                    pass

        config.ephemeral = os.getenv('SWARM_EPHEMERAL', 'true').lower() != 'false'
        config.multicast_group = os.getenv('SWARM_MULTICAST_GROUP', config.multicast_group)
        config.multicast_port = int(os.getenv('SWARM_MULTICAST_PORT', config.multicast_port))
        config.log_level = os.getenv('SWARM_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'DiscoveryConfig':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()
        config.domain = data.get('domain', config.domain)
        if 'bootstrap' in data:
            config.bootstrap = [
                (node['host'], node.get('port', DEFAULT_BOOTSTRAP_PORT))
                for node in data['bootstrap']
            ]
        config.ephemeral = data.get('ephemeral', config.ephemeral)
        if 'eager_interval' in data:
            config.eager_interval = tuple(data['eager_interval'])
        if 'lazy_interval' in data:
            config.lazy_interval = tuple(data['lazy_interval'])
        config.multicast_group = data.get('multicast_group', config.multicast_group)
        config.multicast_port = data.get('multicast_port', config.multicast_port)
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'domain': self.domain,
            'bootstrap': [{'host': h, 'port': p} for h, p in self.bootstrap],
            'ephemeral': self.ephemeral,
            'eager_interval': list(self.eager_interval),
            'lazy_interval': list(self.lazy_interval),
            'multicast_group': self.multicast_group,
            'multicast_port': self.multicast_port,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> DiscoveryConfig:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    config = DiscoveryConfig()
    if config_path and config_path.exists():
        config = DiscoveryConfig.from_file(config_path)

    env_config = DiscoveryConfig.from_env()
    defaults = DiscoveryConfig()

    for key in ['domain', 'ephemeral', 'multicast_group', 'multicast_port', 'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    # An explicit SWARM_BOOTSTRAP replaces the list, even when empty
    if os.getenv('SWARM_BOOTSTRAP') is not None:
        config.bootstrap = env_config.bootstrap

    return config
