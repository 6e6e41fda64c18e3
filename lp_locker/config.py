"""
Configuration management for a locker deployment.
"""
import json
import os
from dataclasses import dataclass, asdict, field

from lp_locker.locker_state import ADDRESS_FIELDS

TOKEN_UNIT = 10**18


@dataclass
class ChainConfig:
    """Chain the signed calls are bound to."""
    chain_id: int = 1


@dataclass
class DatabaseConfig:
    """Database configuration."""
    path: str = "./locker_data"
    write_buffer_size: int = 64 * 1024 * 1024  # 64MB
    max_open_files: int = 1000


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class LockerParams:
    """
    Initial on-ledger parameters. Addresses are hex strings; an empty vault
    means the locker holds the rewards itself.
    """
    authority: str = ""
    utility_token: str = ""
    reward_token: str = ""
    router: str = ""
    liquidity_token: str = ""
    vault: str = ""
    lp_divisor: int = 1_000_000
    lp_to_reward_ratio: int = 10
    min_native_amount: int = TOKEN_UNIT // 100
    min_utility_amount: int = TOKEN_UNIT
    max_slippage_bps: int = 1000
    default_slippage_bps: int = 200
    rate_limit_enabled: bool = True
    min_seconds_between_tx: int = 60
    max_tx_per_block: int = 1

    def to_locker_dict(self, engine_address: bytes) -> dict:
        """Parameters in the form LockerLogic.initialize expects (no authority)."""
        data = {
            'lp_divisor': self.lp_divisor,
            'lp_to_reward_ratio': self.lp_to_reward_ratio,
            'min_native_amount': self.min_native_amount,
            'min_utility_amount': self.min_utility_amount,
            'max_slippage_bps': self.max_slippage_bps,
            'default_slippage_bps': self.default_slippage_bps,
            'rate_limit_enabled': self.rate_limit_enabled,
            'min_seconds_between_tx': self.min_seconds_between_tx,
            'max_tx_per_block': self.max_tx_per_block,
        }
        for name in ADDRESS_FIELDS:
            if name == 'authority':
                continue
            data[name] = bytes.fromhex(getattr(self, name))
        if not data['vault']:
            data['vault'] = engine_address
        return data


@dataclass
class Config:
    """Main configuration."""
    chain: ChainConfig = field(default_factory=ChainConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    locker: LockerParams = field(default_factory=LockerParams)

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            chain=ChainConfig(),
            database=DatabaseConfig(),
            monitoring=MonitoringConfig(),
            locker=LockerParams(),
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            chain=ChainConfig(**data.get('chain', {})),
            database=DatabaseConfig(**data.get('database', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {})),
            locker=LockerParams(**data.get('locker', {})),
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'chain': asdict(self.chain),
            'database': asdict(self.database),
            'monitoring': asdict(self.monitoring),
            'locker': asdict(self.locker),
        }
