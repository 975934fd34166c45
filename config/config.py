"""
Configuration for the trading analysis pipeline.
YAML file values are loaded first; environment variables (via .env) may override them.
"""

import os
import yaml
import logging
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from dotenv import load_dotenv


@dataclass
class CacheConfig:
    """Analysis cache sizing and TTLs (seconds)"""
    max_size: int = 50
    market_hours_ttl: int = 120
    after_hours_ttl: int = 600

    # None falls back to the session-aware TTL
    price_data_ttl: Optional[int] = None
    search_ttl: int = 300

    market_open_hour: int = 9
    market_close_hour: int = 16

    # 0 disables the background sweep
    cleanup_interval: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CacheConfig':
        defaults = cls()
        return cls(
            max_size=int(data.get('max_size', defaults.max_size)),
            market_hours_ttl=int(data.get('market_hours_ttl', defaults.market_hours_ttl)),
            after_hours_ttl=int(data.get('after_hours_ttl', defaults.after_hours_ttl)),
            price_data_ttl=data.get('price_data_ttl', defaults.price_data_ttl),
            search_ttl=int(data.get('search_ttl', defaults.search_ttl)),
            market_open_hour=int(data.get('market_open_hour', defaults.market_open_hour)),
            market_close_hour=int(data.get('market_close_hour', defaults.market_close_hour)),
            cleanup_interval=int(data.get('cleanup_interval', defaults.cleanup_interval)),
        )

    @classmethod
    def from_yaml_file(cls, yaml_path: str) -> 'CacheConfig':
        """Load cache configuration from the `cache` section of a YAML file"""
        try:
            with open(yaml_path, 'r') as f:
                data = yaml.safe_load(f) or {}
            return cls.from_dict(data.get('cache', {}) or {})

        except FileNotFoundError:
            logging.error(f"Configuration file not found: {yaml_path}")
            logging.info("Using default cache configuration")
            return cls()
        except yaml.YAMLError as e:
            logging.error(f"Error parsing YAML file {yaml_path}: {e}")
            return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_size': self.max_size,
            'market_hours_ttl': self.market_hours_ttl,
            'after_hours_ttl': self.after_hours_ttl,
            'price_data_ttl': self.price_data_ttl,
            'search_ttl': self.search_ttl,
            'market_open_hour': self.market_open_hour,
            'market_close_hour': self.market_close_hour,
            'cleanup_interval': self.cleanup_interval,
        }


@dataclass
class AnalysisConfig:
    """Pipeline-wide settings"""
    min_bars: int = 20
    max_workers: int = 4
    default_timeframe: str = '1D'
    timeframes: List[str] = field(default_factory=lambda: ['1H', '4H', '1D', '1W'])
    cache: CacheConfig = field(default_factory=CacheConfig)

    console_log_level: str = 'INFO'
    file_log_level: str = 'DEBUG'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnalysisConfig':
        defaults = cls()
        analysis = data.get('analysis', {}) or {}
        logging_data = data.get('logging', {}) or {}
        return cls(
            min_bars=int(analysis.get('min_bars', defaults.min_bars)),
            max_workers=int(analysis.get('max_workers', defaults.max_workers)),
            default_timeframe=str(analysis.get('default_timeframe', defaults.default_timeframe)),
            timeframes=list(analysis.get('timeframes', defaults.timeframes)),
            cache=CacheConfig.from_dict(data.get('cache', {}) or {}),
            console_log_level=str(logging_data.get('console_level', defaults.console_log_level)),
            file_log_level=str(logging_data.get('file_level', defaults.file_log_level)),
        )

    @classmethod
    def from_yaml_file(cls, yaml_path: str) -> 'AnalysisConfig':
        """Load pipeline configuration from YAML file"""
        try:
            with open(yaml_path, 'r') as f:
                data = yaml.safe_load(f) or {}
            return cls.from_dict(data)

        except FileNotFoundError:
            logging.error(f"Configuration file not found: {yaml_path}")
            logging.info("Using default analysis configuration")
            return cls()
        except yaml.YAMLError as e:
            logging.error(f"Error parsing YAML file {yaml_path}: {e}")
            return cls()

    @classmethod
    def from_env(cls, base: Optional['AnalysisConfig'] = None) -> 'AnalysisConfig':
        """Apply ANALYSIS_* / CACHE_* / *_LOG_LEVEL environment overrides"""
        load_dotenv()
        config = base or cls()

        config.min_bars = int(os.getenv('ANALYSIS_MIN_BARS', config.min_bars))
        config.max_workers = int(os.getenv('ANALYSIS_MAX_WORKERS', config.max_workers))
        config.default_timeframe = os.getenv('ANALYSIS_DEFAULT_TIMEFRAME', config.default_timeframe)

        timeframes = os.getenv('ANALYSIS_TIMEFRAMES')
        if timeframes:
            config.timeframes = [tf.strip() for tf in timeframes.split(',') if tf.strip()]

        config.cache.max_size = int(os.getenv('CACHE_MAX_SIZE', config.cache.max_size))
        config.cache.market_hours_ttl = int(os.getenv('CACHE_MARKET_HOURS_TTL', config.cache.market_hours_ttl))
        config.cache.after_hours_ttl = int(os.getenv('CACHE_AFTER_HOURS_TTL', config.cache.after_hours_ttl))

        config.console_log_level = os.getenv('CONSOLE_LOG_LEVEL', config.console_log_level)
        config.file_log_level = os.getenv('FILE_LOG_LEVEL', config.file_log_level)
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to the same nested layout as config.yaml"""
        return {
            'analysis': {
                'min_bars': self.min_bars,
                'max_workers': self.max_workers,
                'default_timeframe': self.default_timeframe,
                'timeframes': list(self.timeframes),
            },
            'cache': self.cache.to_dict(),
            'logging': {
                'console_level': self.console_log_level,
                'file_level': self.file_log_level,
            },
        }

    def export_to_yaml(self, file_path: str) -> bool:
        """Export current configuration to YAML file"""
        try:
            with open(file_path, 'w') as f:
                yaml.dump(self.to_dict(), f, default_flow_style=False)

            logging.info(f"Configuration exported to {file_path}")
            return True

        except OSError as e:
            logging.error(f"Error exporting configuration: {e}")
            return False
