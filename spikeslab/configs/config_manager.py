# Copyright 2025 NeuroBM Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Configuration management for spikeslab models.

This module loads, validates, merges and saves model configurations and
builds models from them.

Features:
- YAML and JSON configuration files
- Dot-notation overrides
- ${ENV_VAR} / ${ENV_VAR:default} substitution
- jsonschema validation
- Model construction through the energy model registry
- Logging setup

Usage:
    from spikeslab.configs import ConfigManager

    config = ConfigManager.load('experiments/base.yaml',
                                overrides={'model.n_hidden': 64})
    ConfigManager.setup_logging(config)
    model = ConfigManager.build_model(config)
"""

import yaml
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Any, Optional, Union
import copy
import os
from datetime import datetime
from jsonschema import validate, ValidationError

from ..models.base import EnergyModel, build_energy_model
from ..models.init_rules import SpikeSlabInitialization, get_initialization_rule

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class ConfigManager:
    """Configuration management for spike-and-slab RBMs."""

    CONFIG_SCHEMA = {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "description": {"type": "string"},
            "version": {"type": "string"},
            "model": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": ["spike_slab"]},
                    "n_visible": {"type": "integer", "minimum": 1},
                    "n_hidden": {"type": "integer", "minimum": 1},
                    "pool_size": {"type": "integer", "minimum": 1},
                    "slab_penalty": {"type": "number", "exclusiveMinimum": 0},
                    "radius": {"type": "number", "exclusiveMinimum": 0},
                    "batch_size": {"type": "integer", "minimum": 1},
                    "random_seed": {"type": ["integer", "null"]},
                    "on_sampling_failure": {
                        "type": "string",
                        "enum": ["warn", "raise", "project"]
                    }
                },
                "required": ["type", "n_visible", "n_hidden"],
                "additionalProperties": False
            },
            "initialization": {
                "type": "object",
                "properties": {
                    "rule": {
                        "type": "string",
                        "enum": ["zero", "constant", "gaussian", "xavier"]
                    },
                    "args": {"type": "object"},
                    "spike_bias": {"type": "number"},
                    "visible_penalty": {"type": "number", "exclusiveMinimum": 0}
                },
                "required": ["rule"]
            },
            "logging": {
                "type": "object",
                "properties": {
                    "level": {
                        "type": "string",
                        "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
                    },
                    "file": {"type": "string"}
                }
            }
        },
        "required": ["name", "model"]
    }

    @classmethod
    def load(
        cls,
        config_path: Union[str, Path],
        overrides: Optional[Dict[str, Any]] = None,
        validate_config: bool = True
    ) -> Dict[str, Any]:
        """
        Load configuration with optional overrides.

        Args:
            config_path: Path to configuration file
            overrides: Dictionary of dot-notation parameter overrides
            validate_config: Whether to validate the configuration

        Returns:
            Loaded and processed configuration dictionary
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                config = yaml.safe_load(f)
            elif config_path.suffix.lower() == '.json':
                config = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {config_path.suffix}")

        logger.info(f"Loaded base configuration from {config_path}")

        if overrides:
            config = cls._apply_overrides(config, overrides)
            logger.info(f"Applied {len(overrides)} parameter overrides")

        config = cls._substitute_env_vars(config)

        if validate_config:
            cls.validate(config)

        config['_metadata'] = {
            'loaded_from': str(config_path),
            'loaded_at': datetime.now().isoformat(),
            'overrides_applied': overrides is not None
        }

        return config

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration against schema.

        Raises:
            ValidationError: If configuration is invalid
        """
        try:
            validate(instance=config, schema=cls.CONFIG_SCHEMA)
            logger.info("Configuration validation passed")
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e.message}")
            raise

    @classmethod
    def save(
        cls,
        config: Dict[str, Any],
        output_path: Union[str, Path],
        format: str = 'yaml',
        include_metadata: bool = True
    ) -> None:
        """
        Save configuration to file.

        Args:
            config: Configuration dictionary to save
            output_path: Output file path
            format: Output format ('yaml' or 'json')
            include_metadata: Whether to include metadata in output
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        save_config = copy.deepcopy(config)

        if not include_metadata and '_metadata' in save_config:
            del save_config['_metadata']

        with open(output_path, 'w') as f:
            if format.lower() == 'yaml':
                yaml.dump(save_config, f, default_flow_style=False, indent=2)
            elif format.lower() == 'json':
                json.dump(save_config, f, indent=2)
            else:
                raise ValueError(f"Unsupported format: {format}")

        logger.info(f"Saved configuration to {output_path}")

    @classmethod
    def merge(cls, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """Merge multiple configurations, later ones winning."""
        if not configs:
            return {}

        result = copy.deepcopy(configs[0])

        for config in configs[1:]:
            result = cls._deep_merge(result, config)

        return result

    @classmethod
    def diff(cls, config1: Dict[str, Any], config2: Dict[str, Any]) -> Dict[str, Any]:
        """
        Compare two configurations.

        Returns:
            Dictionary with 'added', 'removed' and 'changed' entries keyed by
            dotted path
        """
        differences = {
            'added': {},
            'removed': {},
            'changed': {}
        }

        cls._find_differences(config1, config2, differences, '')

        return differences

    @classmethod
    def generate_template(
        cls,
        template_name: str,
        output_dir: Union[str, Path] = 'experiments'
    ) -> Path:
        """
        Write a default configuration template.

        Args:
            template_name: Name for the template
            output_dir: Directory to save template

        Returns:
            Path to generated template
        """
        template = cls._create_default_template()
        template['name'] = template_name
        template['description'] = f"Configuration template for {template_name}"

        output_path = Path(output_dir) / f"{template_name}.yaml"
        cls.save(template, output_path, include_metadata=False)

        logger.info(f"Generated template: {output_path}")
        return output_path

    @classmethod
    def build_model(cls, config: Dict[str, Any]) -> EnergyModel:
        """
        Construct the configured model.

        The ``initialization`` section picks a base rule for the whole
        buffer; spike bias and visible penalty are then set explicitly.
        """
        model_config = copy.deepcopy(config['model'])
        kind = model_config.pop('type')

        init_config = config.get('initialization')
        if init_config is not None:
            args = dict(init_config.get('args', {}))
            if init_config['rule'] == 'xavier':
                args.setdefault('fan_in', model_config['n_visible'] * model_config.get('pool_size', 2))
                args.setdefault('fan_out', model_config['n_hidden'])
            base = get_initialization_rule(init_config['rule'], **args)
            model_config['initialization'] = SpikeSlabInitialization(
                base,
                n_hidden=model_config['n_hidden'],
                spike_bias=init_config.get('spike_bias', 0.0),
                visible_penalty=init_config.get('visible_penalty', 1.0)
            )

        model = build_energy_model(kind, **model_config)
        logger.info(f"Built model from configuration '{config.get('name', 'unnamed')}': {model!r}")
        return model

    @staticmethod
    def setup_logging(config: Dict[str, Any]) -> None:
        """Configure root logging from the ``logging`` section."""
        log_config = config.get('logging', {})
        level = getattr(logging, log_config.get('level', 'INFO'))

        handlers = [logging.StreamHandler(sys.stdout)]
        if log_config.get('file'):
            handlers.append(logging.FileHandler(log_config['file']))

        logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)

    @staticmethod
    def _apply_overrides(config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Apply parameter overrides using dot notation."""
        result = copy.deepcopy(config)

        for key, value in overrides.items():
            ConfigManager._set_nested_value(result, key, value)

        return result

    @staticmethod
    def _substitute_env_vars(config: Dict[str, Any]) -> Dict[str, Any]:
        """Substitute environment variables in configuration values."""
        def substitute_recursive(obj):
            if isinstance(obj, dict):
                return {k: substitute_recursive(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [substitute_recursive(item) for item in obj]
            elif isinstance(obj, str) and obj.startswith('${') and obj.endswith('}'):
                env_var = obj[2:-1]
                default_value = None
                if ':' in env_var:
                    env_var, default_value = env_var.split(':', 1)
                return os.getenv(env_var, default_value)
            else:
                return obj

        return substitute_recursive(config)

    @staticmethod
    def _deep_merge(dict1: Dict[str, Any], dict2: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = copy.deepcopy(dict1)

        for key, value in dict2.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)

        return result

    @staticmethod
    def _set_nested_value(config: Dict[str, Any], key_path: str, value: Any) -> None:
        """Set nested value using dot notation."""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    @staticmethod
    def _find_differences(dict1: Dict[str, Any], dict2: Dict[str, Any],
                          differences: Dict[str, Any], path: str) -> None:
        """Recursively find differences between dictionaries."""
        for key in dict1.keys() | dict2.keys():
            key_path = f"{path}.{key}" if path else str(key)

            if key not in dict2:
                differences['removed'][key_path] = dict1[key]
            elif key not in dict1:
                differences['added'][key_path] = dict2[key]
            elif isinstance(dict1[key], dict) and isinstance(dict2[key], dict):
                ConfigManager._find_differences(dict1[key], dict2[key], differences, key_path)
            elif dict1[key] != dict2[key]:
                differences['changed'][key_path] = {'old': dict1[key], 'new': dict2[key]}

    @staticmethod
    def _create_default_template() -> Dict[str, Any]:
        """Create a default configuration template."""
        return {
            "name": "template",
            "description": "Default configuration template",
            "version": "1.0",
            "model": {
                "type": "spike_slab",
                "n_visible": 16,
                "n_hidden": 8,
                "pool_size": 2,
                "slab_penalty": 8.0,
                "radius": 10.0,
                "batch_size": 32,
                "random_seed": 42,
                "on_sampling_failure": "warn"
            },
            "initialization": {
                "rule": "gaussian",
                "args": {"mean": 0.0, "std": 0.1, "random_seed": 42},
                "spike_bias": 0.0,
                "visible_penalty": 1.0
            },
            "logging": {
                "level": "INFO"
            }
        }


def load_config(config_path: str, **kwargs) -> Dict[str, Any]:
    """Convenience function to load configuration."""
    return ConfigManager.load(config_path, **kwargs)


def validate_config(config: Dict[str, Any]) -> None:
    """Convenience function to validate configuration."""
    ConfigManager.validate(config)


def save_config(config: Dict[str, Any], output_path: str, **kwargs) -> None:
    """Convenience function to save configuration."""
    ConfigManager.save(config, output_path, **kwargs)
