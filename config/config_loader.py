# config/config_loader.py
"""
Config loader module for modular YAML configuration.

One file per concern under the config directory. Missing files fall back to
built-in defaults; a missing breakers.yml is written out with the default
master + two load breaker layout so it can be edited.
"""

from pathlib import Path

import yaml

DEFAULT_MAX_THRESHOLD = 5.0
DEFAULT_MIN_THRESHOLD = 0.10


class ConfigLoader:
    """Loads and merges modular configuration files."""

    def __init__(self, config_dir="config"):
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def _read(self, filename):
        """Parse one YAML file, or None if it does not exist."""
        path = self.config_dir / filename
        if not path.exists():
            return None
        with open(path) as f:
            return yaml.safe_load(f) or {}

    def load_all(self):
        """Load all configuration files and merge them."""
        config = {}

        # Breaker table (ordered, master first)
        breakers_data = self._read("breakers.yml")
        if breakers_data is not None:
            config["breakers"] = breakers_data.get("breakers", [])
        else:
            config["breakers"] = self._create_default_breakers()
            self._save_breakers(config["breakers"])

        # Protocol revision
        protocol_data = self._read("protocol.yml")
        if protocol_data is not None:
            protocol = protocol_data.get("protocol", {})
            config["protocol"] = {
                "profile": protocol.get("profile", "text_v2_grace"),
                "load_slots": protocol.get("load_slots"),
                "max_line_length": protocol.get("max_line_length", 1024),
            }
        else:
            config["protocol"] = {
                "profile": "text_v2_grace",
                "load_slots": None,
                "max_line_length": 1024,
            }

        # Device bridge connection
        connection_data = self._read("connection.yml")
        if connection_data is not None:
            connection = connection_data.get("connection", {})
            config["connection"] = {
                "host": connection.get("host", "127.0.0.1"),
                "port": connection.get("port", 7000),
                "connect_timeout": connection.get("connect_timeout", 5.0),
                "read_size": connection.get("read_size", 4096),
            }
        else:
            config["connection"] = {
                "host": "127.0.0.1",
                "port": 7000,
                "connect_timeout": 5.0,
                "read_size": 4096,
            }

        # History store
        history_data = self._read("history.yml")
        if history_data is not None:
            history = history_data.get("history", {})
            config["history"] = {
                "path": history.get("path", "data/breaker_history.json"),
                "max_bytes": history.get("max_bytes", 5 * 1024 * 1024),
            }
        else:
            config["history"] = {
                "path": "data/breaker_history.json",
                "max_bytes": 5 * 1024 * 1024,
            }

        # Synthetic telemetry
        simulation_data = self._read("simulation.yml")
        if simulation_data is not None:
            simulation = simulation_data.get("simulation", {})
            config["simulation"] = {
                "interval": simulation.get("interval", 1.0),
                "seed": simulation.get("seed"),
                "fault_probability": simulation.get("fault_probability", 0.02),
                "nominal_current": simulation.get("nominal_current", 1.0),
                "supply_voltage": simulation.get("supply_voltage", 12.0),
            }
        else:
            config["simulation"] = {
                "interval": 1.0,
                "seed": None,
                "fault_probability": 0.02,
                "nominal_current": 1.0,
                "supply_voltage": 12.0,
            }

        # Logging
        logging_data = self._read("logging.yml")
        if logging_data is not None:
            logging_cfg = logging_data.get("logging", {})
            config["logging"] = {
                "log_dir": logging_cfg.get("log_dir"),
                "level": logging_cfg.get("level", "INFO"),
            }
        else:
            config["logging"] = {"log_dir": None, "level": "INFO"}

        return config

    def _create_default_breakers(self):
        """Create default breaker configuration."""
        return [
            {
                "id": "overall",
                "name": "Main Breaker",
                "overall": True,
            },
            {
                "id": "load1",
                "name": "Load 1",
                "max_threshold": DEFAULT_MAX_THRESHOLD,
                "min_threshold": DEFAULT_MIN_THRESHOLD,
                "calibration_offset": 0.0,
            },
            {
                "id": "load2",
                "name": "Load 2",
                "max_threshold": DEFAULT_MAX_THRESHOLD,
                "min_threshold": DEFAULT_MIN_THRESHOLD,
                "calibration_offset": 0.0,
            },
        ]

    def _save_breakers(self, breakers):
        """Save breaker configuration to file."""
        breakers_path = self.config_dir / "breakers.yml"
        with open(breakers_path, "w") as f:
            yaml.dump({"breakers": breakers}, f, default_flow_style=False, sort_keys=False)
        print(f"[INFO] Created default breakers config at {breakers_path}")
