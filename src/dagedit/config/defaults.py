"""
dagedit.config.defaults - Built-in configuration values
"""

from typing import Any, Dict

CONFIG_FILENAME = ".dagedit.toml"

ENV_PREFIX = "DAGEDIT_"

DEFAULT_CONFIG: Dict[str, Any] = {
    "validation": {
        "allow_cycles": False,
        "allow_self_loops": False,
        "max_depth": 0,  # 0 = unlimited
        "max_children": 0,  # 0 = unlimited
    },
    "multi_parent": {
        "max_parents": 0,  # 0 = unlimited
    },
    "history": {
        "enabled": True,
        "max_stack_size": 50,
    },
    "layout": {
        "seed_offset_x": 150.0,
        "seed_offset_y": 0.0,
        "root_seed_offset_y": 50.0,
    },
    "ids": {
        "prefix": "node",
    },
}
