import json
from pathlib import Path


DEFAULT_CONFIG = {
    "long_lived_token_seconds": 24 * 60 * 60,  # 24 hours
    "symmetric_algorithms": ["HS256", "HS384", "HS512"],
    "url_display_length": 80,
    "report_missing_samesite": True,
    "finding_sample_size": 3,
    "max_key_endpoints": 10,
}

_EXPECTED_TYPES = {
    "long_lived_token_seconds": int,
    "symmetric_algorithms": list,
    "url_display_length": int,
    "report_missing_samesite": bool,
    "finding_sample_size": int,
    "max_key_endpoints": int,
}


def make_config(overrides=None):
    """
    Defaults merged with overrides. Known keys are type-checked; unknown
    keys are kept as given.
    """
    config = DEFAULT_CONFIG.copy()
    config["symmetric_algorithms"] = list(DEFAULT_CONFIG["symmetric_algorithms"])

    for key, value in (overrides or {}).items():
        expected = _EXPECTED_TYPES.get(key)
        if expected is not None and not _has_type(value, expected):
            raise ValueError(
                "Config key '{}' must be of type {}".format(key, expected.__name__)
            )
        config[key] = value

    return config


def load_config(path):
    """
    Load a JSON config file on top of DEFAULT_CONFIG.
    If no path is given, just return the defaults.
    """
    if path is None:
        return make_config()

    cfg_path = Path(path)

    if not cfg_path.is_file():
        raise FileNotFoundError("Config file not found: {}".format(cfg_path))

    with cfg_path.open("r", encoding="utf-8") as f:
        user_cfg = json.load(f)

    if not isinstance(user_cfg, dict):
        raise ValueError("Config file must contain a JSON object at the root")

    return make_config(user_cfg)


def _has_type(value, expected):
    # bool is an int subclass; keep the two apart
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, expected)
