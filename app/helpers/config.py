import json
from os import environ

import yaml
from dotenv import find_dotenv
from pydantic import ValidationError

from app.helpers.config_models.root import RootModel

_CONFIG_ENV = "CONFIG_JSON"
_CONFIG_FILE_ENV = "CONFIG_FILE"


def load_config() -> RootModel:
    """
    Load the service configuration.

    The JSON document in the `CONFIG_JSON` env wins. Otherwise, the YAML file named by the `CONFIG_FILE` env (default `config.yaml`) is searched from the working directory up.

    Raises `ValueError` if there is no configuration at all, or if it is not valid.
    """
    try:
        if _CONFIG_ENV in environ:
            return _from_env()
        return _from_file(environ.get(_CONFIG_FILE_ENV, "config.yaml"))
    except ValidationError as e:
        raise ValueError(_describe(e)) from e


def _from_env() -> RootModel:
    config = RootModel(**json.loads(environ[_CONFIG_ENV]))
    print(f'Config loaded from env "{_CONFIG_ENV}"')  # noqa: T201
    return config


def _from_file(name: str) -> RootModel:
    path = find_dotenv(
        filename=name,
        usecwd=True,
    )
    if not path:
        raise ValueError(
            f'Cannot find env "{_CONFIG_ENV}" nor config file "{name}"'
        )
    with open(path, encoding="utf-8") as f:
        config = RootModel(**(yaml.safe_load(f) or {}))
    print(f'Config loaded from file "{path}"')  # noqa: T201
    return config


def _describe(e: ValidationError) -> str:
    """
    One line per invalid value, with its location in the config.
    """
    lines = ["Config values are not valid:"]
    for i, error in enumerate(e.errors(), start=1):
        location = ".".join(str(loc) for loc in error["loc"])
        lines.append(
            f"{i}. At {location}: {error['msg']} (input value: {error['input']})"
        )
    return "\n".join(lines)


CONFIG = load_config()
