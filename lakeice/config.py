"""Configuration schema and loader for the LakeIce model.

The configuration is constructed once at startup and passed explicitly to the
model. There are no process-wide option, debug or filename structures.
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from lakeice.workflows.methods import multi_level_merge


class IceMeltConfig(BaseModel):
    """Tunable parameters of the lake snow/ice melt solver."""

    model_config = ConfigDict(extra="forbid")

    snow_dt_C: float = Field(
        5.0,
        gt=0,
        description="Offset below the previous surface temperature used as the lower bound of the surface temperature search (°C).",
    )
    liquid_water_capacity: float = Field(
        0.035,
        ge=0,
        description="Maximum liquid water held in the surface layer as a fraction of its ice content (-).",
    )
    snow_density_kg_per_m3: float = Field(
        250.0, gt=0, description="Density of snow on lake ice (kg/m3)."
    )
    root_max_bracket_tries: int = Field(
        150,
        ge=0,
        description="Number of times the lower bound is moved down to bracket the surface temperature.",
    )
    root_bracket_step_C: float = Field(
        10.0, gt=0, description="Step by which the lower bound is moved down (°C)."
    )
    root_max_iterations: int = Field(
        1000, gt=0, description="Maximum number of Brent iterations."
    )
    root_tolerance_C: float = Field(
        1e-6, gt=0, description="Absolute tolerance on the surface temperature (°C)."
    )


class OptionsConfig(BaseModel):
    """Model options relevant to the lake snow/ice model."""

    model_config = ConfigDict(extra="forbid")

    blowing: bool = Field(
        False, description="Whether to calculate sublimation from blowing snow."
    )
    snow_step_hours: int = Field(
        1, gt=0, description="Timestep of the snow/ice model (hours)."
    )

    @field_validator("blowing")
    @classmethod
    def blowing_snow_not_implemented(cls, value: bool) -> bool:
        """Reject blowing snow, which is not implemented for lake ice.

        Args:
            value: The configured value.

        Returns:
            The value, if it is False.

        Raises:
            ValueError: If blowing snow is requested.
        """
        if value:
            raise ValueError("Blowing snow sublimation is not implemented for lake ice.")
        return value


class DebugConfig(BaseModel):
    """Debugging flags."""

    model_config = ConfigDict(extra="forbid")

    debug: bool = Field(False, description="Turn on all debugging.")
    prt_lake: bool = Field(
        False, description="Log the lake ice state of every cell after each step."
    )
    prt_balance: bool = Field(
        False, description="Check the water balance of every step."
    )
    mass_balance_tolerance_m: float = Field(
        1e-9, gt=0, description="Tolerance of the water balance check (m)."
    )
    debug_dir: Path = Field(Path("./"), description="Directory for debug output.")


class ModelConfig(BaseModel):
    """Full configuration of the LakeIce model."""

    model_config = ConfigDict(extra="forbid")

    ice_melt: IceMeltConfig = Field(default_factory=IceMeltConfig)
    options: OptionsConfig = Field(default_factory=OptionsConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)
    on_non_convergence: Literal["exit", "raise", "skip"] = Field(
        "exit",
        description="What to do when the surface temperature cannot be solved for a cell: terminate the run, raise an error, or skip the cell for this timestep.",
    )


class DetectDuplicateKeysYamlLoader(yaml.SafeLoader):
    """Custom YAML loader that detects duplicate keys in mappings.

    Raises:
        ValueError: If a duplicate key is found in the YAML mapping.
    """

    def construct_mapping(
        self, node: yaml.nodes.MappingNode, deep: bool = False
    ) -> dict:
        """Construct a mapping from a YAML node, checking for duplicate keys.

        Args:
            node: The YAML node to construct the mapping from.
            deep: Whether to perform a deep construction of the mapping. Defaults to False.

        Raises:
            ValueError: If a duplicate key is found in the YAML mapping.

        Returns:
            dict: The constructed mapping.
        """
        mapping = {}
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in mapping:
                raise ValueError(f"Duplicate key found: {key}")
            mapping[key] = self.construct_object(value_node, deep=deep)
        return mapping


def parse_config(
    config_path: dict | Path | str, current_directory: Path | None = None
) -> dict[str, Any]:
    """Parse config.

    This method recursively parses the config file and resolves any 'inherits' keys.

    Args:
        config_path: Path to the config file or a dict with the config.
        current_directory: Current directory to resolve relative paths.
            If None, the current working directory is used.

    Returns:
        Full model configuation without any remaining 'inherits' keys.
    """
    if current_directory is None:
        current_directory = Path.cwd()

    if isinstance(config_path, dict):
        config = config_path
    else:
        with open(current_directory / config_path, "r") as f:
            config: dict | None = yaml.load(f, Loader=DetectDuplicateKeysYamlLoader)
        if config is None:
            config = {}
        current_directory = current_directory / Path(config_path).parent

    if "inherits" in config:
        inherit_config_path = config["inherits"]
        # replace {VAR} with environment variable VAR if it exists
        inherit_config_path = os.path.expandvars(inherit_config_path)
        # if inherits is not an absolute path, we assume it is relative to the config file
        if not Path(inherit_config_path).is_absolute():
            inherit_config_path = current_directory / inherit_config_path
        with open(inherit_config_path, "r") as f:
            inherited_config = yaml.load(f, Loader=DetectDuplicateKeysYamlLoader) or {}
        current_directory = Path(inherit_config_path).parent
        del config[
            "inherits"
        ]  # remove inherits key from config to avoid infinite recursion
        config = multi_level_merge(inherited_config, config)
        config = parse_config(config, current_directory=current_directory)
    return config


def load_config(
    config_path: dict | Path | str | None = None,
    current_directory: Path | None = None,
) -> ModelConfig:
    """Load and validate the model configuration.

    Args:
        config_path: Path to a YAML config file, a dict with the config, or None
            for the default configuration.
        current_directory: Current directory to resolve relative paths.

    Returns:
        The validated model configuration.
    """
    if config_path is None:
        return ModelConfig()
    return ModelConfig.model_validate(
        parse_config(config_path, current_directory=current_directory)
    )
