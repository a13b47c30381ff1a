"""Training configuration.

``TrainingConfig`` enumerates every hyperparameter the training core
understands. String maps (CLI flags, query parameters, config files) are
converted with ``TrainingConfig.from_mapping`` at the boundary.
"""

import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional

from src.recommender.exceptions import ConfigurationError
from src.recommender.update_rules import GradientRule

# Configure module logger
logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


@dataclass
class TrainingConfig:
    """Hyperparameters for pairwise-ranking matrix factorization.

    Attributes:
        num_factors: Dimensionality of the latent factors.
        init_mean: Mean of the normal distribution used for row initialization.
        init_stdev: Standard deviation of that distribution.
        learn_rate: Initial SGD step size.
        reg_u: Regularization for user factors.
        reg_i: Regularization for positive item factors.
        reg_j: Regularization for negative item factors.
        bias_reg: Regularization for item biases.
        num_iter: Number of epochs run by ``train()``.
        iteration_length: Triples per positive edge in one epoch.
        uniform_user: Sample the anchor user uniformly (otherwise sample edges).
        with_replacement: Allow the same positive edge twice within an epoch.
        fast_sampling_memory_limit: Budget in MiB for precomputed per-user
            positive/negative item tables.
        bold_driver: Adapt the learning rate from the approximate loss.
        loss_sample_size: Number of triples in the bold-driver loss sample;
            ``None`` uses ``int(sqrt(max_user_id)) * 100``.
        gradient_rule: Logistic (BPR) or hinge (soft margin) update weight.
        random_seed: Seed for the training random generator.
    """

    num_factors: int = 10
    init_mean: float = 0.0
    init_stdev: float = 0.1
    learn_rate: float = 0.05
    reg_u: float = 0.0025
    reg_i: float = 0.0025
    reg_j: float = 0.00025
    bias_reg: float = 0.0
    num_iter: int = 30
    iteration_length: int = 1
    uniform_user: bool = True
    with_replacement: bool = True
    fast_sampling_memory_limit: int = 128
    bold_driver: bool = False
    loss_sample_size: Optional[int] = None
    gradient_rule: GradientRule = GradientRule.LOGISTIC
    random_seed: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.gradient_rule, GradientRule):
            self.gradient_rule = GradientRule.parse(self.gradient_rule)

        if self.num_factors < 1:
            raise ConfigurationError(
                f"num_factors must be positive, got {self.num_factors}"
            )
        if self.init_stdev < 0:
            raise ConfigurationError(
                f"init_stdev must be non-negative, got {self.init_stdev}"
            )
        if self.learn_rate <= 0:
            raise ConfigurationError(
                f"learn_rate must be positive, got {self.learn_rate}"
            )
        for name in ("reg_u", "reg_i", "reg_j", "bias_reg"):
            if getattr(self, name) < 0:
                raise ConfigurationError(
                    f"{name} must be non-negative, got {getattr(self, name)}"
                )
        if self.num_iter < 0:
            raise ConfigurationError(
                f"num_iter must be non-negative, got {self.num_iter}"
            )
        if self.iteration_length < 1:
            raise ConfigurationError(
                f"iteration_length must be at least 1, got {self.iteration_length}"
            )
        if self.fast_sampling_memory_limit < 0:
            raise ConfigurationError(
                "fast_sampling_memory_limit must be non-negative, "
                f"got {self.fast_sampling_memory_limit}"
            )
        if self.loss_sample_size is not None and self.loss_sample_size < 1:
            raise ConfigurationError(
                f"loss_sample_size must be positive, got {self.loss_sample_size}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain dictionary (enums as their string values)."""
        data = asdict(self)
        data["gradient_rule"] = self.gradient_rule.value
        return data

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "TrainingConfig":
        """Build a config from a mapping of option names to raw values.

        String values are converted to the declared field type, so
        ``{"bold_driver": "true", "learn_rate": "0.01"}`` is accepted.

        Raises:
            ConfigurationError: If a key is unknown or a value cannot be
                converted.
        """
        known = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}

        for key, raw in values.items():
            name = key.replace("-", "_")
            if name not in known:
                raise ConfigurationError(
                    f"Unknown configuration option: {key}",
                    details={"option": key, "known": sorted(known)},
                )
            kwargs[name] = _convert(name, known[name].default, raw)

        logger.debug(f"Parsed configuration options: {sorted(kwargs)}")
        return cls(**kwargs)

    def describe(self) -> str:
        """One-line summary of the hyperparameters."""
        return " ".join(f"{key}={value}" for key, value in self.to_dict().items())


def _convert(name: str, default: Any, raw: Any) -> Any:
    """Convert one raw option value to the type of its default."""
    if not isinstance(raw, str):
        return raw

    text = raw.strip()
    try:
        if name == "gradient_rule":
            return GradientRule.parse(text)
        if name in ("loss_sample_size", "random_seed"):
            return None if text.lower() in ("", "none", "null") else int(text)
        if isinstance(default, bool):
            lowered = text.lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
            raise ValueError(f"not a boolean: {raw!r}")
        if isinstance(default, int):
            return int(text)
        if isinstance(default, float):
            return float(text)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r} ({e})",
            details={"option": name, "value": raw},
        ) from e

    return text
