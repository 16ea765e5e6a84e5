"""Engine configuration."""

from dataclasses import dataclass
from dataclasses import fields
from typing import Any
from typing import Literal


@dataclass
class EngineConfig:
    """Execution settings shared by every run of one engine instance."""

    max_concurrency: int = 4  # Max steps of one batch running at once
    default_retries: int = 0  # Retries when a step does not set its own
    retry_initial_delay: float = 0.5  # Seconds before the first retry
    retry_backoff: Literal["exponential", "linear"] = "exponential"
    retry_max_delay: float = 30.0
    default_timeout: float | None = None  # Per-step timeout in seconds (None = no limit)
    max_recipe_depth: int = 5  # Nested recipe tool calls
    continue_on_error: bool = False  # Treat every step as continueOnError

    def validate(self) -> list[str]:
        """Validate configuration values."""
        errors = []
        if self.max_concurrency < 1:
            errors.append(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.default_retries < 0:
            errors.append(f"default_retries must be >= 0, got {self.default_retries}")
        if self.retry_initial_delay < 0:
            errors.append(f"retry_initial_delay must be >= 0, got {self.retry_initial_delay}")
        if self.retry_backoff not in ("exponential", "linear"):
            errors.append(f"retry_backoff must be 'exponential' or 'linear', got '{self.retry_backoff}'")
        if self.retry_max_delay < self.retry_initial_delay:
            errors.append(
                f"retry_max_delay must be >= retry_initial_delay, "
                f"got {self.retry_max_delay} < {self.retry_initial_delay}"
            )
        if self.default_timeout is not None and self.default_timeout <= 0:
            errors.append(f"default_timeout must be positive, got {self.default_timeout}")
        if not 1 <= self.max_recipe_depth <= 20:
            errors.append(f"max_recipe_depth must be 1-20, got {self.max_recipe_depth}")
        return errors

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "EngineConfig":
        """Build config from a plain dict, ignoring unknown keys."""
        data = data or {}
        known = {f.name for f in fields(cls)}
        config = cls(**{k: v for k, v in data.items() if k in known})
        errors = config.validate()
        if errors:
            raise ValueError("Invalid engine config: " + "; ".join(errors))
        return config

    def retry_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        delay = self.retry_initial_delay
        if self.retry_backoff == "exponential":
            delay *= 2 ** (attempt - 1)
        else:
            delay *= attempt
        return min(delay, self.retry_max_delay)
