"""
Application configuration settings.
"""

from typing import Dict, Literal, Optional, Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from haven.domain_types import EstimationMethod, NclexCategory


# Tolerance for floating-point weight summation checks
_WEIGHT_SUM_TOLERANCE = 1e-6


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Haven CAT Engine"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # CAT test length and timing (NCLEX-RN test plan)
    CAT_MIN_QUESTIONS: int = Field(default=85, ge=1)
    CAT_MAX_QUESTIONS: int = Field(default=150, ge=1)
    CAT_TIME_LIMIT_SECONDS: Optional[float] = Field(
        default=18000.0,
        gt=0.0,
        description="Exam time limit in seconds (5 hours). None disables the limit.",
    )

    # CAT classification
    # Passing standard on the logit (theta) scale
    CAT_PASSING_THRESHOLD: float = 0.0
    # z multiplier for the confidence-interval stopping rule (95% two-sided)
    CAT_CONFIDENCE_Z: float = Field(default=1.96, gt=0.0)
    # Optional precision stop: SE below this classifies by point estimate
    CAT_SE_THRESHOLD: Optional[float] = Field(default=None, gt=0.0)

    # Ability estimation
    CAT_ESTIMATION_METHOD: EstimationMethod = EstimationMethod.MLE
    CAT_PRIOR_THETA: float = 0.0
    CAT_PRIOR_SE: float = Field(default=1.0, gt=0.0)
    CAT_MLE_MAX_ITERATIONS: int = Field(default=50, ge=1)
    CAT_MLE_TOLERANCE: float = Field(default=1e-4, gt=0.0)
    CAT_THETA_BOUND: float = Field(default=4.0, gt=0.0)

    # Item selection
    CAT_MIN_ITEMS_PER_CATEGORY: int = Field(default=1, ge=0)
    CAT_CONTENT_BALANCE_TOLERANCE: float = Field(default=0.10, ge=0.0, le=1.0)
    # 1 = always administer the single most informative item
    CAT_RANDOMESQUE_K: int = Field(default=1, ge=1)
    CAT_MAX_EXPOSURE_RATE: Optional[float] = Field(default=None, gt=0.0, le=1.0)

    # NCLEX-RN client-need blueprint, midpoints of the published percentage ranges.
    # Keys must match NclexCategory values in haven/domain_types.py
    CAT_BLUEPRINT_WEIGHTS: Dict[str, float] = {
        "management-of-care": 0.20,  # 17-23%
        "safety-infection-control": 0.12,  # 9-15%
        "health-promotion-maintenance": 0.09,  # 6-12%
        "psychosocial-integrity": 0.09,  # 6-12%
        "basic-care-comfort": 0.09,  # 6-12%
        "pharmacological-therapies": 0.15,  # 12-18%
        "reduction-risk-potential": 0.12,  # 9-15%
        "physiological-adaptation": 0.14,  # 11-17%
    }

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_test_length(self) -> Self:
        """Validate that the minimum test length does not exceed the maximum."""
        if self.CAT_MIN_QUESTIONS > self.CAT_MAX_QUESTIONS:
            raise ValueError(
                f"CAT_MIN_QUESTIONS ({self.CAT_MIN_QUESTIONS}) must not exceed "
                f"CAT_MAX_QUESTIONS ({self.CAT_MAX_QUESTIONS})"
            )
        return self

    @model_validator(mode="after")
    def validate_blueprint_weights(self) -> Self:
        """Validate CAT_BLUEPRINT_WEIGHTS: positive values summing to 1.0."""
        weights = self.CAT_BLUEPRINT_WEIGHTS
        expected_categories = {category.value for category in NclexCategory}
        if set(weights.keys()) != expected_categories:
            raise ValueError(
                f"CAT_BLUEPRINT_WEIGHTS keys must be {sorted(expected_categories)}, "
                f"got {sorted(weights.keys())}"
            )
        non_positive = [k for k, v in weights.items() if v <= 0]
        if non_positive:
            raise ValueError(
                f"All blueprint weights must be positive, got non-positive: {non_positive}"
            )
        total = sum(weights.values())
        if abs(total - 1.0) > _WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"CAT_BLUEPRINT_WEIGHTS must sum to 1.0, got {total}")
        return self


settings = Settings()
