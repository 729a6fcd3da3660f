"""Subscription plans and the features each one unlocks."""

from __future__ import annotations

from enum import Enum
from typing import Literal, assert_never

from pydantic import BaseModel, ConfigDict

from descgen.errors import AuthorizationError


class Plan(str, Enum):
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @property
    def rank(self) -> int:
        return _PLAN_ORDER.index(self)

    def at_least(self, other: Plan) -> bool:
        return self.rank >= other.rank


_PLAN_ORDER = (Plan.BASIC, Plan.PRO, Plan.ENTERPRISE)


class Feature(str, Enum):
    SEO_OPTIMIZATION = "seo_optimization"
    BULK_GENERATION = "bulk_generation"
    CUSTOM_TONE = "custom_tone"
    MULTI_LANGUAGE = "multi_language"
    CUSTOM_TRAINING = "custom_training"
    API_ACCESS = "api_access"


class PlanLimits(BaseModel):
    """Catalogue entry for one plan. ``-1`` means unlimited."""

    model_config = ConfigDict(frozen=True)

    plan: Plan
    name: str
    price: int
    currency: str = "usd"
    interval: Literal["month", "year"] = "month"
    products: int
    descriptions: int
    languages: int
    support: str
    features: frozenset[Feature]


_BASIC_FEATURES = frozenset({Feature.SEO_OPTIMIZATION})
_PRO_FEATURES = _BASIC_FEATURES | {
    Feature.BULK_GENERATION,
    Feature.CUSTOM_TONE,
    Feature.MULTI_LANGUAGE,
}
_ENTERPRISE_FEATURES = _PRO_FEATURES | {Feature.CUSTOM_TRAINING, Feature.API_ACCESS}


def plan_limits(plan: Plan) -> PlanLimits:
    """Return the catalogue entry for *plan*. Every Plan member must be matched."""
    match plan:
        case Plan.BASIC:
            return PlanLimits(
                plan=plan, name="Basic", price=29,
                products=500, descriptions=1000, languages=1, support="email",
                features=_BASIC_FEATURES,
            )
        case Plan.PRO:
            return PlanLimits(
                plan=plan, name="Pro", price=79,
                products=2000, descriptions=5000, languages=5, support="priority",
                features=_PRO_FEATURES,
            )
        case Plan.ENTERPRISE:
            return PlanLimits(
                plan=plan, name="Enterprise", price=199,
                products=-1, descriptions=-1, languages=10, support="dedicated",
                features=_ENTERPRISE_FEATURES,
            )
        case _:
            assert_never(plan)


def all_plans() -> list[PlanLimits]:
    return [plan_limits(p) for p in _PLAN_ORDER]


def has_feature(plan: Plan, feature: Feature) -> bool:
    return feature in plan_limits(plan).features


def require_feature(plan: Plan, feature: Feature) -> None:
    """Raise AuthorizationError unless *plan* includes *feature*."""
    if not has_feature(plan, feature):
        raise AuthorizationError(
            "Feature not available in your current plan",
            details={"feature": feature.value, "current_plan": plan.value},
        )


def require_plan(plan: Plan, required: Plan) -> None:
    if not plan.at_least(required):
        raise AuthorizationError(
            f"This feature requires {required.value} plan or higher",
            details={"current_plan": plan.value, "required_plan": required.value},
        )


def check_generation_options(plan: Plan, tone: str, language: str) -> None:
    """Gate option values that only some plans may use."""
    if tone != "professional":
        require_feature(plan, Feature.CUSTOM_TONE)
    if language.lower() != "en":
        require_feature(plan, Feature.MULTI_LANGUAGE)
