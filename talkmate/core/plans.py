from typing import Literal

PlanType = Literal["standard", "basic", "pro"]
UsageKind = Literal["chat", "learning", "tts"]

DEFAULT_PLAN: PlanType = "standard"

# Daily allowance per plan and feature.
PLAN_LIMITS: dict[str, dict[str, int]] = {
    "standard": {"chat": 30, "learning": 10, "tts": 2},
    "basic": {"chat": 200, "learning": 200, "tts": 200},
    "pro": {"chat": 200, "learning": 200, "tts": 200},
}


def normalize_plan(plan: str | None) -> str:
    value = (plan or "").strip().lower()
    return value if value in PLAN_LIMITS else DEFAULT_PLAN


def limit_for(plan: str | None, kind: UsageKind) -> int:
    return PLAN_LIMITS[normalize_plan(plan)][kind]
