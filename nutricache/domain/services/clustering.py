# nutricache/domain/services/clustering.py
from typing import Dict, Iterable, List, Optional, Tuple

from nutricache.domain.models.profile import ProfileCluster, UserProfile
from nutricache.domain.services.normalizer import fold

UNKNOWN_BAND = "unknown"
NONE_SENTINEL = "none"
DEFAULT_GOAL = "general"

# Canonical condition tag -> accent-stripped fragments found in free text (fr + en)
MEDICAL_CONDITIONS: Dict[str, Tuple[str, ...]] = {
    "diabetes": ("diabet",),
    "hypertension": ("hypertension", "tension arterielle", "high blood pressure"),
    "heart": ("heart", "coeur", "cardiaque", "cardio"),
    "thyroid": ("thyroid", "thyroide"),
    "cholesterol": ("cholesterol",),
    "arthritis": ("arthrit", "arthrose"),
    "kidney": ("kidney", "insuffisance renale"),
    "pregnancy": ("pregnan", "enceinte", "grossesse", "allaitement"),
}

# Priority order matters: a profile listing both "vegan" and "vegetarian" is vegan
DIETS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("vegan", ("vegan", "vegetalien")),
    ("vegetarian", ("vegetarian", "vegetarien")),
    ("halal", ("halal",)),
    ("kosher", ("kosher", "casher", "cacher")),
)


def age_band(age: Optional[int]) -> str:
    if age is None:
        return UNKNOWN_BAND
    if age <= 30:
        return "18-30"
    if age <= 50:
        return "31-50"
    return "51+"


def weight_band(weight: Optional[float]) -> str:
    if weight is None:
        return UNKNOWN_BAND
    if weight < 60:
        return "under60"
    if weight < 80:
        return "60-80"
    if weight < 100:
        return "80-100"
    return "over100"


def condition_tags(entries: Iterable[str]) -> List[str]:
    folded = [fold(e) for e in entries if e]
    tags = {
        tag
        for tag, fragments in MEDICAL_CONDITIONS.items()
        if any(frag in entry for entry in folded for frag in fragments)
    }
    return sorted(tags)


def diet_tag(entries: Iterable[str]) -> Optional[str]:
    folded = [fold(e) for e in entries if e]
    for tag, fragments in DIETS:
        if any(frag in entry for entry in folded for frag in fragments):
            return tag
    return None


def derive_cluster(profile: UserProfile) -> ProfileCluster:
    goal = fold(profile.goals[0]) if profile.goals and profile.goals[0].strip() else DEFAULT_GOAL
    diet_sources = [profile.diet] if profile.diet else []
    return ProfileCluster(
        age_band=age_band(profile.age),
        weight_band=weight_band(profile.weight),
        primary_goal=goal,
        medical_conditions=condition_tags(profile.conditions),
        diet=diet_tag(diet_sources) or diet_tag(profile.conditions),
    )


def cluster_hash(cluster: ProfileCluster) -> str:
    """Deterministic key for a cluster; condition order in the input never matters."""
    conditions = ",".join(sorted(set(cluster.medical_conditions))) or NONE_SENTINEL
    return "|".join([
        cluster.age_band,
        cluster.weight_band,
        cluster.primary_goal,
        conditions,
        cluster.diet or NONE_SENTINEL,
    ])
