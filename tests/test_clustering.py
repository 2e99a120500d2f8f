import pytest

from nutricache.domain.models.profile import UserProfile
from nutricache.domain.services.clustering import age_band, cluster_hash, derive_cluster, weight_band


@pytest.mark.parametrize("age,band", [(None, "unknown"), (18, "18-30"), (30, "18-30"), (31, "31-50"), (50, "31-50"), (51, "51+")])
def test_age_band(age, band):
    assert age_band(age) == band


@pytest.mark.parametrize("weight,band", [(None, "unknown"), (59.9, "under60"), (60, "60-80"), (80, "80-100"), (100, "over100")])
def test_weight_band(weight, band):
    assert weight_band(weight) == band


def test_derive_cluster_from_free_text():
    profile = UserProfile(age=34, weight=72, goals=["Énergie", "Sommeil"], conditions=["Diabète type 2", "végétarien"])
    cluster = derive_cluster(profile)
    assert cluster.age_band == "31-50"
    assert cluster.weight_band == "60-80"
    assert cluster.primary_goal == "energie"
    assert cluster.medical_conditions == ["diabetes"]
    assert cluster.diet == "vegetarian"
    assert cluster_hash(cluster) == "31-50|60-80|energie|diabetes|vegetarian"


def test_hash_ignores_condition_order():
    a = derive_cluster(UserProfile(age=60, conditions=["hypertension", "diabète"]))
    b = derive_cluster(UserProfile(age=60, conditions=["diabète", "hypertension"]))
    assert cluster_hash(a) == cluster_hash(b) == "51+|unknown|general|diabetes,hypertension|none"


def test_explicit_diet_wins():
    cluster = derive_cluster(UserProfile(diet="Halal", conditions=["vegan"]))
    assert cluster.diet == "halal"


def test_vegan_beats_vegetarian():
    cluster = derive_cluster(UserProfile(conditions=["végétarien", "vegan"]))
    assert cluster.diet == "vegan"
